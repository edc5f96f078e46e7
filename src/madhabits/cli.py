"""Command-line interface for MadHabits."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, TypeVar

import click

from .config import BaseConfig
from .context import AppContext, create_app_context
from .errors import HabitEngineError
from .logging_config import setup_logging
from .models.habit import Frequency
from .services import dates

T = TypeVar("T")


def _run(awaitable: Awaitable[T]) -> T:
    """Run one engine coroutine, turning engine errors into CLI errors."""

    async def _main() -> T:
        return await awaitable

    try:
        return asyncio.run(_main())
    except HabitEngineError as exc:
        raise click.ClickException(str(exc)) from exc


def _status_line(app: AppContext, habit: Any, day: str) -> str:
    done = app.ledger.is_completed(habit.id, day)
    mark = "x" if done else " "
    return (
        f"[{mark}] {habit.id}  {habit.icon or ''} {habit.name}"
        f"  ({habit.frequency.value}, streak {habit.streak}, best {habit.best_streak})"
    )


@click.group()
@click.option("--offline", is_flag=True, default=False, help="Do not contact the remote store.")
@click.option("--user", "user_id", default=None, help="Signed-in user id (defaults to MADHABITS_USER_ID).")
@click.pass_context
def cli(ctx: click.Context, offline: bool, user_id: str | None) -> None:
    """Track habits, streaks and make-up dates."""

    config = BaseConfig()
    if offline:
        config.START_OFFLINE = True
    if user_id:
        config.USER_ID = user_id
    setup_logging(config)

    app = create_app_context(config)
    ctx.obj = app
    if app.reconciler.is_authenticated and app.reconciler.is_online:
        _run(app.reconciler.start())


@cli.command("today")
@click.option("--date", "day", default=None, help="Date to show (YYYY-MM-DD), default today.")
@click.pass_obj
def today_cmd(app: AppContext, day: str | None) -> None:
    """List the habits due on a date."""

    day = day or dates.today()
    habits = app.reconciler.get_habits_for_date(day)
    if not habits:
        click.echo(f"No habits due on {day}.")
        return
    click.echo(f"Habits for {day}:")
    for habit in habits:
        click.echo(_status_line(app, habit, day))


@cli.command("list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List every habit."""

    habits = app.registry.snapshot()
    if not habits:
        click.echo("No habits yet.")
        return
    for habit in habits:
        click.echo(_status_line(app, habit, dates.today()))


@cli.command("add")
@click.argument("name")
@click.option(
    "--frequency",
    type=click.Choice([f.value for f in Frequency]),
    default=Frequency.DAILY.value,
    show_default=True,
)
@click.option("--day", "days", type=click.IntRange(0, 6), multiple=True, help="Weekday, 0=Sunday.")
@click.option("--description", default=None)
@click.option("--icon", default=None)
@click.option("--color", default=None)
@click.pass_obj
def add_cmd(
    app: AppContext,
    name: str,
    frequency: str,
    days: tuple[int, ...],
    description: str | None,
    icon: str | None,
    color: str | None,
) -> None:
    """Create a habit."""

    habit = _run(
        app.reconciler.add_habit(
            name,
            frequency,
            days_of_week=list(days),
            description=description,
            icon=icon,
            color=color,
        )
    )
    click.echo(f"Created habit {habit.id} ({habit.name}).")


@cli.command("toggle")
@click.argument("habit_id")
@click.option("--date", "day", default=None, help="Date to toggle (YYYY-MM-DD), default today.")
@click.option("--note", default=None)
@click.pass_obj
def toggle_cmd(app: AppContext, habit_id: str, day: str | None, note: str | None) -> None:
    """Toggle completion of a habit on a date."""

    day = day or dates.today()
    record = _run(app.reconciler.toggle_completion(habit_id, day, note))
    habit = app.registry.require(habit_id) if habit_id in app.registry else None
    state = "done" if record.completed else "not done"
    click.echo(f"{day}: marked {state}.")
    if habit is not None:
        click.echo(f"Streak {habit.streak}, best {habit.best_streak}.")


@cli.command("make-up")
@click.argument("habit_id")
@click.argument("day")
@click.option("--missed-date", default=None, help="Missed allotted day, default yesterday.")
@click.pass_obj
def make_up_cmd(app: AppContext, habit_id: str, day: str, missed_date: str | None) -> None:
    """Set an alternative completion date for a missed weekly habit."""

    habit = _run(
        app.reconciler.set_alternative_completion_date(habit_id, day, missed_date=missed_date)
    )
    click.echo(f"Make-up date {day} saved for {habit.name}.")


@cli.command("warnings")
@click.pass_obj
def warnings_cmd(app: AppContext) -> None:
    """Show weekly habits missed yesterday."""

    missed = app.warnings.evaluate()
    if not missed:
        click.echo("Nothing missed yesterday.")
        return
    for item in missed:
        first, last = item.makeup_window
        click.echo(
            f"Missed {item.habit.name} ({item.habit.id}) on {item.missed_date}; "
            f"make it up between {first} and {last}."
        )


@cli.command("delete")
@click.argument("habit_id")
@click.pass_obj
def delete_cmd(app: AppContext, habit_id: str) -> None:
    """Delete a habit and its completion history."""

    _run(app.reconciler.delete_habit(habit_id))
    click.echo(f"Deleted habit {habit_id}.")


@cli.command("sync")
@click.pass_obj
def sync_cmd(app: AppContext) -> None:
    """Push queued offline changes and pull the remote state."""

    fetched = _run(app.reconciler.fetch_habits())
    if fetched:
        click.echo(f"Synced {len(app.registry)} habits.")
    else:
        click.echo(f"Offline; {len(app.reconciler.pending)} change(s) still queued.")


def main() -> None:
    cli(prog_name="madhabits")


__all__ = ["cli", "main"]
