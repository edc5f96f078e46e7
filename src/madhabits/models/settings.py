"""Application-level settings stored in the local snapshot database."""

from __future__ import annotations

from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

LAST_SYNC_AT_KEY = "last_sync_at"


class AppSetting(SQLModel, table=True):
    """Key-value storage for sync markers and runtime options."""

    __tablename__: ClassVar[str] = "app_setting"

    key: str = Field(primary_key=True, max_length=64)
    value: str = Field(nullable=False, max_length=255)
    description: Optional[str] = Field(default=None, max_length=255)
