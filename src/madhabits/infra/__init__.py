"""Infrastructure: storage backends and remote store implementations."""
