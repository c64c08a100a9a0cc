"""Filesystem helpers for default data locations."""
from __future__ import annotations

from pathlib import Path

from platformdirs import user_data_dir


APP_NAME = "CatalogIngest"
APP_AUTHOR = "CatalogIngest"


def default_data_dir() -> Path:
    """Return the platform-appropriate data directory."""

    return Path(user_data_dir(APP_NAME, APP_AUTHOR))


def default_database_url() -> str:
    return f"sqlite:///{default_data_dir() / 'catalog.db'}"


def ensure_sqlite_path(database_url: str) -> None:
    """Create parent directories when using a SQLite URL."""

    if database_url.startswith("sqlite:///"):
        path_part = database_url.removeprefix("sqlite:///").split("?")[0]
        if path_part:
            Path(path_part).expanduser().parent.mkdir(parents=True, exist_ok=True)
