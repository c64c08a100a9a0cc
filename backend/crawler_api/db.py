"""Database helpers for the ingest service."""
from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from .models import IngestConfigRecord
from .schemas import ConfigModel
from .settings import IngestSettings
from .utils.paths import ensure_sqlite_path


def create_engine_from_settings(settings: IngestSettings) -> Engine:
    """Create a SQLModel engine using ingest settings."""

    ensure_sqlite_path(settings.database_url)
    connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
    return create_engine(settings.database_url, echo=settings.database_echo, connect_args=connect_args)


def init_database(engine: Engine, settings: IngestSettings) -> None:
    """Create tables and seed default configuration."""

    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        record = session.get(IngestConfigRecord, 1)
        if record is None:
            defaults = IngestConfigRecord(
                id=1,
                active_source=settings.default_source,
                wait_min_ms=settings.default_wait_min_ms,
                wait_max_ms=settings.default_wait_max_ms,
                image_proxy_url=settings.image_proxy_url,
            )
            session.add(defaults)
            session.commit()


def read_config(session: Session) -> ConfigModel:
    """Fetch the persisted configuration as a Pydantic model."""

    record = session.get(IngestConfigRecord, 1)
    if record is None:
        raise RuntimeError("Configuration record missing from database")
    return ConfigModel(
        active_source=record.active_source,
        wait_min_ms=record.wait_min_ms,
        wait_max_ms=record.wait_max_ms,
        image_proxy_url=record.image_proxy_url,
    )
