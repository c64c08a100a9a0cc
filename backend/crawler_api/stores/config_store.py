"""Database-backed configuration store for the ingest service."""
from __future__ import annotations

from threading import Lock
from typing import Any

from sqlmodel import Session, select

from ..db import read_config
from ..models import IngestConfigRecord, utcnow
from ..schemas import ConfigModel, ConfigUpdate


class ConfigStore:
    """Thread-safe interface over the persisted run defaults."""

    def __init__(self, engine) -> None:
        self._engine = engine
        self._lock = Lock()

    def read(self) -> ConfigModel:
        """Return the current configuration model."""

        with Session(self._engine) as session:
            return read_config(session)

    def update(self, update: ConfigUpdate) -> ConfigModel:
        """Apply updates to the stored configuration."""

        update_payload = _extract_update(update)
        with self._lock, Session(self._engine) as session:
            record = session.exec(
                select(IngestConfigRecord).where(IngestConfigRecord.id == 1)
            ).one_or_none()
            if record is None:
                raise RuntimeError("Configuration record missing from database")
            for key, value in update_payload.items():
                setattr(record, key, value)
            record.updated_at = utcnow()
            session.add(record)
            session.commit()
            session.refresh(record)
            return ConfigModel(
                active_source=record.active_source,
                wait_min_ms=record.wait_min_ms,
                wait_max_ms=record.wait_max_ms,
                image_proxy_url=record.image_proxy_url,
            )


def _extract_update(update: ConfigUpdate) -> dict[str, Any]:
    """Extract a payload suitable for model updates.

    An explicit ``null`` clears the image proxy; other fields ignore nulls.
    """

    payload = update.model_dump(exclude_unset=True)
    return {
        key: value
        for key, value in payload.items()
        if value is not None or key == "image_proxy_url"
    }
