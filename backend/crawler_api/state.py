"""Shared state container for the ingest API."""
from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.engine import Engine

from .db import create_engine_from_settings, init_database
from .services.queue import RunQueueService
from .services.runner import RunStores
from .settings import IngestSettings
from .stores.catalog_store import CatalogStore
from .stores.config_store import ConfigStore
from .stores.run_event_store import RunEventStore
from .stores.run_store import RunStore


@dataclass(slots=True)
class AppState:
    """Encapsulates mutable application state shared across routers."""

    settings: IngestSettings
    engine: Engine
    config_store: ConfigStore
    catalog_store: CatalogStore
    run_store: RunStore
    run_event_store: RunEventStore
    run_queue: RunQueueService
    source_transport: httpx.BaseTransport | None

    def __init__(
        self,
        settings: IngestSettings,
        *,
        source_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.engine = create_engine_from_settings(settings)
        init_database(self.engine, settings)
        self.config_store = ConfigStore(self.engine)
        self.catalog_store = CatalogStore(self.engine)
        self.run_store = RunStore(self.engine)
        self.run_event_store = RunEventStore(self.engine)
        self.run_queue = RunQueueService(settings)
        self.source_transport = source_transport

    def run_stores(self) -> RunStores:
        return RunStores(
            config=self.config_store,
            catalog=self.catalog_store,
            runs=self.run_store,
            events=self.run_event_store,
        )
