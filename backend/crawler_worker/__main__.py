"""Entry point for running the catalog ingest RQ worker."""
from __future__ import annotations

import logging
import os

from rq import SimpleWorker, Worker

from backend.crawler_api.db import create_engine_from_settings, init_database
from backend.crawler_api.services.queue import RunQueueService
from backend.crawler_api.settings import IngestSettings


def main() -> None:
    """Start an RQ worker connected to the configured run queue."""

    settings = IngestSettings()
    logging.basicConfig(level=settings.log_level.upper())

    engine = create_engine_from_settings(settings)
    init_database(engine, settings)
    engine.dispose()

    queue_service = RunQueueService(settings)

    # Use SimpleWorker on Windows to avoid fork issues
    worker_class = SimpleWorker if os.name == "nt" else Worker
    worker = worker_class(
        [queue_service.queue],
        connection=queue_service.connection,
        name=settings.queue_worker_name,
    )
    worker.work(with_scheduler=False)


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    main()
