"""RQ task entrypoints executed by background workers."""
from __future__ import annotations

import logging
from typing import Any

from rq import get_current_job

from ..db import create_engine_from_settings
from ..schemas import RunLogCreate, RunRequest
from ..settings import IngestSettings
from .ledger import LedgerAdapter
from .runner import RunStores, execute_run

logger = logging.getLogger(__name__)


def execute_crawl_run(
    *,
    run_id: str,
    request: dict[str, Any],
    settings: dict[str, Any],
    worker_name: str,
) -> dict[str, Any] | None:
    """Background worker entrypoint for crawl runs."""

    resolved_settings = IngestSettings.model_validate(settings)
    engine = create_engine_from_settings(resolved_settings)
    stores = RunStores.from_engine(engine)

    current_job = get_current_job()  # pragma: no branch - helper for diagnostics
    worker_id = worker_name
    if current_job and getattr(current_job, "worker_name", None):  # pragma: no cover - runtime path
        worker_id = current_job.worker_name  # type: ignore[assignment]

    try:
        run = stores.runs.get(run_id)
        if run is None or run.status != "queued":
            logger.info("Run %s is no longer queued; skipping", run_id)
            if run is not None:
                stores.events.append(
                    run_id,
                    RunLogCreate(
                        level="info",
                        message="Worker skipped run",
                        context={"status": run.status},
                    ),
                )
            return None

        summary = execute_run(
            run_id,
            RunRequest.model_validate(request),
            settings=resolved_settings,
            stores=stores,
            worker_id=worker_id,
        )
        return {
            "status": summary.status,
            "added": summary.added,
            "updated": summary.updated,
            "skipped": len(summary.skipped),
            "errors": len(summary.errors),
            "duration": summary.duration,
        }
    except Exception as exc:
        logger.exception("Run %s failed", run_id)
        LedgerAdapter(stores.runs, stores.events, source="", run_id=run_id).fail(run_id, str(exc))
        raise
    finally:
        engine.dispose()
