"""Bridge between the crawl engine's ledger protocol and the database stores."""
from __future__ import annotations

import logging
from typing import Any

from backend.ingest.orchestrator import ItemResult, RunSummary

from ..schemas import RunLogCreate
from ..stores.run_event_store import RunEventStore
from ..stores.run_store import RunStore

logger = logging.getLogger(__name__)

_ITEM_LEVELS = {"success": "info", "skipped": "warning", "error": "error"}


class LedgerAdapter:
    """Record a crawl run into ``crawl_logs`` and its events table.

    When ``run_id`` is given the adapter adopts that pre-created (queued) row
    instead of creating a new one.
    """

    def __init__(
        self,
        run_store: RunStore,
        event_store: RunEventStore,
        *,
        source: str,
        run_id: str | None = None,
        payload: dict[str, Any] | None = None,
        worker_id: str | None = None,
    ) -> None:
        self._runs = run_store
        self._events = event_store
        self._source = source
        self._run_id = run_id
        self._payload = payload
        self._worker_id = worker_id

    @property
    def run_id(self) -> str | None:
        return self._run_id

    def start(self, run_type: str, *, total: int) -> str:
        if self._run_id is None:
            run = self._runs.enqueue(run_type, source=self._source, total=total, payload=self._payload)
            self._run_id = run.id
        self._runs.mark_running(self._run_id, total=total, worker_id=self._worker_id)
        self._events.append(
            self._run_id,
            RunLogCreate(
                level="info",
                message=f"{run_type} started",
                context={"total": total, "source": self._source},
            ),
        )
        return self._run_id

    def record_item(self, run_id: str, result: ItemResult) -> None:
        self._events.append(
            run_id,
            RunLogCreate(
                level=_ITEM_LEVELS.get(result.status, "info"),
                message=result.format_line(),
                item_status=result.status,
                context=result.to_dict(),
            ),
        )

    def update_progress(self, run_id: str, summary: RunSummary, *, processed: int, total: int) -> None:
        self._runs.update_progress(
            run_id,
            processed=processed,
            total=total,
            added=summary.added,
            updated=summary.updated,
            skipped=len(summary.skipped),
            failed=len(summary.errors),
        )

    def finish(self, run_id: str, summary: RunSummary) -> None:
        self._runs.finish(
            run_id,
            status=summary.status,
            added=summary.added,
            updated=summary.updated,
            skipped=len(summary.skipped),
            failed=len(summary.errors),
            processed=summary.processed,
            duration=summary.duration,
            message=summary.message,
        )
        # The row is final; the closing event is best effort.
        try:
            self._events.append(
                run_id,
                RunLogCreate(
                    level="warning" if summary.status == "cancelled" else "info",
                    message=f"Run {summary.status}",
                    context={
                        "added": summary.added,
                        "updated": summary.updated,
                        "skipped": len(summary.skipped),
                        "errors": len(summary.errors),
                        "duration": summary.duration,
                    },
                ),
            )
        except Exception:  # noqa: BLE001 - the ledger row already holds the result
            logger.warning("Failed to record closing event for run %s", run_id, exc_info=True)

    def fail(self, run_id: str, message: str) -> None:
        run = self._runs.get(run_id)
        if run is None:
            logger.warning("Run %s not found; cannot mark it failed", run_id)
            return
        try:
            self._runs.mark_failed(run_id, message=message)
        except RuntimeError:
            # Finalized by someone else (finish, or a cancel of the queued row).
            logger.warning("Run %s is already finalized; not marking it failed", run_id)
            return
        self._events.append(
            run_id,
            RunLogCreate(level="error", message="Run failed", context={"error": message}),
        )

    def is_cancel_requested(self, run_id: str) -> bool:
        return self._runs.is_cancel_requested(run_id)
