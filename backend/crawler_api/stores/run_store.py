"""Database-backed run ledger for crawl runs."""
from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Iterable

from sqlalchemy import func
from sqlmodel import Session, select

from ..models import CrawlLogRecord, new_id, utcnow
from ..schemas import TERMINAL_RUN_STATUSES, RunMetricsModel, RunModel


class RunStore:
    """Thread-safe CRUD interface over the ``crawl_logs`` ledger.

    A row that reached a terminal status is never modified again.
    """

    def __init__(self, engine) -> None:
        self._engine = engine
        self._lock = Lock()

    def enqueue(self, run_type: str, *, source: str, total: int = 0, payload: dict[str, Any] | None = None) -> RunModel:
        """Create a queued ledger row and return its model representation."""

        record = CrawlLogRecord(
            id=new_id(),
            type=run_type,
            source=source,
            status="queued",
            total=total,
            payload=payload,
        )
        with self._lock, Session(self._engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_model(record)

    def get(self, run_id: str) -> RunModel | None:
        with Session(self._engine) as session:
            record = session.get(CrawlLogRecord, run_id)
            return _to_model(record) if record else None

    def list(
        self,
        *,
        limit: int = 50,
        statuses: list[str] | None = None,
        source: str | None = None,
    ) -> list[RunModel]:
        """Return the most recent runs up to the requested limit with optional filters."""

        statement = select(CrawlLogRecord)
        if statuses:
            normalized_statuses = sorted({status.lower() for status in statuses if status})
            if normalized_statuses:
                statement = statement.where(CrawlLogRecord.status.in_(normalized_statuses))
        if source:
            statement = statement.where(CrawlLogRecord.source == source)

        statement = statement.order_by(CrawlLogRecord.created_at.desc()).limit(limit)
        with Session(self._engine) as session:
            records: Iterable[CrawlLogRecord] = session.exec(statement)
            return [_to_model(record) for record in records]

    def mark_running(self, run_id: str, *, total: int | None = None, worker_id: str | None = None) -> RunModel:
        return self._update(
            run_id,
            status="running",
            started_at=utcnow(),
            total=total,
            worker_id=worker_id,
        )

    def update_progress(
        self,
        run_id: str,
        *,
        processed: int,
        total: int,
        added: int,
        updated: int,
        skipped: int,
        failed: int,
    ) -> RunModel:
        return self._update(
            run_id,
            processed=processed,
            total=total,
            added=added,
            updated=updated,
            skipped=skipped,
            failed=failed,
        )

    def finish(
        self,
        run_id: str,
        *,
        status: str,
        added: int,
        updated: int,
        skipped: int,
        failed: int,
        processed: int,
        duration: str,
        message: str | None,
    ) -> RunModel:
        return self._update(
            run_id,
            status=status,
            processed=processed,
            added=added,
            updated=updated,
            skipped=skipped,
            failed=failed,
            duration=duration,
            message=message,
            finished_at=utcnow(),
        )

    def mark_failed(self, run_id: str, *, message: str) -> RunModel:
        return self._update(run_id, status="error", message=message, finished_at=utcnow())

    def mark_cancelled(self, run_id: str, *, reason: str | None = None) -> RunModel:
        """Cancel a queued run outright."""

        return self._update(
            run_id,
            status="cancelled",
            message=reason or "cancelled before start",
            cancel_requested=True,
            finished_at=utcnow(),
        )

    def request_cancel(self, run_id: str, *, reason: str | None = None) -> RunModel:
        """Flag a running run; the worker stops at its next suspension point."""

        return self._update(run_id, cancel_requested=True, message=reason)

    def is_cancel_requested(self, run_id: str) -> bool:
        with Session(self._engine) as session:
            record = session.get(CrawlLogRecord, run_id)
            return bool(record and record.cancel_requested)

    def _update(
        self,
        run_id: str,
        *,
        status: str | None = None,
        processed: int | None = None,
        total: int | None = None,
        added: int | None = None,
        updated: int | None = None,
        skipped: int | None = None,
        failed: int | None = None,
        duration: str | None = None,
        message: str | None = None,
        cancel_requested: bool | None = None,
        worker_id: str | None = None,
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
    ) -> RunModel:
        with self._lock, Session(self._engine) as session:
            record = session.get(CrawlLogRecord, run_id)
            if record is None:
                raise RuntimeError(f"Run {run_id} not found")
            if record.status in TERMINAL_RUN_STATUSES:
                raise RuntimeError(f"Run {run_id} is already finalized ({record.status})")

            if status is not None:
                record.status = status
            if total is not None:
                record.total = total
            if processed is not None:
                record.processed = processed
            if added is not None:
                record.movies_added = added
            if updated is not None:
                record.movies_updated = updated
            if skipped is not None:
                record.movies_skipped = skipped
            if failed is not None:
                record.movies_failed = failed
            if duration is not None:
                record.duration = duration
            if message is not None:
                record.message = message
            if cancel_requested is not None:
                record.cancel_requested = cancel_requested
            if worker_id is not None:
                record.worker_id = worker_id
            if started_at is not None and record.started_at is None:
                record.started_at = started_at
            if finished_at is not None:
                record.finished_at = finished_at
            if record.total:
                record.progress = min(1.0, record.processed / record.total)
            elif record.status in TERMINAL_RUN_STATUSES:
                record.progress = 1.0
            record.updated_at = utcnow()

            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_model(record)

    def metrics(self) -> RunMetricsModel:
        """Compute aggregate statistics for persisted runs."""

        with Session(self._engine) as session:
            total = session.exec(select(func.count()).select_from(CrawlLogRecord)).one()

            status_rows = session.exec(
                select(CrawlLogRecord.status, func.count())
                .group_by(CrawlLogRecord.status)
                .order_by(CrawlLogRecord.status)
            ).all()
            source_rows = session.exec(
                select(CrawlLogRecord.source, func.count())
                .group_by(CrawlLogRecord.source)
                .order_by(CrawlLogRecord.source)
            ).all()
            added, updated, failed = session.exec(
                select(
                    func.coalesce(func.sum(CrawlLogRecord.movies_added), 0),
                    func.coalesce(func.sum(CrawlLogRecord.movies_updated), 0),
                    func.coalesce(func.sum(CrawlLogRecord.movies_failed), 0),
                )
            ).one()

            duration_rows = session.exec(
                select(CrawlLogRecord.started_at, CrawlLogRecord.finished_at)
                .where(CrawlLogRecord.started_at.is_not(None))
                .where(CrawlLogRecord.finished_at.is_not(None))
            ).all()
            durations = [
                (finished - started).total_seconds()
                for started, finished in duration_rows
                if started and finished
            ]

            last_finished = session.exec(
                select(CrawlLogRecord.finished_at)
                .where(CrawlLogRecord.finished_at.is_not(None))
                .order_by(CrawlLogRecord.finished_at.desc())
                .limit(1)
            ).one_or_none()

        return RunMetricsModel(
            total=total,
            status_counts={status: count for status, count in status_rows},
            source_counts={source: count for source, count in source_rows},
            movies_added=int(added),
            movies_updated=int(updated),
            movies_failed=int(failed),
            average_duration_seconds=sum(durations) / len(durations) if durations else None,
            last_finished_at=last_finished,
        )


def _to_model(record: CrawlLogRecord) -> RunModel:
    """Convert a ledger record into the public response model."""

    duration_seconds: float | None = None
    if record.started_at and record.finished_at:
        duration_seconds = (record.finished_at - record.started_at).total_seconds()

    return RunModel(
        id=record.id,
        type=record.type,
        source=record.source,
        status=record.status,
        movies_added=record.movies_added,
        movies_updated=record.movies_updated,
        movies_skipped=record.movies_skipped,
        movies_failed=record.movies_failed,
        processed=record.processed,
        total=record.total,
        progress=record.progress,
        duration=record.duration,
        message=record.message,
        cancel_requested=record.cancel_requested,
        worker_id=record.worker_id,
        payload=record.payload,
        created_at=record.created_at,
        updated_at=record.updated_at,
        started_at=record.started_at,
        finished_at=record.finished_at,
        duration_seconds=duration_seconds,
    )
