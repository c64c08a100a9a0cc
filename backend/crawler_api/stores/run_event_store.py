"""Persistence helpers for run events and per-item results."""
from __future__ import annotations

from typing import Iterable

from sqlmodel import Session, select

from ..models import CrawlLogEventRecord
from ..schemas import RunItemModel, RunLogCreate, RunLogModel


class RunEventStore:
    """Store and retrieve structured events for crawl runs."""

    def __init__(self, engine) -> None:
        self._engine = engine

    def append(self, run_id: str, payload: RunLogCreate) -> RunLogModel:
        """Persist a new event for the provided run identifier."""

        record = CrawlLogEventRecord(
            run_id=run_id,
            level=payload.level,
            message=payload.message,
            item_status=payload.item_status,
            context=payload.context,
        )
        with Session(self._engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_model(record)

    def list_for_run(self, run_id: str, *, limit: int = 100) -> list[RunLogModel]:
        """Return events associated with the given run, oldest first."""

        statement = (
            select(CrawlLogEventRecord)
            .where(CrawlLogEventRecord.run_id == run_id)
            .order_by(CrawlLogEventRecord.created_at.asc(), CrawlLogEventRecord.id.asc())
            .limit(limit)
        )
        with Session(self._engine) as session:
            records: Iterable[CrawlLogEventRecord] = session.exec(statement)
            return [_to_model(record) for record in records]

    def items_for_run(self, run_id: str, *, status: str | None = None) -> list[RunItemModel]:
        """Return the itemized results recorded for a run in processing order."""

        statement = (
            select(CrawlLogEventRecord)
            .where(CrawlLogEventRecord.run_id == run_id)
            .where(CrawlLogEventRecord.item_status.is_not(None))
        )
        if status:
            statement = statement.where(CrawlLogEventRecord.item_status == status)
        statement = statement.order_by(CrawlLogEventRecord.id.asc())

        with Session(self._engine) as session:
            records = session.exec(statement).all()
            return [RunItemModel.model_validate(record.context or {}) for record in records]


def _to_model(record: CrawlLogEventRecord) -> RunLogModel:
    return RunLogModel(
        id=record.id,
        run_id=record.run_id,
        level=record.level,
        message=record.message,
        item_status=record.item_status,
        context=record.context,
        created_at=record.created_at,
    )
