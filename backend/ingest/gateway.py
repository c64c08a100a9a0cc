"""Persistence and ledger contracts consumed by the orchestrator."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .orchestrator import ItemResult, RunSummary

EpisodeKey = tuple[str, str]


class CatalogGateway(Protocol):
    """Lookup and append-only write operations on the movie catalog."""

    def find_movie_by_slug(self, slug: str) -> str | None: ...

    def insert_movie(self, fields: dict[str, Any]) -> str: ...

    def upsert_by_slug(self, table: str, slug: str, fields: dict[str, Any]) -> str: ...

    def upsert_year(self, year: int) -> int: ...

    def upsert_association(self, join_table: str, movie_id: str, entity_id: str) -> None: ...

    def list_existing_episode_keys(self, movie_id: str) -> set[EpisodeKey]: ...

    def insert_episodes_batch(self, rows: list[dict[str, Any]], chunk_size: int = 100) -> list[int]: ...


class RunLedger(Protocol):
    """Run-level bookkeeping: one row per run plus per-item events."""

    def start(self, run_type: str, *, total: int) -> str: ...

    def record_item(self, run_id: str, result: "ItemResult") -> None: ...

    def update_progress(self, run_id: str, summary: "RunSummary", *, processed: int, total: int) -> None: ...

    def finish(self, run_id: str, summary: "RunSummary") -> None: ...

    def fail(self, run_id: str, message: str) -> None: ...

    def is_cancel_requested(self, run_id: str) -> bool: ...
