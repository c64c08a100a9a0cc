"""
Crawl orchestration: work-list resolution and the sequential ingestion run.

A run walks its work list in order, one item at a time. Each item is fetched
from the active source, gated by the type rule, persisted through the catalog
gateway and classified as ``success``, ``skipped`` or ``error``. A randomized
delay separates consecutive items. Nothing raised while processing an item
stops the run; only cancellation or exhausting the list ends it.
"""
from __future__ import annotations

import logging
import random
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Literal

from .errors import FilteredOut, IngestError, InvalidInputError
from .filters import FilterRules
from .gateway import CatalogGateway, RunLedger
from .images import ImageOptions, ImagePostProcessor
from .models import TYPE_CATEGORIES, MovieDetail, Term
from .reconciler import DEFAULT_CHUNK_SIZE, EpisodeReconciler
from .slugify import slugify
from .sources.base import SourceAdapter

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"(?:phim|film)/([^/?\s]+)(?:\?.*)?$")
# Characters that would change the request path once placed in a detail URL.
SLUG_FORBIDDEN = frozenset("/?#")
DEFAULT_WAIT_MIN_MS = 1000
DEFAULT_WAIT_MAX_MS = 3000

ItemStatus = Literal["success", "error", "skipped"]
RunStatus = Literal["running", "success", "error", "cancelled"]


def extract_slug(item: str) -> str:
    """Return the movie slug from a bare slug or a ``/phim/`` / ``/film/`` URL."""

    value = (item or "").strip()
    match = SLUG_PATTERN.search(value.rstrip("/"))
    slug = match.group(1) if match else value
    if not slug or any(char in SLUG_FORBIDDEN or char.isspace() for char in slug):
        raise InvalidInputError(f"Invalid slug: {item!r}")
    return slug


def parse_work_list(text: str) -> list[str]:
    """Split newline-delimited input into trimmed, non-empty entries."""

    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def shuffle(work_list: Iterable[str], rng: random.Random | None = None) -> list[str]:
    """Return a Fisher-Yates shuffled copy of ``work_list``."""

    items = [item for item in work_list if item and item.strip()]
    generator = rng or random.Random()
    for index in range(len(items) - 1, 0, -1):
        swap = generator.randint(0, index)
        items[index], items[swap] = items[swap], items[index]
    return items


def resolve_list(
    adapter: SourceAdapter,
    page_from: int,
    page_to: int,
    on_page: Callable[[int, int], None] | None = None,
) -> list[str]:
    """Collect listing slugs for every page in ``[page_from, page_to]``."""

    if page_from < 1 or page_to < page_from:
        raise InvalidInputError(f"Invalid page range: {page_from}-{page_to}")

    slugs: list[str] = []
    for page in range(page_from, page_to + 1):
        if on_page is not None:
            on_page(page, page_to)
        listing = adapter.fetch_list(page)
        slugs.extend(item.slug for item in listing.items)
        logger.info("Listed page %s/%s from %s: %s items", page, page_to, adapter.key, len(listing.items))
    return slugs


@dataclass(slots=True)
class RunOptions:
    source: str = "phimapi"
    skip_formats: list[str] = field(default_factory=list)
    skip_genres: list[str] = field(default_factory=list)
    skip_countries: list[str] = field(default_factory=list)
    wait_min_ms: int = DEFAULT_WAIT_MIN_MS
    wait_max_ms: int = DEFAULT_WAIT_MAX_MS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    images: ImageOptions = field(default_factory=ImageOptions)

    def wait_window(self) -> tuple[int, int]:
        low = max(0, int(self.wait_min_ms))
        high = max(0, int(self.wait_max_ms))
        return (low, high) if low <= high else (high, low)

    def rules(self) -> FilterRules:
        return FilterRules.build(self.skip_formats, self.skip_genres, self.skip_countries)


@dataclass(slots=True)
class ProgressEvent:
    processed: int
    total: int
    current_slug: str


@dataclass(slots=True)
class ItemResult:
    url: str
    status: ItemStatus
    timestamp: str
    movie_id: str | None = None
    name: str | None = None
    origin_name: str | None = None
    year: int | None = None
    message: str | None = None
    created: bool = False
    episodes_added: int = 0

    def format_line(self) -> str:
        """Render the pipe-delimited export line used by result lists."""

        parts = [self.url]
        if self.movie_id:
            parts.append(self.movie_id)
        parts.append(self.timestamp)
        if self.name:
            parts.append(self.name)
        if self.origin_name:
            parts.append(self.origin_name)
        if self.year:
            parts.append(str(self.year))
        if self.message:
            parts.append(self.message)
        return "|".join(parts)

    def to_dict(self) -> dict[str, object]:
        return {
            "url": self.url,
            "status": self.status,
            "timestamp": self.timestamp,
            "movie_id": self.movie_id,
            "name": self.name,
            "origin_name": self.origin_name,
            "year": self.year,
            "message": self.message,
            "created": self.created,
            "episodes_added": self.episodes_added,
        }


@dataclass(slots=True)
class RunSummary:
    run_id: str | None = None
    status: RunStatus = "running"
    total: int = 0
    added: int = 0
    updated: int = 0
    results: list[ItemResult] = field(default_factory=list)
    duration_seconds: float = 0.0
    failure: str | None = None

    @property
    def successes(self) -> list[ItemResult]:
        return [result for result in self.results if result.status == "success"]

    @property
    def errors(self) -> list[ItemResult]:
        return [result for result in self.results if result.status == "error"]

    @property
    def skipped(self) -> list[ItemResult]:
        return [result for result in self.results if result.status == "skipped"]

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def duration(self) -> str:
        return f"{round(self.duration_seconds)}s"

    @property
    def message(self) -> str | None:
        parts = []
        if self.errors:
            parts.append(f"{len(self.errors)} items failed")
        if self.skipped:
            parts.append(f"{len(self.skipped)} items skipped")
        if self.status == "cancelled":
            parts.append(f"cancelled after {self.processed}/{self.total} items")
        if self.failure:
            parts.append(self.failure)
        return ", ".join(parts) or None

    def add(self, result: ItemResult) -> None:
        self.results.append(result)
        if result.status == "success":
            if result.created:
                self.added += 1
            else:
                self.updated += 1


class CancellationToken:
    """Cooperative cancel flag, optionally backed by an external probe."""

    def __init__(self, probe: Callable[[], bool] | None = None, *, poll_interval: float = 0.5) -> None:
        self._event = threading.Event()
        self.probe = probe
        self.poll_interval = poll_interval

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.probe is not None and self.probe():
            self._event.set()
            return True
        return False

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True as soon as the token fires."""

        deadline = time.monotonic() + max(0.0, seconds)
        while True:
            if self.cancelled:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._event.wait(min(remaining, self.poll_interval))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CrawlOrchestrator:
    """Drive one ingestion run against a single source."""

    def __init__(
        self,
        adapter: SourceAdapter,
        gateway: CatalogGateway,
        options: RunOptions | None = None,
        *,
        ledger: RunLedger | None = None,
        token: CancellationToken | None = None,
        on_progress: Callable[[ProgressEvent], None] | None = None,
        images: ImagePostProcessor | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.adapter = adapter
        self.gateway = gateway
        self.options = options or RunOptions(source=adapter.key)
        self.ledger = ledger
        self.token = token or CancellationToken()
        self.on_progress = on_progress
        self.images = images or ImagePostProcessor(self.options.images)
        self.rules = self.options.rules()
        self.reconciler = EpisodeReconciler(gateway, chunk_size=self.options.chunk_size)
        self._rng = rng or random.Random()

    def run(self, work_list: list[str], *, run_type: str | None = None) -> RunSummary:
        items = [item.strip() for item in work_list if item and item.strip()]
        summary = RunSummary(total=len(items))
        started = time.monotonic()

        if self.ledger is not None:
            try:
                summary.run_id = self.ledger.start(run_type or f"Crawl {len(items)} movies", total=len(items))
            except Exception as exc:
                logger.exception("Failed to open the ledger entry for a run of %s items", len(items))
                summary.status = "error"
                summary.failure = f"Failed to start run: {exc}"
                summary.duration_seconds = time.monotonic() - started
                return summary
            run_id = summary.run_id
            ledger = self.ledger
            if self.token.probe is None:
                self.token.probe = lambda: ledger.is_cancel_requested(run_id)

        logger.info("Run %s started: %s items from %s", summary.run_id or "-", len(items), self.adapter.key)
        self._emit(0, len(items), "")

        for index, raw in enumerate(items):
            if self.token.cancelled:
                summary.status = "cancelled"
                break

            result = self.crawl_item(raw)
            summary.add(result)
            self._record(summary, result)
            self._emit(index + 1, len(items), result.url)

            if index < len(items) - 1 and self._pause():
                summary.status = "cancelled"
                break

        if summary.status == "running":
            summary.status = "success"
        summary.duration_seconds = time.monotonic() - started
        self._finalize(summary)
        logger.info(
            "Run %s finished with status %s: added=%s updated=%s skipped=%s errors=%s in %s",
            summary.run_id or "-",
            summary.status,
            summary.added,
            summary.updated,
            len(summary.skipped),
            len(summary.errors),
            summary.duration,
        )
        return summary

    def crawl_item(self, raw: str) -> ItemResult:
        """Process one work-list entry and classify the outcome."""

        timestamp = _now()
        try:
            slug = extract_slug(raw)
        except InvalidInputError as exc:
            return ItemResult(url=raw, status="error", timestamp=timestamp, message=exc.message)

        url = self.adapter.detail_url(slug)
        try:
            return self._ingest(slug, url, timestamp)
        except FilteredOut as exc:
            return ItemResult(url=url, status="skipped", timestamp=timestamp, message=exc.message)
        except IngestError as exc:
            logger.warning("Item %s failed: %s", slug, exc.message)
            return ItemResult(url=url, status="error", timestamp=timestamp, message=exc.message)
        except Exception as exc:  # noqa: BLE001 - one item must never abort the run
            logger.exception("Unexpected failure while crawling %s", slug)
            return ItemResult(url=url, status="error", timestamp=timestamp, message=str(exc) or type(exc).__name__)

    def _ingest(self, slug: str, url: str, timestamp: str) -> ItemResult:
        movie, groups = self.adapter.fetch_detail(slug)
        self.rules.check_type(movie)

        movie_id = self.gateway.find_movie_by_slug(movie.slug)
        created = movie_id is None
        if movie_id is None:
            row = movie.to_row()
            row["poster_url"] = self.images.poster(movie.poster_url)
            row["thumb_url"] = self.images.thumb(movie.thumb_url)
            movie_id = self.gateway.insert_movie(row)

        self._attach_relations(movie_id, movie)

        episodes_added = 0
        if groups:
            episodes_added = self.reconciler.reconcile(movie_id, groups, self.adapter.tag).inserted

        return ItemResult(
            url=url,
            status="success",
            timestamp=timestamp,
            movie_id=movie_id,
            name=movie.name,
            origin_name=movie.origin_name,
            year=movie.year,
            created=created,
            episodes_added=episodes_added,
        )

    def _attach_relations(self, movie_id: str, movie: MovieDetail) -> None:
        category = TYPE_CATEGORIES.get(movie.type)
        if category is not None:
            name, slug = category
            category_id = self.gateway.upsert_by_slug("movie_categories", slug, {"name": name})
            self.gateway.upsert_association("movie_category_map", movie_id, category_id)

        self._attach_terms(movie_id, "genres", "movie_genres", self.rules.allowed_genres(movie.genres))
        self._attach_terms(movie_id, "countries", "movie_countries", self.rules.allowed_countries(movie.countries))

        if movie.year:
            self.gateway.upsert_year(movie.year)

        self._attach_people(movie_id, "directors", "movie_directors", movie.directors)
        self._attach_people(movie_id, "actors", "movie_actors", movie.actors)

    def _attach_terms(self, movie_id: str, table: str, join_table: str, terms: list[Term]) -> None:
        for term in terms:
            slug = term.slug or slugify(term.name)
            if not slug:
                continue
            entity_id = self.gateway.upsert_by_slug(table, slug, {"name": term.name})
            self.gateway.upsert_association(join_table, movie_id, entity_id)

    def _attach_people(self, movie_id: str, table: str, join_table: str, names: list[str]) -> None:
        for name in names:
            slug = slugify(name)
            if not slug:
                continue
            entity_id = self.gateway.upsert_by_slug(table, slug, {"name": name.strip()})
            self.gateway.upsert_association(join_table, movie_id, entity_id)

    def _pause(self) -> bool:
        low, high = self.options.wait_window()
        delay_ms = self._rng.randint(low, high)
        return self.token.wait(delay_ms / 1000)

    def _emit(self, processed: int, total: int, current: str) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(ProgressEvent(processed=processed, total=total, current_slug=current))
        except Exception:  # noqa: BLE001 - progress events are advisory
            logger.debug("Progress callback failed", exc_info=True)

    def _record(self, summary: RunSummary, result: ItemResult) -> None:
        if self.ledger is None or summary.run_id is None:
            return
        try:
            self.ledger.record_item(summary.run_id, result)
            self.ledger.update_progress(summary.run_id, summary, processed=summary.processed, total=summary.total)
        except Exception:  # noqa: BLE001 - per-item bookkeeping is best effort
            logger.warning("Failed to record item %s for run %s", result.url, summary.run_id, exc_info=True)

    def _finalize(self, summary: RunSummary) -> None:
        if self.ledger is None or summary.run_id is None:
            return
        try:
            self.ledger.finish(summary.run_id, summary)
        except Exception as exc:
            logger.exception("Failed to finalize run %s", summary.run_id)
            summary.status = "error"
            summary.failure = f"Failed to finalize run: {exc}"
            try:
                self.ledger.fail(summary.run_id, summary.failure)
            except Exception:  # noqa: BLE001 - ledger is unavailable, nothing left to record into
                logger.exception("Failed to mark run %s as errored", summary.run_id)
