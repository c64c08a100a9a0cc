"""Helpers that assemble and execute crawl runs for the API and the worker."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from backend.ingest.errors import InvalidInputError
from backend.ingest.images import ImageOptions, ImagePostProcessor
from backend.ingest.orchestrator import (
    CrawlOrchestrator,
    ProgressEvent,
    RunOptions,
    RunSummary,
    parse_work_list,
)
from backend.ingest.sources import SourceAdapter, SourceConfig, create_adapter, default_source_configs

from ..schemas import ConfigModel, RunModel, RunOptionsModel, RunRequest
from ..settings import IngestSettings
from ..stores.catalog_store import CatalogStore
from ..stores.config_store import ConfigStore
from ..stores.run_event_store import RunEventStore
from ..stores.run_store import RunStore
from .ledger import LedgerAdapter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunStores:
    """Stores a crawl run reads from and writes to."""

    config: ConfigStore
    catalog: CatalogStore
    runs: RunStore
    events: RunEventStore

    @classmethod
    def from_engine(cls, engine) -> "RunStores":
        return cls(
            config=ConfigStore(engine),
            catalog=CatalogStore(engine),
            runs=RunStore(engine),
            events=RunEventStore(engine),
        )


def source_configs(settings: IngestSettings) -> dict[str, SourceConfig]:
    """Return the configured sources with base URLs taken from settings."""

    return default_source_configs(
        phimapi_base_url=settings.phimapi_base_url,
        nguonc_base_url=settings.nguonc_base_url,
        image_cdn_base_url=settings.image_cdn_base_url,
    )


def open_adapter(
    settings: IngestSettings,
    source: str,
    *,
    transport: httpx.BaseTransport | None = None,
) -> SourceAdapter:
    config = source_configs(settings).get(source)
    if config is None:
        raise InvalidInputError(f"Unknown source: {source}")
    return create_adapter(config, timeout=settings.http_timeout, transport=transport)


def collect_work_list(request: RunRequest) -> list[str]:
    """Merge the explicit work list with the newline-delimited text form."""

    items = [item.strip() for item in request.work_list if item and item.strip()]
    if request.work_text:
        items.extend(parse_work_list(request.work_text))
    return items


def build_run_options(
    request: RunOptionsModel,
    config: ConfigModel,
    settings: IngestSettings,
) -> RunOptions:
    """Resolve per-run options, falling back to the persisted configuration."""

    return RunOptions(
        source=request.source or config.active_source,
        skip_formats=list(request.skip_formats),
        skip_genres=list(request.skip_genres),
        skip_countries=list(request.skip_countries),
        wait_min_ms=request.wait_min_ms if request.wait_min_ms is not None else config.wait_min_ms,
        wait_max_ms=request.wait_max_ms if request.wait_max_ms is not None else config.wait_max_ms,
        chunk_size=settings.episode_chunk_size,
        images=ImageOptions(**request.images.model_dump()),
    )


def run_label(source: str, total: int) -> str:
    return f"Crawl {total} movies from {source}"


def validate_run_request(request: RunRequest, config: ConfigModel, settings: IngestSettings) -> list[str]:
    """Reject requests that cannot produce a run; return the work list."""

    source = request.source or config.active_source
    if source not in source_configs(settings):
        raise InvalidInputError(f"Unknown source: {source}")
    work_list = collect_work_list(request)
    if not work_list:
        raise InvalidInputError("Work list is empty")
    return work_list


def enqueue_run_record(stores: RunStores, request: RunRequest, settings: IngestSettings) -> RunModel:
    """Validate ``request`` and create its queued ledger row."""

    config = stores.config.read()
    work_list = validate_run_request(request, config, settings)
    source = request.source or config.active_source
    return stores.runs.enqueue(
        run_label(source, len(work_list)),
        source=source,
        total=len(work_list),
        payload=request.model_dump(exclude={"inline"}),
    )


def execute_run(
    run_id: str,
    request: RunRequest,
    *,
    settings: IngestSettings,
    stores: RunStores,
    worker_id: str,
    transport: httpx.BaseTransport | None = None,
) -> RunSummary:
    """Execute the queued run ``run_id`` to a terminal state."""

    config = stores.config.read()
    options = build_run_options(request, config, settings)
    work_list = collect_work_list(request)
    ledger = LedgerAdapter(
        stores.runs,
        stores.events,
        source=options.source,
        run_id=run_id,
        worker_id=worker_id,
    )
    images = ImagePostProcessor(options.images, proxy_url=config.image_proxy_url or settings.image_proxy_url)

    def _log_progress(event: ProgressEvent) -> None:
        logger.debug("Run %s progress %s/%s %s", run_id, event.processed, event.total, event.current_slug)

    with open_adapter(settings, options.source, transport=transport) as adapter:
        orchestrator = CrawlOrchestrator(
            adapter,
            stores.catalog,
            options,
            ledger=ledger,
            images=images,
            on_progress=_log_progress,
        )
        summary = orchestrator.run(work_list, run_type=run_label(options.source, len(work_list)))

    if summary.run_id is None:
        # The ledger refused to open the run; settle the queued row ourselves.
        summary.run_id = run_id
        ledger.fail(run_id, summary.failure or "Failed to start run")
        settled = stores.runs.get(run_id)
        if settled is not None and settled.status == "cancelled":
            summary.status = "cancelled"
    return summary


def run_inline(
    request: RunRequest,
    *,
    settings: IngestSettings,
    stores: RunStores,
    worker_id: str = "ingest-api",
    transport: httpx.BaseTransport | None = None,
) -> tuple[RunModel, RunSummary]:
    """Create a run and execute it synchronously inside the caller.

    Mirrors the queued lifecycle so callers see the same ledger rows and
    events whichever way a run was executed.
    """

    run = enqueue_run_record(stores, request, settings)
    try:
        summary = execute_run(
            run.id,
            request,
            settings=settings,
            stores=stores,
            worker_id=worker_id,
            transport=transport,
        )
    except Exception as exc:
        logger.exception("Inline run %s failed", run.id)
        LedgerAdapter(stores.runs, stores.events, source=run.source, run_id=run.id).fail(run.id, str(exc))
        raise
    finished = stores.runs.get(run.id)
    return (finished or run), summary
