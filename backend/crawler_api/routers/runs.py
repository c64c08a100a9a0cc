"""Crawl run endpoints."""
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response

from backend.ingest.orchestrator import shuffle

from ..dependencies import get_app_state, get_run_event_store, get_run_queue, get_run_store
from ..schemas import (
    TERMINAL_RUN_STATUSES,
    ItemStatus,
    RunCancelRequest,
    RunItemModel,
    RunLogCreate,
    RunLogModel,
    RunMetricsModel,
    RunModel,
    RunRequest,
    RunResultModel,
    ShuffleRequest,
    ShuffleResponse,
)
from ..services.queue import RunQueueError, RunQueueService
from ..services.runner import run_inline
from ..state import AppState
from ..stores.run_event_store import RunEventStore
from ..stores.run_store import RunStore

router = APIRouter(prefix="/runs", tags=["runs"])


def _require_run(run_id: str, store: RunStore) -> RunModel:
    run = store.get(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@router.post("/shuffle", response_model=ShuffleResponse)
def shuffle_work_list(request: ShuffleRequest) -> ShuffleResponse:
    """Return the work list in a random order."""

    return ShuffleResponse(work_list=shuffle(request.work_list))


@router.post(
    "",
    response_model=RunModel | RunResultModel,
    status_code=201,
)
def start_run(
    request: RunRequest,
    response: Response,
    app_state: AppState = Depends(get_app_state),
    queue: RunQueueService = Depends(get_run_queue),
) -> RunModel | RunResultModel:
    """Queue a crawl run, or execute it in-process when ``inline`` is set."""

    stores = app_state.run_stores()
    if not request.inline:
        try:
            return queue.enqueue(stores, request)
        except RunQueueError as exc:  # pragma: no cover - queue failures
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    run, summary = run_inline(
        request,
        settings=app_state.settings,
        stores=stores,
        transport=app_state.source_transport,
    )
    response.status_code = 200
    return RunResultModel(
        run=run,
        added=summary.added,
        updated=summary.updated,
        successes=[RunItemModel.model_validate(item.to_dict()) for item in summary.successes],
        skipped=[RunItemModel.model_validate(item.to_dict()) for item in summary.skipped],
        errors=[RunItemModel.model_validate(item.to_dict()) for item in summary.errors],
        duration=summary.duration,
    )


@router.get("", response_model=list[RunModel])
def list_runs(
    limit: int = Query(default=50, ge=1, le=100),
    statuses: Annotated[
        list[str] | None,
        Query(
            alias="status",
            description=(
                "Filter results to one or more run statuses. Repeat the query parameter "
                "to include multiple statuses."
            ),
        ),
    ] = None,
    source: str | None = Query(
        default=None,
        description="Filter results to a specific source key.",
    ),
    store: RunStore = Depends(get_run_store),
) -> list[RunModel]:
    """Return the most recent runs up to the requested limit."""

    return store.list(limit=limit, statuses=statuses, source=source)


@router.get("/metrics", response_model=RunMetricsModel)
def run_metrics(
    store: RunStore = Depends(get_run_store),
    queue: RunQueueService = Depends(get_run_queue),
) -> RunMetricsModel:
    """Return aggregate run telemetry combined with queue depth."""

    metrics = store.metrics()
    return metrics.model_copy(update={"queue_depth": queue.depth()})


@router.get("/{run_id}", response_model=RunModel)
def get_run(run_id: str, store: RunStore = Depends(get_run_store)) -> RunModel:
    """Return the ledger row for a single run, raising if missing."""

    return _require_run(run_id, store)


@router.get("/{run_id}/items", response_model=list[RunItemModel])
def list_run_items(
    run_id: str,
    status: ItemStatus | None = Query(default=None, description="Filter by item outcome."),
    store: RunStore = Depends(get_run_store),
    event_store: RunEventStore = Depends(get_run_event_store),
) -> list[RunItemModel]:
    """Return the itemized results recorded for a run."""

    _require_run(run_id, store)
    return event_store.items_for_run(run_id, status=status)


@router.get("/{run_id}/logs", response_model=list[RunLogModel])
def list_run_logs(
    run_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    store: RunStore = Depends(get_run_store),
    event_store: RunEventStore = Depends(get_run_event_store),
) -> list[RunLogModel]:
    """Return events associated with a run."""

    _require_run(run_id, store)
    return event_store.list_for_run(run_id, limit=limit)


@router.post("/{run_id}/cancel", response_model=RunModel)
def cancel_run(
    run_id: str,
    request: RunCancelRequest | None = Body(default=None),
    store: RunStore = Depends(get_run_store),
    event_store: RunEventStore = Depends(get_run_event_store),
) -> RunModel:
    """Cancel a queued run, or ask a running one to stop at its next item."""

    existing = _require_run(run_id, store)
    if existing.status in TERMINAL_RUN_STATUSES:
        raise HTTPException(status_code=409, detail=f"Run already {existing.status}")

    reason = request.reason if request else None
    try:
        if existing.status == "queued":
            run = store.mark_cancelled(run_id, reason=reason)
            message = "Run cancelled"
        else:
            run = store.request_cancel(run_id, reason=reason)
            message = "Cancellation requested"
    except RuntimeError as exc:
        # The run reached a terminal state in the meantime.
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    event_store.append(
        run_id,
        RunLogCreate(
            level="warning",
            message=message,
            context={"reason": reason} if reason else None,
        ),
    )
    return run
