"""Source discovery, latency probes and list resolution."""
from fastapi import APIRouter, Depends, HTTPException

from backend.ingest.errors import FetchError
from backend.ingest.orchestrator import resolve_list, shuffle

from ..dependencies import get_app_state, get_config_store, get_settings
from ..models import utcnow
from ..schemas import (
    ResolveListRequest,
    ResolveListResponse,
    SourceModel,
    SourceStatusModel,
)
from ..services.runner import open_adapter, source_configs
from ..settings import IngestSettings
from ..state import AppState
from ..stores.config_store import ConfigStore

router = APIRouter(prefix="/sources", tags=["sources"])


def _require_source(key: str, settings: IngestSettings) -> None:
    if key not in source_configs(settings):
        raise HTTPException(status_code=404, detail="Source not found")


@router.get("", response_model=list[SourceModel])
def list_sources(
    settings: IngestSettings = Depends(get_settings),
    config_store: ConfigStore = Depends(get_config_store),
) -> list[SourceModel]:
    """Return the configured upstream sources, flagging the active one."""

    active = config_store.read().active_source
    return [
        SourceModel(
            key=config.key,
            label=config.label,
            base_url=config.base_url,
            list_path=config.list_path,
            detail_path=config.detail_path,
            tag=config.tag,
            active=config.key == active,
        )
        for config in source_configs(settings).values()
    ]


@router.get("/{key}/status", response_model=SourceStatusModel)
def source_status(key: str, app_state: AppState = Depends(get_app_state)) -> SourceStatusModel:
    """Probe the source listing endpoint and report its latency."""

    _require_source(key, app_state.settings)
    with open_adapter(app_state.settings, key, transport=app_state.source_transport) as adapter:
        try:
            latency = adapter.ping()
        except FetchError as exc:
            return SourceStatusModel(key=key, status="offline", checked_at=utcnow(), detail=exc.message)
    return SourceStatusModel(key=key, status="online", latency_ms=latency, checked_at=utcnow())


@router.post("/{key}/list", response_model=ResolveListResponse)
def resolve_source_list(
    key: str,
    request: ResolveListRequest,
    randomize: bool = False,
    app_state: AppState = Depends(get_app_state),
) -> ResolveListResponse:
    """Collect movie slugs from the listing pages ``page_from..page_to``."""

    _require_source(key, app_state.settings)
    with open_adapter(app_state.settings, key, transport=app_state.source_transport) as adapter:
        slugs = resolve_list(adapter, request.page_from, request.page_to)
    if randomize:
        slugs = shuffle(slugs)
    return ResolveListResponse(
        source=key,
        page_from=request.page_from,
        page_to=request.page_to,
        slugs=slugs,
        count=len(slugs),
    )
