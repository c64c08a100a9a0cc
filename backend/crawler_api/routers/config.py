"""Configuration endpoints."""
from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_config_store, get_settings
from ..schemas import ConfigModel, ConfigUpdate
from ..services.runner import source_configs
from ..settings import IngestSettings
from ..stores.config_store import ConfigStore

router = APIRouter(prefix="/config", tags=["config"])


@router.get("", response_model=ConfigModel)
def read_config(store: ConfigStore = Depends(get_config_store)) -> ConfigModel:
    """Return the current configuration."""
    return store.read()


@router.put("", response_model=ConfigModel)
def update_config(
    update: ConfigUpdate,
    store: ConfigStore = Depends(get_config_store),
    settings: IngestSettings = Depends(get_settings),
) -> ConfigModel:
    """Update and return the configuration."""

    payload = update.model_copy()
    if payload.active_source is not None:
        payload.active_source = payload.active_source.strip()
        if payload.active_source not in source_configs(settings):
            raise HTTPException(status_code=422, detail=f"Unknown source: {payload.active_source}")
    if "image_proxy_url" in update.model_fields_set and payload.image_proxy_url is not None:
        payload.image_proxy_url = payload.image_proxy_url.strip() or None

    current = store.read()
    wait_min = payload.wait_min_ms if payload.wait_min_ms is not None else current.wait_min_ms
    wait_max = payload.wait_max_ms if payload.wait_max_ms is not None else current.wait_max_ms
    if wait_min > wait_max:
        raise HTTPException(status_code=422, detail="wait_min_ms must not exceed wait_max_ms")

    return store.update(payload)
