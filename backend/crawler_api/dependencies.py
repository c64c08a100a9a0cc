"""FastAPI dependencies for the ingest API."""
from fastapi import Depends, Request

from .services.queue import RunQueueService
from .settings import IngestSettings
from .state import AppState
from .stores.catalog_store import CatalogStore
from .stores.config_store import ConfigStore
from .stores.run_event_store import RunEventStore
from .stores.run_store import RunStore


def get_app_state(request: Request) -> AppState:
    """Resolve the shared application state from the FastAPI request."""
    return request.app.state.app_state


def get_settings(app_state: AppState = Depends(get_app_state)) -> IngestSettings:
    return app_state.settings


def get_config_store(app_state: AppState = Depends(get_app_state)) -> ConfigStore:
    """Return the configuration store dependency."""
    return app_state.config_store


def get_catalog_store(app_state: AppState = Depends(get_app_state)) -> CatalogStore:
    return app_state.catalog_store


def get_run_store(app_state: AppState = Depends(get_app_state)) -> RunStore:
    return app_state.run_store


def get_run_event_store(app_state: AppState = Depends(get_app_state)) -> RunEventStore:
    return app_state.run_event_store


def get_run_queue(app_state: AppState = Depends(get_app_state)) -> RunQueueService:
    """Return the Redis-backed run queue."""
    return app_state.run_queue
