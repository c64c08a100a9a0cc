"""Application factory for the Catalog Ingest API."""
import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.ingest.errors import FetchError, InvalidInputError

from .routers import catalog, config, health, runs, sources
from .settings import IngestSettings
from .state import AppState


def create_app(
    settings: IngestSettings | None = None,
    *,
    source_transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application."""

    resolved_settings = settings or IngestSettings()
    app_state = AppState(settings=resolved_settings, source_transport=source_transport)

    app = FastAPI(title="Catalog Ingest API", version="0.1.0")
    app.state.app_state = app_state
    app.state.settings = app_state.settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidInputError)
    async def _invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.message})

    @app.exception_handler(FetchError)
    async def _upstream_failure(request: Request, exc: FetchError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": exc.message})

    for router in (
        health.router,
        config.router,
        sources.router,
        runs.router,
        catalog.router,
    ):
        app.include_router(router)

    return app
