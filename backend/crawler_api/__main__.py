"""CLI entry point for launching the ingest API with Uvicorn."""
import logging

import uvicorn

from .app import create_app
from .settings import IngestSettings


def main() -> None:
    """Start a development server for the ingest API."""

    settings = IngestSettings()
    logging.basicConfig(level=settings.log_level.upper())
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
