"""Router exports for the ingest API."""
from . import catalog, config, health, runs, sources

__all__ = ["catalog", "config", "health", "runs", "sources"]
