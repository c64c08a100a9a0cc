"""
Movie ingestion engine for the catalog service.

The package holds the canonical movie model, the upstream source adapters and
the crawl orchestrator that writes normalized results through a catalog
gateway.
"""

__all__ = [
    "errors",
    "filters",
    "gateway",
    "images",
    "models",
    "orchestrator",
    "reconciler",
    "slugify",
    "sources",
]
