"""Source adapter registry."""
from __future__ import annotations

import httpx

from ..errors import InvalidInputError
from .base import DEFAULT_TIMEOUT, SourceAdapter, SourceConfig
from .nguonc import NguonCAdapter
from .phimapi import PhimApiAdapter

ADAPTERS: dict[str, type[SourceAdapter]] = {
    "phimapi": PhimApiAdapter,
    "nguonc": NguonCAdapter,
}


def default_source_configs(
    *,
    phimapi_base_url: str = "https://phimapi.com",
    nguonc_base_url: str = "https://phim.nguonc.com",
    image_cdn_base_url: str = "https://phimimg.com",
) -> dict[str, SourceConfig]:
    """Return the built-in source definitions keyed by source key."""

    return {
        "phimapi": SourceConfig(
            key="phimapi",
            label="PhimAPI.com",
            base_url=phimapi_base_url,
            list_path="/danh-sach/phim-moi-cap-nhat",
            detail_path="/phim",
            tag="[PhimAPI]",
            image_base=image_cdn_base_url,
        ),
        "nguonc": SourceConfig(
            key="nguonc",
            label="NguonC.com",
            base_url=nguonc_base_url,
            list_path="/api/films/phim-moi-cap-nhat",
            detail_path="/api/film",
            tag="[NguonC]",
        ),
    }


def create_adapter(
    config: SourceConfig,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> SourceAdapter:
    """Instantiate the adapter registered for ``config.key``."""

    adapter_cls = ADAPTERS.get(config.key)
    if adapter_cls is None:
        raise InvalidInputError(f"Unknown source: {config.key}")
    return adapter_cls(config, timeout=timeout, transport=transport)


__all__ = [
    "ADAPTERS",
    "NguonCAdapter",
    "PhimApiAdapter",
    "SourceAdapter",
    "SourceConfig",
    "create_adapter",
    "default_source_configs",
]
