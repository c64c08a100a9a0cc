"""Runtime configuration for the catalog ingest service."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils.paths import default_database_url


class IngestSettings(BaseSettings):
    """Environment-aware settings for the ingest API and worker."""

    database_url: str = Field(
        default_factory=default_database_url,
        description="Connection URL for the catalog database.",
    )
    database_echo: bool = Field(
        default=False, description="Enable SQL echo for debugging queries."
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Connection URL for the Redis-backed run queue.",
    )
    redis_queue_name: str = Field(
        default="catalog-ingest",
        description="RQ queue name used for crawl runs.",
    )
    queue_worker_name: str = Field(
        default="ingest-worker",
        description="Identifier used when reporting run worker executions.",
    )
    default_source: str = Field(
        default="phimapi", description="Source key used when a run does not name one."
    )
    phimapi_base_url: str = Field(default="https://phimapi.com")
    nguonc_base_url: str = Field(default="https://phim.nguonc.com")
    image_cdn_base_url: str = Field(
        default="https://phimimg.com",
        description="Host used to resolve relative poster and thumbnail paths.",
    )
    image_proxy_url: str | None = Field(
        default=None,
        description="Optional resizing proxy consulted for poster and thumbnail rewrites.",
    )
    http_timeout: float = Field(
        default=20.0, gt=0, description="Timeout in seconds for each upstream request."
    )
    default_wait_min_ms: int = Field(default=1000, ge=0)
    default_wait_max_ms: int = Field(default=3000, ge=0)
    episode_chunk_size: int = Field(
        default=100, ge=1, description="Rows per episode insert batch."
    )
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_INGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
    )
