"""Pydantic models exposed by the ingest API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

MovieType = Literal["single", "series", "hoathinh", "tvshows"]
RunStatus = Literal["queued", "running", "success", "error", "cancelled"]
ItemStatus = Literal["success", "error", "skipped"]

RUN_STATUSES = ("queued", "running", "success", "error", "cancelled")
TERMINAL_RUN_STATUSES = ("success", "error", "cancelled")


class QueueHealthStatus(BaseModel):
    """Represents Redis queue connectivity status."""

    status: Literal["ok", "error"] = Field(default="ok")
    detail: str | None = Field(
        default=None, description="Optional diagnostic message when the queue is unavailable."
    )


class HealthStatus(BaseModel):
    """Service health payload."""

    status: Literal["ok"] = Field(default="ok")
    version: str = Field(default="0.1.0", description="Semantic version of the API service.")
    queue: QueueHealthStatus = Field(
        default_factory=QueueHealthStatus,
        description="Health information for the background run queue.",
    )


class ConfigModel(BaseModel):
    """Persisted runtime defaults applied to new runs."""

    active_source: str = Field(..., description="Source key used when a run does not name one.")
    wait_min_ms: int = Field(..., ge=0, description="Lower bound of the inter-item delay.")
    wait_max_ms: int = Field(..., ge=0, description="Upper bound of the inter-item delay.")
    image_proxy_url: str | None = Field(
        default=None, description="Resizing proxy used for poster/thumbnail rewrites."
    )


class ConfigUpdate(BaseModel):
    """Subset of configuration fields allowed to be updated at runtime."""

    active_source: str | None = Field(default=None)
    wait_min_ms: int | None = Field(default=None, ge=0)
    wait_max_ms: int | None = Field(default=None, ge=0)
    image_proxy_url: str | None = Field(default=None)


class SourceModel(BaseModel):
    """Configured upstream movie-list API."""

    key: str
    label: str
    base_url: str
    list_path: str
    detail_path: str
    tag: str = Field(description="Prefix applied to server names of episodes from this source.")
    active: bool = Field(default=False)


class SourceStatusModel(BaseModel):
    key: str
    status: Literal["online", "offline"]
    latency_ms: float = Field(default=0.0)
    checked_at: datetime
    detail: str | None = None


class ResolveListRequest(BaseModel):
    page_from: int = Field(default=1, ge=1)
    page_to: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_range(self) -> "ResolveListRequest":
        if self.page_to < self.page_from:
            raise ValueError("page_to must be greater than or equal to page_from")
        return self


class ResolveListResponse(BaseModel):
    source: str
    page_from: int
    page_to: int
    slugs: list[str]
    count: int


class ShuffleRequest(BaseModel):
    work_list: list[str] = Field(default_factory=list)


class ShuffleResponse(BaseModel):
    work_list: list[str]


class ImageOptionsModel(BaseModel):
    resize_thumb: bool = False
    thumb_width: int = Field(default=0, ge=0)
    thumb_height: int = Field(default=0, ge=0)
    resize_poster: bool = False
    poster_width: int = Field(default=0, ge=0)
    poster_height: int = Field(default=0, ge=0)
    save_as_webp: bool = False


class RunOptionsModel(BaseModel):
    """Per-run options; unset fields fall back to the persisted configuration."""

    source: str | None = Field(default=None, description="Source key; defaults to the active source.")
    skip_formats: list[MovieType] = Field(default_factory=list)
    skip_genres: list[str] = Field(default_factory=list)
    skip_countries: list[str] = Field(default_factory=list)
    wait_min_ms: int | None = Field(default=None, ge=0)
    wait_max_ms: int | None = Field(default=None, ge=0)
    images: ImageOptionsModel = Field(default_factory=ImageOptionsModel)


class RunRequest(RunOptionsModel):
    """Payload used to start a crawl run."""

    work_list: list[str] = Field(
        default_factory=list,
        description="Slugs or detail URLs, in processing order.",
    )
    work_text: str | None = Field(
        default=None,
        description="Alternative newline-delimited work list; appended after work_list.",
    )
    inline: bool = Field(
        default=False,
        description="Execute the run inside the request instead of queueing it.",
    )


class RunModel(BaseModel):
    """Run ledger entry."""

    id: str
    type: str
    source: str
    status: RunStatus
    movies_added: int = 0
    movies_updated: int = 0
    movies_skipped: int = 0
    movies_failed: int = 0
    processed: int = 0
    total: int = 0
    progress: float = Field(default=0.0, ge=0, le=1)
    duration: str | None = None
    message: str | None = None
    cancel_requested: bool = False
    worker_id: str | None = None
    payload: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_seconds: float | None = Field(
        default=None,
        description="Execution duration calculated from started and finished timestamps.",
    )


class RunItemModel(BaseModel):
    """Per-item outcome recorded during a run."""

    url: str
    status: ItemStatus
    timestamp: str
    movie_id: str | None = None
    name: str | None = None
    origin_name: str | None = None
    year: int | None = None
    message: str | None = None
    created: bool = False
    episodes_added: int = 0


class RunResultModel(BaseModel):
    """Run ledger entry plus the itemized results of an inline run."""

    run: RunModel
    added: int
    updated: int
    successes: list[RunItemModel] = Field(default_factory=list)
    skipped: list[RunItemModel] = Field(default_factory=list)
    errors: list[RunItemModel] = Field(default_factory=list)
    duration: str


class RunCancelRequest(BaseModel):
    reason: str | None = Field(
        default=None, description="Optional reason recorded with the cancellation."
    )


class RunLogCreate(BaseModel):
    """Payload used to append a new run event."""

    level: Literal["debug", "info", "warning", "error"] = Field(
        default="info", description="Severity level of the log entry."
    )
    message: str = Field(..., description="Human-readable log message.")
    item_status: ItemStatus | None = Field(default=None)
    context: dict[str, Any] | None = Field(
        default=None,
        description="Optional structured context payload for the log entry.",
    )


class RunLogModel(RunLogCreate):
    id: int
    run_id: str
    created_at: datetime


class RunMetricsModel(BaseModel):
    """Aggregate statistics over the run ledger."""

    total: int
    status_counts: dict[str, int] = Field(default_factory=dict)
    source_counts: dict[str, int] = Field(default_factory=dict)
    movies_added: int = 0
    movies_updated: int = 0
    movies_failed: int = 0
    average_duration_seconds: float | None = None
    last_finished_at: datetime | None = None
    queue_depth: int = Field(
        default=0,
        description="Number of runs currently waiting in the Redis queue.",
    )


class TermModel(BaseModel):
    id: str
    name: str
    slug: str


class EpisodeModel(BaseModel):
    name: str
    slug: str
    filename: str | None = None
    link_embed: str | None = None
    link_m3u8: str | None = None
    link_mp4: str | None = None


class ServerModel(BaseModel):
    server_name: str
    episodes: list[EpisodeModel] = Field(default_factory=list)


class MovieModel(BaseModel):
    id: str
    slug: str
    name: str
    origin_name: str = ""
    type: str
    status: str
    year: int | None = None
    quality: str = ""
    lang: str = ""
    time: str = ""
    episode_current: str = ""
    episode_total: str = ""
    poster_url: str = ""
    thumb_url: str = ""
    trailer_url: str = ""
    created_at: datetime
    updated_at: datetime


class MovieDetailModel(MovieModel):
    content: str = ""
    genres: list[TermModel] = Field(default_factory=list)
    countries: list[TermModel] = Field(default_factory=list)
    categories: list[TermModel] = Field(default_factory=list)
    actors: list[TermModel] = Field(default_factory=list)
    directors: list[TermModel] = Field(default_factory=list)
    servers: list[ServerModel] = Field(default_factory=list)


class MovieListModel(BaseModel):
    items: list[MovieModel]
    total: int
    page: int
    page_size: int


class CatalogMetricsModel(BaseModel):
    movies: int
    episodes: int
    genres: int
    countries: int
    actors: int
    directors: int
    type_counts: dict[str, int] = Field(default_factory=dict)
