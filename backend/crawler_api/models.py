"""Database models for the catalog and the crawl ledger."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite hands back."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid4().hex


class IngestConfigRecord(SQLModel, table=True):
    """Persisted runtime defaults for crawl runs."""

    __tablename__ = "ingest_config"

    id: int | None = Field(default=None, primary_key=True)
    active_source: str = Field(default="phimapi")
    wait_min_ms: int = Field(default=1000)
    wait_max_ms: int = Field(default=3000)
    image_proxy_url: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class MovieRecord(SQLModel, table=True):
    """Catalog movie keyed by its slug."""

    __tablename__ = "movies"

    id: str = Field(default_factory=new_id, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str = Field(index=True)
    origin_name: str = Field(default="")
    content: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    type: str = Field(default="series", index=True)
    status: str = Field(default="ongoing")
    poster_url: str = Field(default="")
    thumb_url: str = Field(default="")
    trailer_url: str = Field(default="")
    time: str = Field(default="")
    episode_current: str = Field(default="")
    episode_total: str = Field(default="")
    quality: str = Field(default="")
    lang: str = Field(default="")
    year: int | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class GenreRecord(SQLModel, table=True):
    __tablename__ = "genres"

    id: str = Field(default_factory=new_id, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class CountryRecord(SQLModel, table=True):
    __tablename__ = "countries"

    id: str = Field(default_factory=new_id, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class ActorRecord(SQLModel, table=True):
    __tablename__ = "actors"

    id: str = Field(default_factory=new_id, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class DirectorRecord(SQLModel, table=True):
    __tablename__ = "directors"

    id: str = Field(default_factory=new_id, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class MovieCategoryRecord(SQLModel, table=True):
    __tablename__ = "movie_categories"

    id: str = Field(default_factory=new_id, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class YearRecord(SQLModel, table=True):
    """Year dimension keyed by the year value itself."""

    __tablename__ = "years"

    year: int = Field(primary_key=True)


class MovieGenreLink(SQLModel, table=True):
    __tablename__ = "movie_genres"
    __table_args__ = (UniqueConstraint("movie_id", "genre_id"),)

    id: int | None = Field(default=None, primary_key=True)
    movie_id: str = Field(foreign_key="movies.id", index=True)
    genre_id: str = Field(foreign_key="genres.id", index=True)


class MovieCountryLink(SQLModel, table=True):
    __tablename__ = "movie_countries"
    __table_args__ = (UniqueConstraint("movie_id", "country_id"),)

    id: int | None = Field(default=None, primary_key=True)
    movie_id: str = Field(foreign_key="movies.id", index=True)
    country_id: str = Field(foreign_key="countries.id", index=True)


class MovieActorLink(SQLModel, table=True):
    __tablename__ = "movie_actors"
    __table_args__ = (UniqueConstraint("movie_id", "actor_id"),)

    id: int | None = Field(default=None, primary_key=True)
    movie_id: str = Field(foreign_key="movies.id", index=True)
    actor_id: str = Field(foreign_key="actors.id", index=True)


class MovieDirectorLink(SQLModel, table=True):
    __tablename__ = "movie_directors"
    __table_args__ = (UniqueConstraint("movie_id", "director_id"),)

    id: int | None = Field(default=None, primary_key=True)
    movie_id: str = Field(foreign_key="movies.id", index=True)
    director_id: str = Field(foreign_key="directors.id", index=True)


class MovieCategoryLink(SQLModel, table=True):
    __tablename__ = "movie_category_map"
    __table_args__ = (UniqueConstraint("movie_id", "category_id"),)

    id: int | None = Field(default=None, primary_key=True)
    movie_id: str = Field(foreign_key="movies.id", index=True)
    category_id: str = Field(foreign_key="movie_categories.id", index=True)


class EpisodeRecord(SQLModel, table=True):
    """Playable episode; unique per movie, tagged server name and slug."""

    __tablename__ = "episodes"
    __table_args__ = (UniqueConstraint("movie_id", "server_name", "slug"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    movie_id: str = Field(foreign_key="movies.id", index=True)
    server_name: str = Field(index=True)
    name: str
    slug: str
    filename: str | None = Field(default=None)
    link_embed: str | None = Field(default=None)
    link_m3u8: str | None = Field(default=None)
    link_mp4: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class CrawlLogRecord(SQLModel, table=True):
    """Run ledger row: one per crawl run."""

    __tablename__ = "crawl_logs"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    type: str
    source: str = Field(default="phimapi", index=True)
    status: str = Field(default="queued", index=True)
    movies_added: int = Field(default=0)
    movies_updated: int = Field(default=0)
    movies_skipped: int = Field(default=0)
    movies_failed: int = Field(default=0)
    processed: int = Field(default=0)
    total: int = Field(default=0)
    progress: float = Field(default=0.0)
    duration: str | None = Field(default=None)
    message: str | None = Field(default=None)
    cancel_requested: bool = Field(default=False)
    worker_id: str | None = Field(default=None)
    payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    started_at: datetime | None = Field(default=None, index=True)
    finished_at: datetime | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class CrawlLogEventRecord(SQLModel, table=True):
    """Structured event attached to a crawl run, including per-item results."""

    __tablename__ = "crawl_log_events"

    id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    level: str = Field(default="info", index=True)
    message: str
    item_status: str | None = Field(default=None, index=True)
    context: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    created_at: datetime = Field(default_factory=utcnow, index=True)
