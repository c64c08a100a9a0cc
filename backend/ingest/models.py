"""Canonical movie representation produced by every source adapter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MOVIE_TYPES = ("single", "series", "hoathinh", "tvshows")
MOVIE_STATUSES = ("ongoing", "completed")

# Category rows created from the inferred movie type.
TYPE_CATEGORIES: dict[str, tuple[str, str]] = {
    "single": ("Phim lẻ", "phim-le"),
    "series": ("Phim bộ", "phim-bo"),
    "hoathinh": ("Phim hoạt hình", "phim-hoat-hinh"),
    "tvshows": ("TV Shows", "tv-shows"),
}


@dataclass(slots=True)
class Term:
    """Genre or country reference as reported by a source."""

    name: str
    slug: str


@dataclass(slots=True)
class EpisodeData:
    name: str
    slug: str
    filename: str = ""
    link_embed: str = ""
    link_m3u8: str = ""
    link_mp4: str = ""

    @property
    def has_links(self) -> bool:
        return bool(self.link_embed or self.link_m3u8 or self.link_mp4)


@dataclass(slots=True)
class ServerGroup:
    """One upstream server label and the episodes it streams."""

    server_name: str
    episodes: list[EpisodeData] = field(default_factory=list)


@dataclass(slots=True)
class MovieSummary:
    slug: str
    name: str
    origin_name: str = ""
    year: int | None = None
    poster_url: str = ""
    thumb_url: str = ""
    modified: str = ""


@dataclass(slots=True)
class Pagination:
    total_items: int = 0
    items_per_page: int = 0
    current_page: int = 0
    total_pages: int = 0


@dataclass(slots=True)
class ListPage:
    items: list[MovieSummary]
    pagination: Pagination


@dataclass(slots=True)
class MovieDetail:
    """Normalized movie detail, free of upstream nulls."""

    slug: str
    name: str
    origin_name: str = ""
    content: str = ""
    type: str = "series"
    status: str = "ongoing"
    poster_url: str = ""
    thumb_url: str = ""
    trailer_url: str = ""
    time: str = ""
    episode_current: str = ""
    episode_total: str = ""
    quality: str = ""
    lang: str = ""
    year: int | None = None
    genres: list[Term] = field(default_factory=list)
    countries: list[Term] = field(default_factory=list)
    actors: list[str] = field(default_factory=list)
    directors: list[str] = field(default_factory=list)

    def to_row(self) -> dict[str, Any]:
        """Return the informational columns written on first insert."""

        return {
            "slug": self.slug,
            "name": self.name,
            "origin_name": self.origin_name,
            "content": self.content,
            "type": self.type,
            "status": self.status,
            "poster_url": self.poster_url,
            "thumb_url": self.thumb_url,
            "trailer_url": self.trailer_url,
            "time": self.time,
            "episode_current": self.episode_current,
            "episode_total": self.episode_total,
            "quality": self.quality,
            "lang": self.lang,
            "year": self.year,
        }
