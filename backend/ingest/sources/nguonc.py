"""
NguonC adapter.

Listing:  GET /api/films/phim-moi-cap-nhat?page=N
Detail:   GET /api/film/{slug}

Format, genre, year and country arrive as labelled groups inside a single
``category`` mapping; cast and directors are comma-separated strings.
"""
from __future__ import annotations

import unicodedata
from typing import Any

from ..errors import NotFoundError
from ..models import EpisodeData, ListPage, MovieDetail, MovieSummary, Pagination, ServerGroup, Term
from ..slugify import slugify
from .base import (
    SourceAdapter,
    absolute_image_url,
    as_dict,
    as_list,
    infer_movie_type,
    infer_status,
    split_names,
    text,
    to_int,
)

FORMAT_GROUP = "định dạng"
GENRE_GROUP = "thể loại"
YEAR_GROUP = "năm"
COUNTRY_GROUP = "quốc gia"


class NguonCAdapter(SourceAdapter):
    def parse_list(self, payload: dict[str, Any]) -> ListPage:
        items: list[MovieSummary] = []
        for raw in as_list(payload.get("items")):
            entry = as_dict(raw)
            slug = text(entry.get("slug"))
            if not slug:
                continue
            items.append(
                MovieSummary(
                    slug=slug,
                    name=text(entry.get("name")),
                    origin_name=text(entry.get("original_name")),
                    poster_url=absolute_image_url(text(entry.get("poster_url")), self.config.image_base),
                    thumb_url=absolute_image_url(text(entry.get("thumb_url")), self.config.image_base),
                    modified=text(entry.get("modified")),
                )
            )

        paginate = as_dict(payload.get("paginate"))
        pagination = Pagination(
            total_items=to_int(paginate.get("total_items")) or 0,
            items_per_page=to_int(paginate.get("items_per_page")) or 0,
            current_page=to_int(paginate.get("current_page")) or 0,
            total_pages=to_int(paginate.get("total_page")) or 0,
        )
        return ListPage(items=items, pagination=pagination)

    def parse_detail(self, slug: str, payload: dict[str, Any]) -> tuple[MovieDetail, list[ServerGroup]]:
        movie = as_dict(payload.get("movie"))
        if text(payload.get("status")).lower() not in ("", "success") or not movie:
            raise NotFoundError(f"Movie not found: {slug}", url=self.detail_url(slug))

        groups = _category_groups(movie.get("category"))
        format_label = " ".join(term.name for term in groups.get(FORMAT_GROUP, []))
        year_terms = groups.get(YEAR_GROUP, [])
        current_episode = text(movie.get("current_episode"))
        total_episodes = movie.get("total_episodes")

        detail = MovieDetail(
            slug=text(movie.get("slug")) or slug,
            name=text(movie.get("name")) or slug,
            origin_name=text(movie.get("original_name")),
            content=text(movie.get("description")),
            type=infer_movie_type(format_label),
            status=infer_status(current_episode),
            poster_url=absolute_image_url(text(movie.get("poster_url")), self.config.image_base),
            thumb_url=absolute_image_url(text(movie.get("thumb_url")), self.config.image_base),
            time=text(movie.get("time")),
            episode_current=current_episode,
            episode_total=text(total_episodes),
            quality=text(movie.get("quality")),
            lang=text(movie.get("language")),
            year=to_int(year_terms[0].name) if year_terms else None,
            genres=groups.get(GENRE_GROUP, []),
            countries=groups.get(COUNTRY_GROUP, []),
            actors=split_names(movie.get("casts")),
            directors=split_names(movie.get("director")),
        )

        servers: list[ServerGroup] = []
        for raw_server in as_list(movie.get("episodes") or payload.get("episodes")):
            server = as_dict(raw_server)
            raw_items = server.get("items") if "items" in server else server.get("server_data")
            episodes = []
            for raw_episode in as_list(raw_items):
                item = as_dict(raw_episode)
                name = text(item.get("name"))
                episode = EpisodeData(
                    name=name,
                    slug=text(item.get("slug")) or slugify(name),
                    filename=text(item.get("filename")),
                    link_embed=text(item.get("embed")),
                    link_m3u8=text(item.get("m3u8")),
                )
                if episode.slug and episode.has_links:
                    episodes.append(episode)
            servers.append(ServerGroup(server_name=text(server.get("server_name")) or "Default", episodes=episodes))
        return detail, servers


def _category_groups(value: Any) -> dict[str, list[Term]]:
    """Flatten the numbered category mapping into lowercase group names."""

    entries = value.values() if isinstance(value, dict) else as_list(value)
    groups: dict[str, list[Term]] = {}
    for raw in entries:
        entry = as_dict(raw)
        group_name = unicodedata.normalize("NFC", text(as_dict(entry.get("group")).get("name"))).lower()
        if not group_name:
            continue
        terms = groups.setdefault(group_name, [])
        for raw_term in as_list(entry.get("list")):
            name = text(as_dict(raw_term).get("name"))
            if name:
                terms.append(Term(name=name, slug=slugify(name)))
    return groups
