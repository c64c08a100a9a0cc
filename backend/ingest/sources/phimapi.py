"""
PhimAPI (KKPhim) adapter.

Listing:  GET /danh-sach/phim-moi-cap-nhat?page=N
Detail:   GET /phim/{slug}
"""
from __future__ import annotations

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


class PhimApiAdapter(SourceAdapter):
    def parse_list(self, payload: dict[str, Any]) -> ListPage:
        # v1 responses nest the listing under "data".
        body = as_dict(payload.get("data")) if "data" in payload else payload
        items: list[MovieSummary] = []
        for raw in as_list(body.get("items")):
            entry = as_dict(raw)
            slug = text(entry.get("slug"))
            if not slug:
                continue
            items.append(
                MovieSummary(
                    slug=slug,
                    name=text(entry.get("name")),
                    origin_name=text(entry.get("origin_name")),
                    year=to_int(entry.get("year")),
                    poster_url=absolute_image_url(text(entry.get("poster_url")), self.config.image_base),
                    thumb_url=absolute_image_url(text(entry.get("thumb_url")), self.config.image_base),
                    modified=text(as_dict(entry.get("modified")).get("time")),
                )
            )

        raw_pagination = as_dict(body.get("pagination") or as_dict(body.get("params")).get("pagination"))
        pagination = Pagination(
            total_items=to_int(raw_pagination.get("totalItems")) or 0,
            items_per_page=to_int(raw_pagination.get("totalItemsPerPage")) or 0,
            current_page=to_int(raw_pagination.get("currentPage")) or 0,
            total_pages=to_int(raw_pagination.get("totalPages")) or 0,
        )
        return ListPage(items=items, pagination=pagination)

    def parse_detail(self, slug: str, payload: dict[str, Any]) -> tuple[MovieDetail, list[ServerGroup]]:
        movie = as_dict(payload.get("movie"))
        if payload.get("status") is False or not movie:
            raise NotFoundError(f"Movie not found: {slug}", url=self.detail_url(slug))

        episode_current = text(movie.get("episode_current"))
        detail = MovieDetail(
            slug=text(movie.get("slug")) or slug,
            name=text(movie.get("name")) or slug,
            origin_name=text(movie.get("origin_name")),
            content=text(movie.get("content")),
            type=infer_movie_type(text(movie.get("type"))),
            status=infer_status(text(movie.get("status")) or episode_current),
            poster_url=absolute_image_url(text(movie.get("poster_url")), self.config.image_base),
            thumb_url=absolute_image_url(text(movie.get("thumb_url")), self.config.image_base),
            trailer_url=text(movie.get("trailer_url")),
            time=text(movie.get("time")),
            episode_current=episode_current,
            episode_total=text(movie.get("episode_total")),
            quality=text(movie.get("quality")),
            lang=text(movie.get("lang")),
            year=to_int(movie.get("year")),
            genres=_terms(movie.get("category")),
            countries=_terms(movie.get("country")),
            actors=split_names(movie.get("actor")),
            directors=split_names(movie.get("director")),
        )

        # Older payloads embed the server list inside the movie object.
        raw_servers = payload.get("episodes") if "episodes" in payload else movie.get("episodes")
        groups: list[ServerGroup] = []
        for raw_server in as_list(raw_servers):
            server = as_dict(raw_server)
            episodes = []
            for raw_episode in as_list(server.get("server_data")):
                item = as_dict(raw_episode)
                episode = EpisodeData(
                    name=text(item.get("name")),
                    slug=text(item.get("slug")) or slugify(text(item.get("name"))),
                    filename=text(item.get("filename")),
                    link_embed=text(item.get("link_embed")),
                    link_m3u8=text(item.get("link_m3u8")),
                    link_mp4=text(item.get("link_mp4")),
                )
                if episode.slug and episode.has_links:
                    episodes.append(episode)
            groups.append(ServerGroup(server_name=text(server.get("server_name")) or "Default", episodes=episodes))
        return detail, groups


def _terms(value: Any) -> list[Term]:
    terms: list[Term] = []
    for raw in as_list(value):
        entry = as_dict(raw)
        name = text(entry.get("name"))
        if not name:
            continue
        terms.append(Term(name=name, slug=text(entry.get("slug")) or slugify(name)))
    return terms
