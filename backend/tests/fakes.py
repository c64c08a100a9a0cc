"""In-memory stand-ins for upstream movie APIs and the catalog gateway."""
from __future__ import annotations

import itertools
import json
from typing import Any
from urllib.parse import urlparse

import httpx

from backend.ingest.errors import PersistenceError


def phimapi_movie(
    slug: str,
    *,
    name: str | None = None,
    movie_type: str = "series",
    year: int | None = 2024,
    genres: list[tuple[str, str]] | None = None,
    countries: list[tuple[str, str]] | None = None,
    actors: list[str] | None = None,
    directors: list[str] | None = None,
    servers: dict[str, int] | None = None,
) -> dict[str, Any]:
    """Build a PhimAPI detail payload with ``servers`` mapping name -> episode count."""

    server_map = servers if servers is not None else {"Vietsub #1": 2}
    return {
        "status": True,
        "msg": "",
        "movie": {
            "slug": slug,
            "name": name or slug.replace("-", " ").title(),
            "origin_name": f"{slug} origin",
            "content": "<p>Plot</p>",
            "type": movie_type,
            "status": "ongoing",
            "poster_url": f"https://phimimg.com/upload/{slug}-poster.jpg",
            "thumb_url": f"/upload/{slug}-thumb.jpg",
            "trailer_url": "",
            "time": "45 phút/tập",
            "episode_current": "Tập 2",
            "episode_total": "12",
            "quality": "FHD",
            "lang": "Vietsub",
            "year": year,
            "category": [{"name": genre, "slug": genre_slug} for genre, genre_slug in (genres or [("Hành Động", "hanh-dong")])],
            "country": [
                {"name": country, "slug": country_slug}
                for country, country_slug in (countries or [("Hàn Quốc", "han-quoc")])
            ],
            "actor": actors if actors is not None else ["Lee Min-ho", "Kim Go-eun"],
            "director": directors if directors is not None else ["Kim Eun-sook"],
        },
        "episodes": [
            {
                "server_name": server_name,
                "server_data": [
                    {
                        "name": f"Tập {index:02d}",
                        "slug": f"tap-{index:02d}",
                        "filename": f"{slug} - Tập {index:02d}",
                        "link_embed": f"https://player.example/{slug}/{index}",
                        "link_m3u8": f"https://stream.example/{slug}/{index}/index.m3u8",
                    }
                    for index in range(1, count + 1)
                ],
            }
            for server_name, count in server_map.items()
        ],
    }


def nguonc_movie(
    slug: str,
    *,
    name: str = "Phim NguonC",
    format_label: str = "Phim bộ",
    year: str = "2023",
    servers: dict[str, int] | None = None,
) -> dict[str, Any]:
    """Build a NguonC detail payload."""

    server_map = servers if servers is not None else {"Vietsub #1": 1}
    return {
        "status": "success",
        "movie": {
            "slug": slug,
            "name": name,
            "original_name": "Original Name",
            "description": "Mô tả",
            "poster_url": "https://phim.nguonc.com/public/images/poster.jpg",
            "thumb_url": "https://phim.nguonc.com/public/images/thumb.jpg",
            "time": "60 phút",
            "current_episode": "Hoàn tất (16/16)",
            "total_episodes": 16,
            "quality": "HD",
            "language": "Vietsub",
            "director": "Đạo Diễn A",
            "casts": "Diễn Viên A, Diễn Viên B",
            "category": {
                "1": {"group": {"id": "1", "name": "Định dạng"}, "list": [{"id": "a", "name": format_label}]},
                "2": {"group": {"id": "2", "name": "Thể loại"}, "list": [{"id": "b", "name": "Tình Cảm"}]},
                "3": {"group": {"id": "3", "name": "Năm"}, "list": [{"id": "c", "name": year}]},
                "4": {"group": {"id": "4", "name": "Quốc gia"}, "list": [{"id": "d", "name": "Trung Quốc"}]},
            },
            "episodes": [
                {
                    "server_name": server_name,
                    "items": [
                        {
                            "name": str(index),
                            "slug": f"tap-{index}",
                            "embed": f"https://embed.example/{slug}/{index}",
                            "m3u8": f"https://m3u8.example/{slug}/{index}.m3u8",
                        }
                        for index in range(1, count + 1)
                    ],
                }
                for server_name, count in server_map.items()
            ],
        },
    }


class FakeUpstream:
    """Serve PhimAPI-shaped listing and detail routes from memory."""

    def __init__(
        self,
        movies: dict[str, dict[str, Any]] | None = None,
        *,
        pages: dict[int, list[str]] | None = None,
        failing: dict[str, int] | None = None,
        list_path: str = "/danh-sach/phim-moi-cap-nhat",
        detail_path: str = "/phim",
    ) -> None:
        self.movies = movies or {}
        self.pages = pages or {}
        self.failing = failing or {}
        self.list_path = list_path
        self.detail_path = detail_path
        self.requests: list[str] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = urlparse(str(request.url)).path
        self.requests.append(path)
        if path == self.list_path:
            page = int(request.url.params.get("page", "1"))
            slugs = self.pages.get(page, [])
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "items": [{"slug": slug, "name": slug, "year": 2024} for slug in slugs],
                    "pagination": {
                        "totalItems": sum(len(items) for items in self.pages.values()),
                        "totalItemsPerPage": len(slugs),
                        "currentPage": page,
                        "totalPages": len(self.pages),
                    },
                },
            )
        prefix = f"{self.detail_path}/"
        if path.startswith(prefix):
            slug = path[len(prefix):]
            if slug in self.failing:
                return httpx.Response(self.failing[slug], text="upstream failure")
            payload = self.movies.get(slug)
            if payload is None:
                return httpx.Response(200, content=json.dumps({"status": False, "msg": "not found", "movie": None}))
            return httpx.Response(200, json=payload)
        return httpx.Response(404, json={"detail": "no route"})


class MemoryCatalog:
    """In-memory catalog gateway that records every write call."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.movies: dict[str, dict[str, Any]] = {}
        self.entities: dict[str, dict[str, dict[str, Any]]] = {}
        self.years: set[int] = set()
        self.links: dict[str, set[tuple[str, str]]] = {}
        self.episodes: list[dict[str, Any]] = []
        self.batch_calls: list[int] = []
        self.fail_on_insert: set[str] = set()

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def find_movie_by_slug(self, slug: str) -> str | None:
        movie = self.movies.get(slug)
        return movie["id"] if movie else None

    def insert_movie(self, fields: dict[str, Any]) -> str:
        if fields["slug"] in self.fail_on_insert:
            raise PersistenceError(f"Failed to insert movie: {fields['slug']}")
        movie_id = self._next_id("movie")
        self.movies[fields["slug"]] = {**fields, "id": movie_id}
        return movie_id

    def upsert_by_slug(self, table: str, slug: str, fields: dict[str, Any]) -> str:
        rows = self.entities.setdefault(table, {})
        if slug not in rows:
            rows[slug] = {"id": self._next_id(table), "slug": slug, **fields}
        return rows[slug]["id"]

    def upsert_year(self, year: int) -> int:
        self.years.add(year)
        return year

    def upsert_association(self, join_table: str, movie_id: str, entity_id: str) -> None:
        self.links.setdefault(join_table, set()).add((movie_id, entity_id))

    def list_existing_episode_keys(self, movie_id: str) -> set[tuple[str, str]]:
        return {(row["server_name"], row["slug"]) for row in self.episodes if row["movie_id"] == movie_id}

    def insert_episodes_batch(self, rows: list[dict[str, Any]], chunk_size: int = 100) -> list[int]:
        batches = []
        for start in range(0, len(rows), chunk_size):
            chunk = rows[start : start + chunk_size]
            self.episodes.extend(dict(row) for row in chunk)
            self.batch_calls.append(len(chunk))
            batches.append(len(chunk))
        return batches

    def names(self, table: str) -> set[str]:
        return {row["name"] for row in self.entities.get(table, {}).values()}


class MemoryLedger:
    """Run ledger that keeps every call in memory."""

    def __init__(self, *, cancel_after: int | None = None) -> None:
        self.started: list[tuple[str, int]] = []
        self.items: list[Any] = []
        self.progress: list[tuple[int, int]] = []
        self.finished: list[Any] = []
        self.failures: list[str] = []
        self.cancel_after = cancel_after
        self.fail_start = False
        self.fail_finish = False

    def start(self, run_type: str, *, total: int) -> str:
        if self.fail_start:
            raise PersistenceError("ledger offline at start")
        self.started.append((run_type, total))
        return "run-1"

    def record_item(self, run_id: str, result: Any) -> None:
        self.items.append(result)

    def update_progress(self, run_id: str, summary: Any, *, processed: int, total: int) -> None:
        self.progress.append((processed, total))

    def finish(self, run_id: str, summary: Any) -> None:
        if self.fail_finish:
            raise PersistenceError("ledger offline")
        self.finished.append(summary)

    def fail(self, run_id: str, message: str) -> None:
        self.failures.append(message)

    def is_cancel_requested(self, run_id: str) -> bool:
        return self.cancel_after is not None and len(self.items) >= self.cancel_after
