"""Shared HTTP plumbing and field coercion for source adapters."""
from __future__ import annotations

import logging
import time
import unicodedata
from dataclasses import dataclass
from typing import Any

import httpx

from ..errors import FetchError
from ..models import ListPage, MovieDetail, ServerGroup

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 20.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) "
    "Gecko/20100101 Firefox/121.0"
)

# Checked in order; the first matching keyword wins.
TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("single", ("lẻ", "single")),
    ("hoathinh", ("hoạt hình", "hoathinh")),
    ("tvshows", ("tv show", "tvshows")),
    ("series", ("bộ", "series")),
)
COMPLETED_MARKERS = ("completed", "full", "hoàn tất", "hoàn thành")


@dataclass(slots=True)
class SourceConfig:
    """Connection details for one upstream movie-list API."""

    key: str
    label: str
    base_url: str
    list_path: str
    detail_path: str
    tag: str
    image_base: str = ""


def text(value: Any, default: str = "") -> str:
    """Coerce an upstream scalar into a stripped string."""

    if value is None:
        return default
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def to_int(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        digits = value.strip()
        if digits.isdigit():
            return int(digits)
    return None


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def split_names(value: Any) -> list[str]:
    """Split a cast/director field given as a list or a comma string."""

    parts: list[str] = []
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, list):
        for entry in value:
            if isinstance(entry, str):
                parts.extend(entry.split(","))
            elif isinstance(entry, dict):
                parts.append(text(entry.get("name")))
    names: list[str] = []
    for part in parts:
        name = text(part)
        if name and name not in names:
            names.append(name)
    return names


def infer_movie_type(label: str) -> str:
    """Map a free-text format label onto the canonical movie type."""

    lowered = unicodedata.normalize("NFC", label or "").lower()
    for movie_type, keywords in TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return movie_type
    return "series"


def infer_status(progress: str) -> str:
    lowered = unicodedata.normalize("NFC", progress or "").lower()
    if any(marker in lowered for marker in COMPLETED_MARKERS):
        return "completed"
    return "ongoing"


def absolute_image_url(url: str, image_base: str) -> str:
    """Resolve CDN-relative image paths against the source image host."""

    if not url or url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    if not image_base:
        return url
    return f"{image_base.rstrip('/')}/{url.lstrip('/')}"


class SourceAdapter:
    """Base adapter translating one upstream schema into the canonical model."""

    def __init__(
        self,
        config: SourceConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"},
            follow_redirects=True,
        )

    @property
    def key(self) -> str:
        return self.config.key

    @property
    def tag(self) -> str:
        return self.config.tag

    def __enter__(self) -> "SourceAdapter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def detail_url(self, slug: str) -> str:
        return f"{self.config.base_url.rstrip('/')}{self.config.detail_path}/{slug}"

    def fetch_list(self, page: int) -> ListPage:
        payload = self._get_json(self.config.list_path, params={"page": page})
        return self.parse_list(payload)

    def fetch_detail(self, slug: str) -> tuple[MovieDetail, list[ServerGroup]]:
        payload = self._get_json(f"{self.config.detail_path}/{slug}")
        return self.parse_detail(slug, payload)

    def ping(self) -> float:
        """Fetch the first listing page and return the latency in milliseconds."""

        started = time.perf_counter()
        self.fetch_list(1)
        return round((time.perf_counter() - started) * 1000, 1)

    def parse_list(self, payload: dict[str, Any]) -> ListPage:  # pragma: no cover - abstract
        raise NotImplementedError

    def parse_detail(
        self, slug: str, payload: dict[str, Any]
    ) -> tuple[MovieDetail, list[ServerGroup]]:  # pragma: no cover - abstract
        raise NotImplementedError

    def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.config.base_url.rstrip('/')}{path}"
        try:
            response = self._client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timed out fetching {url}", url=url) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to reach {url}: {exc}", url=url) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise FetchError(
                f"{self.config.label} responded with HTTP {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(f"Malformed JSON from {url}", url=url, status_code=response.status_code) from exc
        if not isinstance(payload, dict):
            raise FetchError(f"Unexpected payload shape from {url}", url=url, status_code=response.status_code)
        logger.debug("Fetched %s (%s)", url, response.status_code)
        return payload
