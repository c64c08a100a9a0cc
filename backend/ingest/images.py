"""Poster/thumbnail rewrite hooks applied before URLs are persisted."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ImageOptions:
    resize_thumb: bool = False
    thumb_width: int = 0
    thumb_height: int = 0
    resize_poster: bool = False
    poster_width: int = 0
    poster_height: int = 0
    save_as_webp: bool = False

    @property
    def requested(self) -> bool:
        return self.resize_thumb or self.resize_poster or self.save_as_webp


class ImagePostProcessor:
    """Rewrite image URLs through a resizing proxy when one is configured.

    Without a proxy the stored URL is the source URL unchanged.
    """

    def __init__(self, options: ImageOptions | None = None, proxy_url: str | None = None) -> None:
        self.options = options or ImageOptions()
        self.proxy_url = (proxy_url or "").rstrip("?") or None
        self._warned = False

    def poster(self, url: str) -> str:
        options = self.options
        if options.resize_poster:
            return self._rewrite(url, options.poster_width, options.poster_height)
        return self._rewrite(url, 0, 0)

    def thumb(self, url: str) -> str:
        options = self.options
        if options.resize_thumb:
            return self._rewrite(url, options.thumb_width, options.thumb_height)
        return self._rewrite(url, 0, 0)

    def _rewrite(self, url: str, width: int, height: int) -> str:
        if not url:
            return url
        if not (width > 0 or height > 0 or self.options.save_as_webp):
            return url
        if self.proxy_url is None:
            if not self._warned:
                logger.debug("Image transforms requested but no image proxy is configured")
                self._warned = True
            return url

        params: dict[str, str | int] = {"url": url}
        if width > 0:
            params["w"] = width
        if height > 0:
            params["h"] = height
        if self.options.save_as_webp:
            params["output"] = "webp"
        return f"{self.proxy_url}?{urlencode(params)}"
