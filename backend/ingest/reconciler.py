"""Additive episode reconciliation keyed by tagged server name and slug."""
from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

from .gateway import CatalogGateway, EpisodeKey
from .models import ServerGroup

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100

_registry_lock = Lock()
# An entry lives only while some reconcile holds its lock.
_movie_locks: "weakref.WeakValueDictionary[str, Lock]" = weakref.WeakValueDictionary()


def _lock_for(movie_id: str) -> Lock:
    with _registry_lock:
        lock = _movie_locks.get(movie_id)
        if lock is None:
            lock = Lock()
            _movie_locks[movie_id] = lock
        return lock


def tagged_server_name(source_tag: str, server_name: str) -> str:
    """Prefix a server label with its source so labels never collide across sources."""

    tag = source_tag.strip()
    return f"{tag} {server_name}".strip() if tag else server_name


@dataclass(slots=True)
class ReconcileResult:
    staged: int = 0
    skipped: int = 0
    batches: list[int] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return sum(self.batches)


class EpisodeReconciler:
    """Insert only episodes whose (server_name, slug) key is not stored yet."""

    def __init__(self, gateway: CatalogGateway, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self._gateway = gateway
        self.chunk_size = chunk_size

    def reconcile(self, movie_id: str, groups: list[ServerGroup], source_tag: str) -> ReconcileResult:
        result = ReconcileResult()
        # The key read and the insert for one movie must not interleave.
        lock = _lock_for(movie_id)
        with lock:
            known: set[EpisodeKey] = set(self._gateway.list_existing_episode_keys(movie_id))
            rows: list[dict[str, Any]] = []
            for group in groups:
                server_name = tagged_server_name(source_tag, group.server_name)
                for episode in group.episodes:
                    key = (server_name, episode.slug)
                    if key in known:
                        result.skipped += 1
                        continue
                    known.add(key)
                    rows.append(
                        {
                            "movie_id": movie_id,
                            "server_name": server_name,
                            "name": episode.name,
                            "slug": episode.slug,
                            "filename": episode.filename,
                            "link_embed": episode.link_embed,
                            "link_m3u8": episode.link_m3u8,
                            "link_mp4": episode.link_mp4,
                        }
                    )
            result.staged = len(rows)
            if rows:
                result.batches = self._gateway.insert_episodes_batch(rows, chunk_size=self.chunk_size)

        logger.debug(
            "Reconciled episodes for movie %s: %s new, %s already stored",
            movie_id,
            result.staged,
            result.skipped,
        )
        return result
