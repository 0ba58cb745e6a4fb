"""Time-bounded cache for expensive aggregate rankings.

Serves three ranking kinds:
- trending-projects: most recent N published+public projects, scored
- popular-tags / popular-technologies: occurrence counts over all
  published+public projects

Flow for get(kind, limit):
1. Build key "{kind}:{limit}"
2. Entry present and age < TTL -> return a copy of the stored data (no
   store I/O); callers may mutate what they get back
3. Otherwise recompute from the MetricsStore, overwrite the entry, return

Failure: a recomputation error propagates to the caller and nothing is
written, so the next call retries instead of serving a broken snapshot.

Concurrency: two concurrent misses for the same key may both recompute and
both write. Output is deterministic, so last write wins.

Backends:
- MemoryCacheBackend: process-local dict, empty at start, clear() only
- RedisCacheBackend: shared between API instances. With Redis unavailable
  a read is a miss and a write is skipped; stats() sees no entries and
  clear() does nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
import copy
from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import Any

from redis.exceptions import RedisError

from app.services.scoring import count_labels, rank_projects
from app.stores.metrics import LabelField, MetricsStore, ProjectRecord
from app.stores.redis import (
    PREFIX_RANKING,
    cache_delete_prefix,
    cache_get_json,
    cache_keys,
    cache_set_json,
)

logger = logging.getLogger("uvicorn.error")

DEFAULT_TTL_SECONDS = 3600
DEFAULT_TRENDING_WINDOW = 100


class RankingKind(str, Enum):
    TRENDING_PROJECTS = "trending-projects"
    POPULAR_TAGS = "popular-tags"
    POPULAR_TECHNOLOGIES = "popular-technologies"


@dataclass
class CacheEntry:
    key: str
    data: list[dict[str, Any]]
    timestamp: float  # epoch seconds at insertion


class CacheBackend(ABC):
    """Where CacheEntry snapshots live."""

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None: ...

    @abstractmethod
    async def set(self, entry: CacheEntry) -> None: ...

    @abstractmethod
    async def entries(self) -> list[CacheEntry]: ...

    @abstractmethod
    async def clear(self) -> None: ...


class MemoryCacheBackend(CacheBackend):
    """Process-local snapshots. Never persisted across restarts."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    async def set(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    async def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    async def clear(self) -> None:
        self._entries.clear()


class RedisCacheBackend(CacheBackend):
    """Snapshots shared through Redis (keys "ranking:{kind}:{limit}")."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._ttl_seconds = ttl_seconds

    async def get(self, key: str) -> CacheEntry | None:
        try:
            payload = await cache_get_json(f"{PREFIX_RANKING}{key}")
        except (RuntimeError, RedisError) as e:
            logger.warning(f"Ranking cache read failed for {key}, treating as miss: {e}")
            return None
        return _entry_from_payload(payload)

    async def set(self, entry: CacheEntry) -> None:
        payload = {"key": entry.key, "data": entry.data, "timestamp": entry.timestamp}
        try:
            await cache_set_json(f"{PREFIX_RANKING}{entry.key}", payload, self._ttl_seconds)
        except (RuntimeError, RedisError) as e:
            # Redis may be unavailable in tests/local minimal env.
            logger.warning(f"Ranking cache write skipped for {entry.key}: {e}")

    async def entries(self) -> list[CacheEntry]:
        out: list[CacheEntry] = []
        try:
            for redis_key in await cache_keys(PREFIX_RANKING):
                entry = _entry_from_payload(await cache_get_json(redis_key))
                if entry is not None:
                    out.append(entry)
        except (RuntimeError, RedisError) as e:
            logger.warning(f"Ranking cache listing failed, reporting no entries: {e}")
            return []
        return out

    async def clear(self) -> None:
        try:
            removed = await cache_delete_prefix(PREFIX_RANKING)
        except (RuntimeError, RedisError) as e:
            logger.warning(f"Ranking cache clear skipped: {e}")
            return
        logger.info(f"Ranking cache cleared ({removed} redis keys)")


def _entry_from_payload(payload: dict[str, Any] | None) -> CacheEntry | None:
    if not payload:
        return None
    try:
        data = payload["data"]
        if not isinstance(data, list):
            return None
        return CacheEntry(key=str(payload["key"]), data=data, timestamp=float(payload["timestamp"]))
    except (KeyError, TypeError, ValueError):
        return None


class RankingCache:
    """TTL cache in front of the ranking computations."""

    def __init__(
        self,
        store: MetricsStore,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        trending_window: int = DEFAULT_TRENDING_WINDOW,
        backend: CacheBackend | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._trending_window = trending_window
        self._backend = backend or MemoryCacheBackend()
        self._clock = clock

    @staticmethod
    def cache_key(kind: RankingKind, limit: int) -> str:
        return f"{RankingKind(kind).value}:{limit}"

    async def get(self, kind: RankingKind, limit: int) -> list[dict[str, Any]]:
        """Return the ranking for (kind, limit), recomputing when stale.

        Args:
            kind: Which ranking to serve.
            limit: Max items (the route layer bounds it to 1..50).

        Returns:
            Ranked list of JSON-ready dicts.

        Raises:
            TransientStoreError: If recomputation could not read the store.
        """
        kind = RankingKind(kind)
        key = self.cache_key(kind, limit)

        cached = await self._backend.get(key)
        if cached is not None and self._clock() - cached.timestamp < self._ttl_seconds:
            logger.debug(f"Ranking cache hit: {key}")
            return copy.deepcopy(cached.data)

        logger.info(f"Ranking cache miss: {key}, recomputing")
        try:
            data = await self._compute(kind, limit)
        except Exception:
            logger.exception(f"Ranking recomputation failed for {key}; cache left untouched")
            raise

        await self._backend.set(CacheEntry(key=key, data=data, timestamp=self._clock()))
        return copy.deepcopy(data)

    async def clear(self) -> None:
        """Drop all entries; the next get() of any kind is a forced miss."""
        await self._backend.clear()

    async def stats(self) -> dict[str, Any]:
        """Entry count, keys and per-entry age (seconds). Read-only."""
        now = self._clock()
        entries = await self._backend.entries()
        return {
            "size": len(entries),
            "keys": [entry.key for entry in entries],
            "entries": [
                {"key": entry.key, "timestamp": entry.timestamp, "age": now - entry.timestamp}
                for entry in entries
            ],
        }

    async def _compute(self, kind: RankingKind, limit: int) -> list[dict[str, Any]]:
        if kind is RankingKind.TRENDING_PROJECTS:
            recent = await self._store.list_recent_published(self._trending_window)
            return [_trending_item(project, score) for project, score in rank_projects(recent)[:limit]]

        if kind is RankingKind.POPULAR_TAGS:
            labels = await self._store.list_published_labels(LabelField.TAGS)
            return [{"tag": tag, "count": count} for tag, count in count_labels(labels)[:limit]]

        labels = await self._store.list_published_labels(LabelField.TECHNOLOGIES)
        return [{"tech": tech, "count": count} for tech, count in count_labels(labels)[:limit]]


def _trending_item(project: ProjectRecord, score: float) -> dict[str, Any]:
    return {
        "id": project.id,
        "title": project.title,
        "shortDescription": project.short_description,
        "author": {"id": project.author_id, "username": project.author_username},
        "tags": list(project.tags),
        "technologies": list(project.technologies),
        "metrics": {
            "upvoteCount": project.upvote_count,
            "commentCount": project.comment_count,
        },
        "createdAt": project.created_at.isoformat(),
        "trendingScore": score,
    }
