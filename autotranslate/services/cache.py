"""Cross-request content cache.

Two namespaces are kept:

* tagged text produced by lazy tagging, keyed by (text digest, scope id)
* translation lookups, keyed by (hash, language)

Every entry is indexed by its hash so ``invalidate(hash)`` drops exactly
the entries that depend on it.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis

from autotranslate.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedTranslation:
    text: str
    human: bool


@dataclass(frozen=True)
class CachedTagging:
    tagged_text: str
    hash: str


def _tagged_key(digest: str, scope_id: Optional[int]) -> str:
    return f"tagged:{digest}:{scope_id or 0}"


def _translation_key(hash: str, lang: str) -> str:
    return f"translation:{hash}:{lang}"


class ContentCache(ABC):
    """Read-through cache shared between requests."""

    @abstractmethod
    async def get_tagged(self, digest: str, scope_id: Optional[int]) -> Optional[CachedTagging]:
        ...

    @abstractmethod
    async def set_tagged(
        self, digest: str, scope_id: Optional[int], tagged_text: str, hash: str
    ) -> None:
        ...

    @abstractmethod
    async def get_translation(self, hash: str, lang: str) -> Optional[CachedTranslation]:
        ...

    @abstractmethod
    async def set_translation(self, hash: str, lang: str, text: str, human: bool) -> None:
        ...

    @abstractmethod
    async def invalidate(self, hash: str) -> None:
        """Drop every entry that depends on ``hash``."""

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryContentCache(ContentCache):
    """Single-process cache with per-entry TTL.

    Expired entries are swept whenever the cache fills up; past
    ``max_entries`` the oldest entries are evicted.
    """

    def __init__(self, ttl_seconds: int = 3600, max_entries: int = 10000):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: dict[str, tuple[float, str, object]] = {}
        self._index: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _drop(self, key: str) -> None:
        _, hash, _ = self._entries.pop(key)
        keys = self._index.get(hash)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._index[hash]

    def _sweep(self) -> None:
        now = time.monotonic()
        for key in [k for k, entry in self._entries.items() if entry[0] < now]:
            self._drop(key)
        # Entries are kept in insertion order, oldest first
        while len(self._entries) >= self.max_entries:
            self._drop(next(iter(self._entries)))

    def _get(self, key: str):
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, _, value = entry
        if expires_at < time.monotonic():
            self._drop(key)
            return None
        return value

    def _set(self, hash: str, key: str, value: object) -> None:
        if key in self._entries:
            self._drop(key)
        elif len(self._entries) >= self.max_entries:
            self._sweep()
        self._entries[key] = (time.monotonic() + self.ttl_seconds, hash, value)
        self._index.setdefault(hash, set()).add(key)

    async def get_tagged(self, digest, scope_id):
        return self._get(_tagged_key(digest, scope_id))

    async def set_tagged(self, digest, scope_id, tagged_text, hash):
        self._set(hash, _tagged_key(digest, scope_id), CachedTagging(tagged_text, hash))

    async def get_translation(self, hash, lang):
        return self._get(_translation_key(hash, lang))

    async def set_translation(self, hash, lang, text, human):
        self._set(hash, _translation_key(hash, lang), CachedTranslation(text, human))

    async def invalidate(self, hash):
        for key in self._index.pop(hash, set()):
            self._entries.pop(key, None)

    async def clear(self):
        self._entries.clear()
        self._index.clear()


class RedisContentCache(ContentCache):
    """Redis-backed cache shared by every API process."""

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 3600, prefix: str = "autotranslate"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 3600) -> "RedisContentCache":
        return cls(aioredis.from_url(url, decode_responses=True), ttl_seconds)

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _index_key(self, hash: str) -> str:
        return f"{self.prefix}:index:{hash}"

    async def _get(self, key: str) -> Optional[dict]:
        raw = await self.client.get(self._key(key))
        return json.loads(raw) if raw else None

    async def _set(self, hash: str, key: str, value: dict) -> None:
        full_key = self._key(key)
        index_key = self._index_key(hash)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(full_key, json.dumps(value), ex=self.ttl_seconds)
            pipe.sadd(index_key, full_key)
            pipe.expire(index_key, self.ttl_seconds)
            await pipe.execute()

    async def get_tagged(self, digest, scope_id):
        value = await self._get(_tagged_key(digest, scope_id))
        return CachedTagging(value["tagged_text"], value["hash"]) if value else None

    async def set_tagged(self, digest, scope_id, tagged_text, hash):
        await self._set(hash, _tagged_key(digest, scope_id), {"tagged_text": tagged_text, "hash": hash})

    async def get_translation(self, hash, lang):
        value = await self._get(_translation_key(hash, lang))
        return CachedTranslation(value["text"], value["human"]) if value else None

    async def set_translation(self, hash, lang, text, human):
        await self._set(hash, _translation_key(hash, lang), {"text": text, "human": human})

    async def invalidate(self, hash):
        index_key = self._index_key(hash)
        keys = await self.client.smembers(index_key)
        await self.client.delete(index_key, *keys)

    async def clear(self):
        async for key in self.client.scan_iter(match=f"{self.prefix}:*"):
            await self.client.delete(key)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except aioredis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()


def build_content_cache(settings: Settings) -> ContentCache:
    """Create the cache backend selected in settings."""
    if settings.cache_backend == "memory":
        return MemoryContentCache(settings.cache_ttl_seconds, settings.cache_max_entries)
    return RedisContentCache.from_url(settings.redis_url, settings.cache_ttl_seconds)
