"""Tests for the in-process content cache."""

import pytest

from autotranslate.services.cache import CachedTranslation, MemoryContentCache


@pytest.mark.asyncio
async def test_translation_roundtrip_and_invalidate():
    """Test cached translations are dropped with their hash."""
    cache = MemoryContentCache(ttl_seconds=60)
    await cache.set_translation("AbC123xYz9", "es", "Hola", True)
    await cache.set_tagged("digest", 3, "Hello {t:AbC123xYz9}", "AbC123xYz9")

    assert await cache.get_translation("AbC123xYz9", "es") == CachedTranslation("Hola", True)

    await cache.invalidate("AbC123xYz9")

    assert await cache.get_translation("AbC123xYz9", "es") is None
    assert await cache.get_tagged("digest", 3) is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_expired_entries_are_swept_when_full():
    """Test expired entries never read again do not pile up."""
    cache = MemoryContentCache(ttl_seconds=-1, max_entries=3)
    for hash in ("AAAAAAAAA1", "AAAAAAAAA2", "AAAAAAAAA3"):
        await cache.set_translation(hash, "es", "Hola", True)
    assert len(cache) == 3

    await cache.set_translation("AAAAAAAAA4", "es", "Hola", True)

    assert len(cache) == 1
    assert await cache.get_translation("AAAAAAAAA4", "es") is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_oldest_entries_are_evicted_past_the_cap():
    """Test the cache never holds more than max_entries."""
    cache = MemoryContentCache(ttl_seconds=60, max_entries=2)
    await cache.set_translation("AAAAAAAAA1", "es", "Uno", True)
    await cache.set_translation("AAAAAAAAA2", "es", "Dos", True)
    await cache.set_translation("AAAAAAAAA3", "es", "Tres", False)

    assert len(cache) == 2
    assert await cache.get_translation("AAAAAAAAA1", "es") is None
    assert (await cache.get_translation("AAAAAAAAA3", "es")).text == "Tres"

    # Rewriting a key does not evict anything
    await cache.set_translation("AAAAAAAAA3", "es", "Tres!", True)
    assert len(cache) == 2
    assert (await cache.get_translation("AAAAAAAAA2", "es")).text == "Dos"
