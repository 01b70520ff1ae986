"""Tests for hash allocation."""

import pytest

from autotranslate.db.models import ScopeLevel
from autotranslate.exceptions import HashSpaceExhaustedError
from autotranslate.services.hash_allocator import HASH_ALPHABET, HashAllocator
from autotranslate.text.markers import is_valid_hash


def test_generate_shape(allocator):
    """Test generated hashes are ten alphanumeric characters."""
    for _ in range(50):
        candidate = allocator.generate()
        assert len(candidate) == 10
        assert all(c in HASH_ALPHABET for c in candidate)
        assert is_valid_hash(candidate)


@pytest.mark.asyncio
async def test_allocate_returns_unused_hash(db_session, store, allocator):
    """Test allocation skips hashes already in use."""
    await store.upsert_source(db_session, "TakenHash1", "Hello", ScopeLevel.COURSE)
    candidates = iter(["TakenHash1", "FreshHash2"])
    allocator.generate = lambda: next(candidates)

    assert await allocator.allocate(db_session) == "FreshHash2"


@pytest.mark.asyncio
async def test_allocate_gives_up_after_max_attempts(db_session, store):
    """Test allocation fails when every candidate collides."""
    await store.upsert_source(db_session, "TakenHash1", "Hello", ScopeLevel.COURSE)
    allocator = HashAllocator(store, max_attempts=3)
    calls = []

    def always_taken():
        calls.append(1)
        return "TakenHash1"

    allocator.generate = always_taken

    with pytest.raises(HashSpaceExhaustedError):
        await allocator.allocate(db_session)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_find_existing_matches_trimmed_text(db_session, store, allocator):
    """Test lookup by source text ignores surrounding whitespace only."""
    await store.upsert_source(db_session, "TakenHash1", "Hello world", ScopeLevel.COURSE)

    assert await allocator.find_existing(db_session, "  Hello world\n") == "TakenHash1"
    assert await allocator.find_existing(db_session, "Hello  world") is None
    assert await allocator.find_existing(db_session, "hello world") is None
