"""Pytest configuration and fixtures."""

import os

# Settings are read once; point everything at local resources before import
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("SITE_LANGUAGE", "en")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import Column, Integer, MetaData, String, Table, Text, insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from autotranslate.config import get_settings
from autotranslate.content_types import DEFAULT_POLICY
from autotranslate.db.models import Base
from autotranslate.db.session import get_db
from autotranslate.dependencies import (
    build_orchestrator,
    build_tagger,
    get_content_cache,
    get_host_store,
    get_schema_discovery,
)
from autotranslate.main import app
from autotranslate.services.cache import MemoryContentCache
from autotranslate.services.discovery import SchemaDiscovery
from autotranslate.services.hash_allocator import HashAllocator
from autotranslate.services.host_store import SQLAlchemyHostStore
from autotranslate.services.resolver import ResolutionEngine
from autotranslate.services.translation_store import TranslationStore


# A small host schema shaped like the LMS tables the default policy targets
host_metadata = MetaData()

Table(
    "course", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("fullname", String(254)),
    Column("shortname", String(255)),
    Column("summary", Text),
    Column("format", String(21)),
)
Table(
    "course_sections", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("course", Integer),
    Column("name", String(255)),
    Column("summary", Text),
)
Table(
    "book", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("course", Integer),
    Column("name", String(255)),
    Column("intro", Text),
    Column("introformat", Integer),
)
Table(
    "book_chapters", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("bookid", Integer),
    Column("title", String(255)),
    Column("content", Text),
)
Table(
    "bookmarks", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(255)),
)
Table(
    "forum", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("course", Integer),
    Column("name", String(255)),
    Column("intro", Text),
)
Table(
    "forum_discussions", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("course", Integer),
    Column("forum", Integer),
    Column("name", String(255)),
)
Table(
    "forum_posts", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("discussion", Integer),
    Column("subject", String(255)),
    Column("message", Text),
)
Table(
    "forum_digests", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("forum", Integer),
    Column("maildigest", Integer),
)
Table(
    "wiki", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("course", Integer),
    Column("name", String(255)),
    Column("intro", Text),
    Column("firstpagetitle", String(255)),
)
Table(
    "wiki_subwikis", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("wikiid", Integer),
)
Table(
    "wiki_pages", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("subwikiid", Integer),
    Column("title", String(255)),
    Column("cachedcontent", Text),
)
Table(
    "wiki_versions", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("pageid", Integer),
    Column("content", Text),
)
Table(
    "survey", host_metadata,
    Column("id", Integer, primary_key=True),
    Column("course", Integer),
    Column("name", String(255)),
    Column("intro", Text),
)


async def insert_rows(engine: AsyncEngine, table: str, rows: list[dict]) -> None:
    """Insert rows into a host table."""
    async with engine.begin() as conn:
        await conn.execute(insert(host_metadata.tables[table]), rows)


@pytest.fixture
def settings():
    return get_settings()


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create translation store engine."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def host_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create host content engine with the sample LMS schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'host.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(host_metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def cache() -> MemoryContentCache:
    return MemoryContentCache(ttl_seconds=60)


@pytest.fixture
def store(cache) -> TranslationStore:
    return TranslationStore(cache)


@pytest.fixture
def allocator(store) -> HashAllocator:
    return HashAllocator(store, max_attempts=100)


@pytest.fixture
def tagger(store, settings):
    return build_tagger(store, settings)


@pytest.fixture
def add_host_rows(host_engine):
    """Insert rows into the sample host schema."""

    async def add(table: str, rows: list[dict]) -> None:
        await insert_rows(host_engine, table, rows)

    return add


@pytest.fixture
def host_store(host_engine) -> SQLAlchemyHostStore:
    return SQLAlchemyHostStore(host_engine)


@pytest.fixture
def discovery(host_store) -> SchemaDiscovery:
    return SchemaDiscovery(host_store, DEFAULT_POLICY)


@pytest.fixture
def orchestrator(settings, store, host_store, discovery):
    return build_orchestrator(settings, store, host_store, discovery)


@pytest.fixture
def resolver(store, tagger, cache, settings) -> ResolutionEngine:
    return ResolutionEngine(store, tagger, cache, settings)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, cache, host_store, discovery
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_content_cache] = lambda: cache
    app.dependency_overrides[get_host_store] = lambda: host_store
    app.dependency_overrides[get_schema_discovery] = lambda: discovery

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
