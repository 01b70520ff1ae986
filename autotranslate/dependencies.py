"""Service construction and FastAPI dependencies."""

import logging
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import create_async_engine

from autotranslate.config import Settings, get_settings
from autotranslate.content_types import DEFAULT_POLICY, TaggingPolicy
from autotranslate.services.cache import ContentCache, build_content_cache
from autotranslate.services.discovery import SchemaDiscovery
from autotranslate.services.hash_allocator import HashAllocator
from autotranslate.services.host_store import HostStore, SQLAlchemyHostStore
from autotranslate.services.orchestrator import TaggingOrchestrator
from autotranslate.services.resolver import ResolutionEngine
from autotranslate.services.tagger import Tagger
from autotranslate.services.translation_store import TranslationStore

logger = logging.getLogger(__name__)


def load_policy(settings: Settings) -> TaggingPolicy:
    if settings.tagging_policy_path:
        return TaggingPolicy.from_file(settings.tagging_policy_path)
    return DEFAULT_POLICY


@lru_cache
def get_tagging_policy() -> TaggingPolicy:
    return load_policy(get_settings())


@lru_cache
def get_content_cache() -> ContentCache:
    return build_content_cache(get_settings())


@lru_cache
def get_host_store() -> HostStore:
    settings = get_settings()
    if settings.host_database_url:
        engine = create_async_engine(settings.host_database_url, pool_pre_ping=True)
    else:
        from autotranslate.db.session import engine
    return SQLAlchemyHostStore(engine, settings.host_table_prefix)


@lru_cache
def get_schema_discovery() -> SchemaDiscovery:
    return SchemaDiscovery(get_host_store(), get_tagging_policy())


def build_tagger(store: TranslationStore, settings: Settings) -> Tagger:
    allocator = HashAllocator(store, max_attempts=settings.hash_max_attempts)
    return Tagger(store, allocator, settings)


def build_orchestrator(
    settings: Settings,
    store: TranslationStore,
    host: HostStore,
    discovery: SchemaDiscovery,
) -> TaggingOrchestrator:
    return TaggingOrchestrator(
        discovery,
        host,
        build_tagger(store, settings),
        store,
        default_batch_size=settings.tagging_batch_size,
    )


def get_translation_store(
    cache: ContentCache = Depends(get_content_cache),
) -> TranslationStore:
    return TranslationStore(cache)


def get_resolution_engine(
    cache: ContentCache = Depends(get_content_cache),
) -> ResolutionEngine:
    settings = get_settings()
    store = TranslationStore(cache)
    return ResolutionEngine(store, build_tagger(store, settings), cache, settings)


def get_orchestrator(
    store: TranslationStore = Depends(get_translation_store),
    host: HostStore = Depends(get_host_store),
    discovery: SchemaDiscovery = Depends(get_schema_discovery),
) -> TaggingOrchestrator:
    return build_orchestrator(get_settings(), store, host, discovery)
