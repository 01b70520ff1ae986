"""Celery worker configuration and tasks."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from celery import Celery, Task

from autotranslate.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Create Celery app
celery_app = Celery(
    "autotranslate_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes max per batch
    task_soft_time_limit=1740,
    worker_prefetch_multiplier=1,  # Fetch one task at a time
    task_acks_late=True,  # Ack after task completes
    task_reject_on_worker_lost=True,
    task_default_queue="default",
    task_queues={
        "default": {"exchange": "default", "routing_key": "default"},
        "tagging": {"exchange": "tagging", "routing_key": "tagging"},
    },
    task_routes={
        "autotranslate.worker.tag_content_type": {"queue": "tagging"},
        "autotranslate.worker.tag_all_content_types": {"queue": "tagging"},
        "autotranslate.worker.rebuild_scope": {"queue": "tagging"},
        "autotranslate.worker.mark_scope_stale": {"queue": "default"},
    },
    beat_schedule={
        "tag-all-content-types": {
            "task": "autotranslate.worker.tag_all_content_types",
            "schedule": settings.tagging_schedule_seconds,
        },
    },
)


class BaseTask(Task):
    """Base task with retry configuration."""

    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True
    max_retries = 3


async def run_with_orchestrator(work: Callable[[Any, Any], Awaitable[dict]]) -> dict:
    """Run ``work(orchestrator, db)`` on engines owned by this call."""
    from autotranslate.db.session import create_session_maker, create_worker_engine
    from autotranslate.dependencies import build_orchestrator, get_tagging_policy
    from autotranslate.services.cache import build_content_cache
    from autotranslate.services.discovery import SchemaDiscovery
    from autotranslate.services.host_store import SQLAlchemyHostStore
    from autotranslate.services.translation_store import TranslationStore

    store_engine = create_worker_engine(settings.database_url)
    host_engine = (
        create_worker_engine(settings.host_database_url)
        if settings.host_database_url
        else store_engine
    )
    cache = build_content_cache(settings)
    try:
        host = SQLAlchemyHostStore(host_engine, settings.host_table_prefix)
        discovery = SchemaDiscovery(host, get_tagging_policy())
        orchestrator = build_orchestrator(settings, TranslationStore(cache), host, discovery)
        async with create_session_maker(store_engine)() as db:
            return await work(orchestrator, db)
    finally:
        await cache.close()
        if host_engine is not store_engine:
            await host_engine.dispose()
        await store_engine.dispose()


async def run_tagging_batch(content_type: str, batch_size: Optional[int] = None) -> dict:
    """Run one orchestrator batch."""

    async def work(orchestrator, db) -> dict:
        return (await orchestrator.run(db, content_type, batch_size)).as_dict()

    return await run_with_orchestrator(work)


async def run_scope_rebuild(
    scope_id: int,
    content_types: Optional[list[str]] = None,
    batch_size: Optional[int] = None,
) -> dict:
    """Re-tag the content of one scope and flag its translations."""

    async def work(orchestrator, db) -> dict:
        result = await orchestrator.rebuild_scope(db, scope_id, content_types, batch_size)
        return result.as_dict()

    return await run_with_orchestrator(work)


@celery_app.task(bind=True, base=BaseTask, name="autotranslate.worker.tag_content_type")
def tag_content_type(self, content_type: str, batch_size: Optional[int] = None) -> dict:
    """
    Tag one batch of a content type.

    Re-enqueues itself while the content type has untagged records left.

    Args:
        content_type: Primary table name, e.g. "book"
        batch_size: Records per batch (settings.tagging_batch_size by default)

    Returns:
        Dict with the run result
    """
    result = asyncio.run(run_tagging_batch(content_type, batch_size))
    logger.info(
        f"Tagged batch of {content_type}: {result['records_processed']} records, "
        f"last id {result['last_id']}"
    )
    if result["has_more"]:
        tag_content_type.apply_async(args=[content_type, batch_size], queue="tagging")
    return result


@celery_app.task(name="autotranslate.worker.tag_all_content_types")
def tag_all_content_types() -> list[str]:
    """Periodic task queueing a run for every content type of an enabled level."""
    from autotranslate.dependencies import get_tagging_policy

    content_types = get_tagging_policy().for_levels(settings.enabled_scope_levels)
    for content_type in content_types:
        tag_content_type.apply_async(args=[content_type, None], queue="tagging")
    logger.info(f"Queued tagging of {len(content_types)} content types")
    return content_types


@celery_app.task(bind=True, base=BaseTask, name="autotranslate.worker.mark_scope_stale")
def mark_scope_stale(self, scope_id: int, scope_level: Optional[int] = None) -> int:
    """Flag every translation of a scope for review."""
    from autotranslate.db.session import create_session_maker, create_worker_engine
    from autotranslate.services.cache import build_content_cache
    from autotranslate.services.translation_store import TranslationStore

    async def do_mark() -> int:
        engine = create_worker_engine(settings.database_url)
        cache = build_content_cache(settings)
        try:
            store = TranslationStore(cache)
            async with create_session_maker(engine)() as db:
                updated = await store.mark_scope_stale(db, scope_id, scope_level)
                await store.commit(db)
            return updated
        finally:
            await cache.close()
            await engine.dispose()

    updated = asyncio.run(do_mark())
    logger.info(f"Marked {updated} translations of scope {scope_id} for review")
    return updated


def enqueue_tagging_run(content_type: str, batch_size: Optional[int] = None) -> str:
    """Queue a tagging run and return the Celery task id."""
    async_result = tag_content_type.apply_async(
        args=[content_type, batch_size],
        queue="tagging",
    )
    return async_result.id


@celery_app.task(bind=True, base=BaseTask, name="autotranslate.worker.rebuild_scope")
def rebuild_scope(
    self,
    scope_id: int,
    content_types: Optional[list[str]] = None,
    batch_size: Optional[int] = None,
) -> dict:
    """
    Re-tag everything that belongs to a scope, e.g. after a course restore.

    Args:
        scope_id: Scope (course) id
        content_types: Content types to visit, every scoped one when None
        batch_size: Records fetched per query

    Returns:
        Dict with the rebuild result
    """
    result = asyncio.run(run_scope_rebuild(scope_id, content_types, batch_size))
    logger.info(
        f"Rebuilt scope {scope_id}: {result['records_processed']} records, "
        f"{result['marked_stale']} translations flagged"
    )
    return result


def enqueue_scope_rebuild(
    scope_id: int,
    content_types: Optional[list[str]] = None,
    batch_size: Optional[int] = None,
) -> str:
    """Queue a scope rebuild and return the Celery task id."""
    async_result = rebuild_scope.apply_async(
        args=[scope_id, content_types, batch_size],
        queue="tagging",
    )
    return async_result.id
