"""Scope mapping API routes."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from autotranslate.db.session import get_db
from autotranslate.dependencies import get_orchestrator, get_translation_store
from autotranslate.middleware.rate_limit import rate_limit_general
from autotranslate.schemas.schemas import (
    MarkStaleRequest,
    MarkStaleResponse,
    ScopeHashesResponse,
    ScopeRebuildRequest,
    ScopeRebuildResponse,
)
from autotranslate.services.orchestrator import TaggingOrchestrator
from autotranslate.services.translation_store import TranslationStore
from autotranslate.worker import enqueue_scope_rebuild

router = APIRouter(prefix="/v1/scopes", tags=["Scopes"])


@router.get(
    "/{scope_id}/hashes",
    response_model=ScopeHashesResponse,
    summary="List hashes of a scope",
    description="All hashes tagged in content that belongs to the scope.",
)
async def list_scope_hashes(
    scope_id: int,
    db: AsyncSession = Depends(get_db),
    store: TranslationStore = Depends(get_translation_store),
):
    """Get the hashes mapped to a scope."""
    hashes = await store.hashes_for_scope(db, scope_id)
    return ScopeHashesResponse(scope_id=scope_id, hashes=hashes)


@router.post(
    "/{scope_id}/stale",
    response_model=MarkStaleResponse,
    summary="Flag a scope for review",
    description="Mark every translation used in the scope as needing review.",
)
async def mark_scope_stale(
    scope_id: int,
    body: Optional[MarkStaleRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    store: TranslationStore = Depends(get_translation_store),
):
    """Flag translations of a scope after its source content changed."""
    scope_level = body.scope_level if body else None
    updated = await store.mark_scope_stale(db, scope_id, scope_level)
    await store.commit(db)
    return MarkStaleResponse(scope_id=scope_id, updated=updated)


@router.post(
    "/{scope_id}/rebuild",
    response_model=ScopeRebuildResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Rebuild a scope",
    description="Re-tag all content of the scope and flag its translations for review.",
)
@rate_limit_general()
async def rebuild_scope(
    request: Request,
    scope_id: int,
    body: Optional[ScopeRebuildRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    orchestrator: TaggingOrchestrator = Depends(get_orchestrator),
):
    """
    Rebuild the translations of a scope, e.g. after a course was restored.

    - **content_types**: limit the rebuild to these content types
    - **batch_size**: records fetched per query
    - **inline**: rebuild in this request and return the result
    """
    body = body or ScopeRebuildRequest()

    if body.inline:
        result = await orchestrator.rebuild_scope(
            db, scope_id, body.content_types, body.batch_size
        )
        return ScopeRebuildResponse(
            scope_id=scope_id,
            status="completed",
            content_types=[run.content_type for run in result.runs],
            records_processed=result.records_processed,
            errors=result.errors,
            marked_stale=result.marked_stale,
        )

    task_id = enqueue_scope_rebuild(scope_id, body.content_types, body.batch_size)
    return ScopeRebuildResponse(scope_id=scope_id, status="queued", task_id=task_id)
