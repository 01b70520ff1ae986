"""Translation management API routes."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from autotranslate.config import get_settings
from autotranslate.db.models import SOURCE_LANG, Translation
from autotranslate.db.session import get_db
from autotranslate.dependencies import get_translation_store
from autotranslate.middleware.rate_limit import rate_limit_general
from autotranslate.schemas.schemas import (
    TranslationDetailResponse,
    TranslationListResponse,
    TranslationResponse,
    TranslationUpdate,
    UntranslatedItem,
    normalize_language,
)
from autotranslate.services.translation_store import (
    SORTABLE_FIELDS,
    TranslationStore,
    compute_stale,
)

router = APIRouter(prefix="/v1/translations", tags=["Translations"])

settings = get_settings()


def hash_path():
    return Path(..., pattern=r"^[A-Za-z0-9]{10}$", description="Content hash")


def store_language(lang: Optional[str]) -> Optional[str]:
    """Map the site language to the source sentinel."""
    lang = normalize_language(lang)
    if lang and lang == settings.site_language.lower():
        return SOURCE_LANG
    return lang


def to_response(record: Translation, source: Optional[Translation]) -> TranslationResponse:
    response = TranslationResponse.model_validate(record)
    response.stale = compute_stale(record, source)
    return response


@router.get(
    "",
    response_model=TranslationListResponse,
    summary="List translations",
    description="Get a paginated list of translation records.",
)
async def list_translations(
    lang: Optional[str] = Query(None, description="Language code (site language means source)"),
    human: Optional[bool] = Query(None, description="Filter on human-edited records"),
    scope_id: Optional[int] = Query(None, description="Only hashes used in this scope"),
    needs_review: bool = Query(False, description="Only records that need review"),
    sort: str = Query("hash", description=f"Sort column: {', '.join(SORTABLE_FIELDS)}"),
    direction: Literal["asc", "desc"] = Query("asc", description="Sort direction"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db),
    store: TranslationStore = Depends(get_translation_store),
):
    """List translation records with filters."""
    if sort not in SORTABLE_FIELDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot sort by {sort}",
        )

    records, total = await store.list_translations(
        db,
        lang=store_language(lang),
        human=human,
        scope_id=scope_id,
        needs_review=needs_review,
        sort=sort,
        descending=direction == "desc",
        page=page,
        page_size=page_size,
    )
    sources = await store.get_sources(db, [r.hash for r in records])

    return TranslationListResponse(
        items=[to_response(r, sources.get(r.hash)) for r in records],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/untranslated",
    response_model=list[UntranslatedItem],
    summary="List untranslated content",
    description="Source texts that have no translation in the target language yet.",
)
async def list_untranslated(
    target_lang: str = Query(..., description="Target language code"),
    scope_id: Optional[int] = Query(None, description="Only hashes used in this scope"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of items"),
    db: AsyncSession = Depends(get_db),
    store: TranslationStore = Depends(get_translation_store),
):
    """Input for machine translation jobs."""
    target = store_language(target_lang)
    if target == SOURCE_LANG:
        return []
    sources = await store.untranslated_hashes(db, target, scope_id=scope_id, limit=limit)
    return [
        UntranslatedItem(hash=s.hash, source_text=s.translated_text, scope_level=s.scope_level)
        for s in sources
    ]


@router.get(
    "/{hash}",
    response_model=TranslationDetailResponse,
    summary="Get a hash",
    description="Get the source text of a hash and all of its translations.",
)
async def get_translations(
    hash: str = hash_path(),
    db: AsyncSession = Depends(get_db),
    store: TranslationStore = Depends(get_translation_store),
):
    """Get all language variants of a hash."""
    records = await store.get_languages(db, hash)
    if not records:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Hash not found",
        )

    source = next((r for r in records if r.lang == SOURCE_LANG), None)
    return TranslationDetailResponse(
        hash=hash,
        source=to_response(source, source) if source else None,
        translations=[to_response(r, source) for r in records if r.lang != SOURCE_LANG],
    )


@router.put(
    "/{hash}/{lang}",
    response_model=TranslationResponse,
    summary="Edit a translation",
    description="Create or replace the text of one language. Editing the site language edits the source.",
)
@rate_limit_general()
async def update_translation(
    request: Request,
    body: TranslationUpdate,
    hash: str = hash_path(),
    lang: str = Path(..., min_length=2, max_length=20),
    db: AsyncSession = Depends(get_db),
    store: TranslationStore = Depends(get_translation_store),
):
    """Store a human edit."""
    target = store_language(lang)
    installed = {code.lower() for code in settings.installed_languages}
    if target != SOURCE_LANG and target not in installed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Language {target} is not installed",
        )
    source = await store.get_source(db, hash)
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Hash not found",
        )

    if target == SOURCE_LANG:
        record = await store.upsert_source(db, hash, body.translated_text, source.scope_level)
    else:
        record = await store.upsert_translation(
            db, hash, target, body.translated_text, is_human=body.human
        )
    await store.commit(db)

    return to_response(record, await store.get_source(db, hash))


@router.post(
    "/{hash}/{lang}/review",
    response_model=TranslationResponse,
    summary="Mark a translation reviewed",
    description="Record that a person reviewed the translation against the current source.",
)
async def review_translation(
    hash: str = hash_path(),
    lang: str = Path(..., min_length=2, max_length=20),
    db: AsyncSession = Depends(get_db),
    store: TranslationStore = Depends(get_translation_store),
):
    """Mark a translation as reviewed."""
    record = await store.mark_reviewed(db, hash, store_language(lang))
    await store.commit(db)
    return to_response(record, await store.get_source(db, hash))
