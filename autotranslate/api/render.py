"""Rendering routes."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autotranslate.db.session import get_db
from autotranslate.dependencies import get_resolution_engine
from autotranslate.middleware.rate_limit import rate_limit_render
from autotranslate.schemas.schemas import RenderRequestBody, RenderResponse
from autotranslate.services.resolver import RenderRequest, ResolutionEngine

router = APIRouter(prefix="/v1/render", tags=["Render"])


@router.post(
    "",
    response_model=RenderResponse,
    summary="Render tagged text",
    description=(
        "Replace every {t:hash} marker with the text for the requested language. "
        "Untagged text is tagged on the fly."
    ),
)
@rate_limit_render()
async def render_texts(
    request: Request,
    body: RenderRequestBody,
    db: AsyncSession = Depends(get_db),
    engine: ResolutionEngine = Depends(get_resolution_engine),
):
    """
    Render a batch of text blobs.

    All blobs share one memo, so a hash repeated across blobs is looked up once.
    """
    render_request = RenderRequest(
        language=body.language,
        scope_id=body.scope_id,
        scope_level=body.scope_level,
        allow_html=body.allow_html,
    )
    texts = [await engine.render(db, text, render_request) for text in body.texts]
    return RenderResponse(texts=texts, language=body.language)
