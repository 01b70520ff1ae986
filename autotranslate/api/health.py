"""Health check and system info routes."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text

from autotranslate.config import get_settings
from autotranslate.dependencies import get_content_cache
from autotranslate.schemas.schemas import HealthResponse, LanguageInfo
from autotranslate.services.cache import ContentCache

router = APIRouter(tags=["System"])

settings = get_settings()
logger = logging.getLogger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the service and its dependencies.",
)
async def health_check(cache: ContentCache = Depends(get_content_cache)):
    """
    Health check endpoint.

    Returns the status of:
    - Translation store database
    - Content cache
    """
    cache_status = "ok" if await cache.ping() else "error"

    db_status = "ok"
    try:
        from autotranslate.db.session import engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        db_status = "error"

    overall_status = "healthy"
    if any(s == "error" for s in [cache_status, db_status]):
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version="1.0.0",
        database=db_status,
        cache=cache_status,
    )


@router.get(
    "/v1/languages",
    response_model=list[LanguageInfo],
    summary="List installed languages",
    description="Languages content can be translated into, flagging the site language.",
)
async def list_languages():
    """Get list of installed languages."""
    site_language = settings.site_language.lower()
    return [
        LanguageInfo(
            code=code,
            is_site_language=code.lower() == site_language,
            rtl=code.lower() in settings.rtl_languages,
        )
        for code in settings.installed_languages
    ]
