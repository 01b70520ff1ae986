"""Main FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from autotranslate.api import health, render, scopes, tagging, translations
from autotranslate.config import get_settings
from autotranslate.db.session import init_db
from autotranslate.exceptions import (
    AutotranslateError,
    HashSpaceExhaustedError,
    MissingSourceError,
    ScopeLevelMismatchError,
    TranslationNotFoundError,
    UnknownContentTypeError,
)
from autotranslate.middleware.rate_limit import limiter
from autotranslate.schemas.schemas import ErrorResponse

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    UnknownContentTypeError: status.HTTP_404_NOT_FOUND,
    TranslationNotFoundError: status.HTTP_404_NOT_FOUND,
    MissingSourceError: status.HTTP_404_NOT_FOUND,
    ScopeLevelMismatchError: status.HTTP_409_CONFLICT,
    HashSpaceExhaustedError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info("Starting Autotranslate service...")

    # Initialize database
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Autotranslate service started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Autotranslate service...")


# Create FastAPI app
app = FastAPI(
    title="Autotranslate Service",
    description="""
## Content Tagging & Translation Resolution API

This service keeps one canonical source text per distinct content fragment
and any number of translations of it:
- **Tagging**: fragments stored in host tables get a `{t:<hash>}` marker
- **Deduplication**: identical fragments share one hash and one set of translations
- **Rendering**: markers are replaced by the reader's language, falling back to the source

### Inline multilingual content
Both `{mlang xx}...{mlang}` blocks and `<span lang="xx" class="multilang">` spans
are imported as translations when content is tagged.

### Rate Limiting
API requests are rate-limited per client IP.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AutotranslateError)
async def autotranslate_exception_handler(request: Request, exc: AutotranslateError):
    """Map service errors to client errors."""
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=type(exc).__name__, detail=str(exc)).model_dump(),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# Include routers
app.include_router(health.router)
app.include_router(render.router)
app.include_router(translations.router)
app.include_router(scopes.router)
app.include_router(tagging.router)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Autotranslate Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "autotranslate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
