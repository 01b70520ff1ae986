"""Rate limiting middleware using SlowAPI."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from autotranslate.config import get_settings

settings = get_settings()


def get_client_key(request: Request) -> str:
    """Rate limit key: the client IP address."""
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_client_key,
    storage_uri=settings.rate_limit_storage_uri or settings.redis_url,
    strategy="fixed-window",
)


def rate_limit_render():
    """Rate limit for the render endpoint."""
    return limiter.limit(
        f"{settings.rate_limit_per_minute}/minute",
        key_func=get_client_key,
    )


def rate_limit_general():
    """Rate limit for management endpoints."""
    return limiter.limit(
        f"{max(settings.rate_limit_per_minute // 2, 1)}/minute",
        key_func=get_client_key,
    )
