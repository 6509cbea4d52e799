"""
Slowapi-based rate limiting.

Route decorators use the module-level `limiter`; setup_rate_limiting()
attaches it to the app. RATE_LIMITING_ENABLED=false turns every limit off.
"""
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from typing import Optional
import logging

from config import settings

logger = logging.getLogger(__name__)

# Limits carried over per endpoint. Guest creation is public, so it is
# counted per client IP rather than per identity header.
GUEST_CREATE_LIMIT = "5/hour"
GUEST_MIGRATE_LIMIT = "10 per 15 minutes"


def get_request_identifier(request: Request) -> str:
    """
    Get unique identifier for rate limiting.

    Priority:
    1. Authenticated user id header
    2. Guest session header
    3. IP address (fallback)
    """
    user_id = request.headers.get("X-User-Id")
    if user_id:
        return f"user:{user_id}"

    guest_session = request.headers.get("X-Guest-User-Id")
    if guest_session:
        return f"guest:{guest_session}"

    return get_remote_address(request)


def create_limiter(storage_url: Optional[str] = None, enabled: bool = True) -> Limiter:
    """
    Create and configure slowapi Limiter.

    Args:
        storage_url: Redis connection URL for distributed rate limiting
        enabled: False disables every limit (tests, local runs)
    """
    if storage_url:
        limiter = Limiter(
            key_func=get_request_identifier,
            storage_uri=storage_url,
            default_limits=["120/minute"],
            headers_enabled=True,
            enabled=enabled,
        )
        logger.info("Rate limiting configured with Redis backend")
    else:
        # In-memory storage (single instance only)
        limiter = Limiter(
            key_func=get_request_identifier,
            default_limits=["120/minute"],
            headers_enabled=True,
            enabled=enabled,
        )
        logger.warning("Rate limiting using in-memory storage (not distributed)")

    return limiter


limiter = create_limiter(settings.rate_limit_storage_url or None, settings.rate_limiting_enabled)


def setup_rate_limiting(app, app_limiter: Optional[Limiter] = None) -> Limiter:
    """Attach a limiter (the module one by default) and the 429 handler to the app."""
    app_limiter = app_limiter or limiter

    app.state.limiter = app_limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    logger.info(f"Slowapi rate limiting {'enabled' if app_limiter.enabled else 'disabled'}")
    return app_limiter
