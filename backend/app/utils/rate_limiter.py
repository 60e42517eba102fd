"""
Rate Limiter — per-client throttling for the identity and OTP endpoints.

Uses SlowAPI with in-memory storage, or Redis when REDIS_URL is set
(required once more than one worker serves traffic).
Usage on a route:  @limiter.limit("10/minute")  (route must accept `request`).
"""
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import get_settings
from app.utils.logger import get_logger

logger = get_logger("rate_limiter")


def get_limiter_storage() -> Optional[str]:
    """Redis URL if configured and well-formed, otherwise None (in-memory)."""
    redis_url = get_settings().REDIS_URL
    if not redis_url:
        return None
    if not redis_url.startswith(("redis://", "rediss://")):
        logger.warning("Invalid REDIS_URL format: %s. Using in-memory storage instead.", redis_url)
        return None
    logger.info("Using Redis backend for rate limiting")
    return redis_url


def create_limiter() -> Limiter:
    settings = get_settings()
    storage_uri = get_limiter_storage()
    kwargs = {"storage_uri": storage_uri} if storage_uri else {}
    return Limiter(
        key_func=get_remote_address,
        default_limits=[],  # applied explicitly per endpoint
        enabled=settings.RATE_LIMIT_ENABLED,
        **kwargs,
    )


limiter = create_limiter()

# Per-endpoint limits
LEAD_LOOKUP_LIMIT = "20/minute"
REGISTRATION_LIMIT = "5/minute"
OTP_SEND_LIMIT = "6/minute"
OTP_VERIFY_LIMIT = "15/minute"
