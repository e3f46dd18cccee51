"""
Fixed-window request throttle backed by Django's cache.
"""
import logging

from django.conf import settings
from django.core.cache import cache

from services.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)


def hit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Count one request against `key`.

    Returns True while the window still has room, False once `limit`
    requests have been seen in the current window.
    """
    cache_key = f"ratelimit:{key}"
    # add() only sets the key (and starts the window) when it is absent
    cache.add(cache_key, 0, timeout=window_seconds)
    try:
        count = cache.incr(cache_key)
    except ValueError:
        # Key expired between add() and incr()
        cache.set(cache_key, 1, timeout=window_seconds)
        count = 1
    return count <= limit


def check_create_limit(user_id) -> None:
    """Raise RateLimitExceeded when a user has created too many leads recently"""
    limit = getattr(settings, "BUYER_CREATE_RATE_LIMIT", 5)
    window = getattr(settings, "BUYER_CREATE_RATE_WINDOW_SECONDS", 15 * 60)
    if not hit(f"create:{user_id}", limit, window):
        logger.warning(f"Create rate limit hit for user {user_id}")
        raise RateLimitExceeded()
