"""
Redis connection and stream names.

Used by scheduled tasks to announce ingestion results.
"""

from typing import Optional
from redis import Redis
from tradearchive.core.config import settings

redis_client: Optional[Redis] = None


def get_redis() -> Redis:
    """Get synchronous Redis client."""
    global redis_client
    if redis_client is None:
        redis_client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return redis_client


# Redis Stream Names
class StreamNames:
    """Redis Stream names for ingestion events."""

    TRADING_HISTORY = "trading-history"
    ALERTS = "alerts"
