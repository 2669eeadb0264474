"""StockLedger — Redis client for batch progress snapshots."""
from typing import Optional

import redis.asyncio as redis

from stockledger.config import get_settings

_redis: Optional[redis.Redis] = None


def batch_progress_key(job_id: str) -> str:
    """batch:{job_id} holds the latest progress event of a background batch."""
    return f"batch:{job_id}"


async def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(get_settings().REDIS_URL, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
