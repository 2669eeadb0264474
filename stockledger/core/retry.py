"""StockLedger — Bounded exponential backoff for rate-limit-class errors."""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from stockledger.config import get_settings
from stockledger.core.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (0-based): base * 2^attempt, capped."""
    return min(base_delay * (2 ** attempt), max_delay)


async def call_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
    label: str = "store call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``fn()`` and retry only on TransientError.

    Validation, insufficient-stock and conflict errors propagate on the first
    attempt. After ``max_attempts`` the last TransientError is re-raised.
    """
    settings = get_settings()
    max_attempts = max_attempts or settings.RETRY_MAX_ATTEMPTS
    base_delay = settings.RETRY_BASE_DELAY_SECONDS if base_delay is None else base_delay
    max_delay = settings.RETRY_MAX_DELAY_SECONDS if max_delay is None else max_delay

    for attempt in range(max_attempts):
        try:
            return await fn()
        except TransientError as exc:
            if attempt == max_attempts - 1:
                logger.warning("%s failed after %s attempts: %s", label, max_attempts, exc)
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "%s rate limited, retry %s/%s after %.2fs: %s",
                label, attempt + 1, max_attempts - 1, delay, exc,
            )
            await sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover
