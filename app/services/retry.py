"""
Retrying wrapper for remote model calls.

Every AI-backed operation passes through :func:`call_with_retry`.  Failures
whose diagnostic text carries a rate-limit marker are retried with
exponential backoff plus jitter; anything else propagates on the first
failure.

    result = await call_with_retry(lambda: client.aio.models.generate_content(model=name, contents=prompt))
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from app.config import settings
from app.services.errors import ServiceOverloadedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "quota")

OVERLOADED_MESSAGE = (
    "Hệ thống AI đang tạm thời quá tải. Vui lòng thử lại sau ít phút."
)


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 8
    base_delay_ms: float = 2000.0
    jitter_ms: float = 1000.0

    def delay_seconds(self, attempt: int, jitter_fraction: float) -> float:
        """Backoff after the failed *attempt* (0-based); *jitter_fraction* is in [0, 1)."""
        delay_ms = self.base_delay_ms * (2 ** attempt) + jitter_fraction * self.jitter_ms
        return delay_ms / 1000.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay_ms=settings.RETRY_BASE_DELAY_MS,
            jitter_ms=settings.RETRY_JITTER_MS,
        )


def diagnostic_text(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True if the error's diagnostic text marks provider throttling."""
    text = diagnostic_text(exc).lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    random_fn: Callable[[], float] = random.random,
    label: str = "AI request",
) -> T:
    """
    Run *operation*, retrying only on rate-limit failures.

    Raises:
        ServiceOverloadedError: every attempt was rate limited.
        Exception: the original error of the first non-rate-limit failure.
    """
    policy = policy or RetryPolicy.from_settings()

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except Exception as exc:
            if not is_rate_limit_error(exc):
                logger.error("%s: non-retriable error: %s", label, exc)
                raise

            if attempt < policy.max_attempts - 1:
                delay = policy.delay_seconds(attempt, random_fn())
                logger.warning(
                    "%s: rate limit exceeded, retrying in %.1fs (attempt %d/%d)",
                    label,
                    delay,
                    attempt + 2,
                    policy.max_attempts,
                )
                await sleep(delay)
            else:
                logger.error(
                    "%s: failed after %d attempts due to persistent rate limiting: %s",
                    label,
                    policy.max_attempts,
                    exc,
                )

    raise ServiceOverloadedError(OVERLOADED_MESSAGE) from None
