"""Utility functions for Inbox Triage."""

from __future__ import annotations

import asyncio
import logging
import random
import re
from functools import wraps
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

import structlog

from inbox_triage.exceptions import RateLimitError

if TYPE_CHECKING:
    from inbox_triage.config import Settings

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

# Zero-width and other invisible characters Gmail puts in snippets.
_INVISIBLE_RE = re.compile(r"[\u034f\u200b-\u200d\ufeff\u00a0]+")


def retry_on_rate_limit(
    max_retries: int = 3,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (RateLimitError,),
) -> Callable[[F], F]:
    """Decorator to retry a coroutine on rate limiting with exponential backoff.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates immediately. The wait before retry ``n`` (0-based) is
    ``base_delay * 2**n`` plus uniform jitter in ``[0, base_delay)``.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Initial delay between retries in seconds.
        retry_on: Exception types that trigger a retry.

    Returns:
        Decorated coroutine function with retry logic.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_retries:
                        logger.error(
                            "rate_limit_retry_exhausted",
                            function=func.__name__,
                            attempts=attempt + 1,
                            error=str(e),
                        )
                        raise

                    delay = base_delay * (2**attempt) + random.uniform(0, base_delay)
                    logger.warning(
                        "rate_limit_retry",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=round(delay, 3),
                        error=str(e),
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper  # type: ignore

    return decorator


def configure_logging(settings: Settings) -> None:
    """Install a structlog filtering logger at the configured level."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def clean_snippet(snippet: str) -> str:
    """Remove invisible characters from a snippet and trim it."""
    return _INVISIBLE_RE.sub("", snippet).strip()


def normalize_address(address: str | None) -> str:
    """Normalize an email address for comparisons."""
    return (address or "").strip().lower()
