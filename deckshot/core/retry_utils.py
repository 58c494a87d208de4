"""Retry mechanisms with exponential backoff."""
import asyncio
import logging
import random
from typing import Callable, Any, Optional
from dataclasses import dataclass

from deckshot.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry mechanisms."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = False
    exceptions: tuple = (Exception,)

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given 0-based failed attempt."""
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay

    @classmethod
    def from_settings(cls, **overrides) -> "RetryConfig":
        """Build the part-upload policy from application settings."""
        values = {
            "max_attempts": settings.UPLOAD_MAX_RETRIES,
            "base_delay": settings.UPLOAD_RETRY_BASE_DELAY,
            "max_delay": settings.UPLOAD_RETRY_MAX_DELAY,
        }
        values.update(overrides)
        return cls(**values)


class RetryExhaustedError(Exception):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, attempts: int, last_exception: BaseException):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"All {attempts} attempts failed: {last_exception}")


async def retry_with_backoff(
    func: Callable,
    *args,
    config: RetryConfig = None,
    operation: Optional[str] = None,
    **kwargs
) -> Any:
    """Execute function with exponential backoff retry.

    Each attempt calls ``func`` afresh, so any per-attempt state (such as a
    signed URL) is rebuilt every time. No delay follows the final attempt.

    Raises:
        RetryExhaustedError: wrapping the last exception once the budget is spent.
    """
    if config is None:
        config = RetryConfig()
    if config.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    name = operation or getattr(func, "__name__", "operation")
    last_exception = None

    for attempt in range(config.max_attempts):
        try:
            result = func(*args, **kwargs)
            if asyncio.iscoroutine(result):
                return await result
            return result

        except config.exceptions as e:
            last_exception = e

            if attempt == config.max_attempts - 1:
                logger.error(f"All {config.max_attempts} attempts of {name} failed. Last exception: {e}")
                break

            delay = config.delay_for(attempt)
            logger.warning(f"{name} attempt {attempt + 1}/{config.max_attempts} failed: {e}. Retrying in {delay:.2f}s")
            await asyncio.sleep(delay)

    raise RetryExhaustedError(config.max_attempts, last_exception)
