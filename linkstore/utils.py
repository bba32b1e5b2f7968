"""
Utility functions for the link store.
"""
import logging
import secrets
import string
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from linkstore.config import settings
from linkstore.exceptions import TransientStoreError

# tenacity's log hooks call stdlib-style ``logger.log(level, msg)``
retry_logger = logging.getLogger(__name__)

T = TypeVar('T')

Clock = Callable[[], datetime]

TOKEN_ALPHABET = string.ascii_letters + string.digits


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, matching TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """
    Normalise a datetime for storage and comparison.

    Aware values are converted to UTC; naive values are taken as UTC already.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def generate_token(length: Optional[int] = None) -> str:
    """
    Generate a cryptographically random alphanumeric token.

    Args:
        length: Number of characters (default from config)

    Returns:
        Random token string
    """
    length = length or settings.token_length
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def async_retry(
    max_attempts: int = None,
    backoff_base: float = None,
    max_wait: int = None,
    retry_on: tuple = None
):
    """
    Decorator for retrying async functions with exponential backoff.

    Args:
        max_attempts: Maximum retry attempts (default from config)
        backoff_base: Base for exponential backoff (default from config)
        max_wait: Maximum wait time in seconds (default from config)
        retry_on: Tuple of exception types to retry on

    Returns:
        Decorated function with retry logic
    """
    max_attempts = max_attempts or settings.max_retries
    backoff_base = backoff_base or settings.retry_backoff_base
    max_wait = max_wait or settings.retry_max_wait

    if retry_on is None:
        retry_on = (TransientStoreError,)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=max_wait, exp_base=backoff_base),
            retry=retry_if_exception_type(retry_on),
            before_sleep=before_sleep_log(retry_logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await func(*args, **kwargs)

        return wrapper

    return decorator
