"""Retry utilities with exponential backoff for provider HTTP calls."""

import logging

import httpx
import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.stdlib.get_logger(__name__)


def is_retryable(exc: BaseException) -> bool:
    """Transport errors, 429 and 5xx are worth another attempt; other 4xx are not."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def http_retry(max_attempts: int = 2, min_wait: float = 0.5, max_wait: float = 4.0):
    """Retry decorator for provider HTTP calls.

    Waits stay short: the whole activation is bounded by its deadline, and the
    expiration timer cancels a retry that is still sleeping.

    Args:
        max_attempts: Max attempts including the first
        min_wait: Min wait between retries (seconds)
        max_wait: Max wait between retries (seconds)
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.5, min=min_wait, max=max_wait),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_from_config(retry_config):
    """Build an ``http_retry`` decorator from the ``retry`` config section (RetryConfig)."""
    return http_retry(
        max_attempts=retry_config.max_attempts,
        min_wait=retry_config.min_wait,
        max_wait=retry_config.max_wait,
    )
