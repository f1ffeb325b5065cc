"""Retry policies with exponential backoff for page fetches."""

import logging

import httpx
import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)


logger = structlog.get_logger(__name__)

# Transport-level failures worth another attempt. HTTP error statuses are
# not retried: a 403/404 from a retailer does not change a second later.
TRANSIENT_HTTP_ERRORS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)


def http_retry(attempts: int = 2):
    """Build a retry decorator for transient httpx failures.

    Args:
        attempts: Total attempts including the first call
    """
    return retry(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TRANSIENT_HTTP_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
