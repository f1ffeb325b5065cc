"""Scraper utilities for rate limiting, retries, browser handling and price parsing."""

from .rate_limiter import DomainRateLimiter, TokenBucket
from .user_agents import get_random_user_agent, browser_headers, USER_AGENTS
from .normalizer import PriceNormalizer, MAX_PRICE
from .retry import http_retry, TRANSIENT_HTTP_ERRORS


__all__ = [
    # Rate limiting
    "DomainRateLimiter",
    "TokenBucket",
    # User agents
    "get_random_user_agent",
    "browser_headers",
    "USER_AGENTS",
    # Normalization
    "PriceNormalizer",
    "MAX_PRICE",
    # Retry
    "http_retry",
    "TRANSIENT_HTTP_ERRORS",
]
