"""Token bucket rate limiter for per-domain request pacing."""

import asyncio
import time
from typing import Dict


class TokenBucket:
    """Token bucket algorithm implementation for rate limiting.

    The bucket starts full and refills at a constant rate.
    Each request consumes one token. If no tokens are available,
    the request waits until tokens are refilled.
    """

    def __init__(self, rate: float, capacity: float):
        """Initialize token bucket.

        Args:
            rate: Tokens per second (e.g., 1.0 = 60 RPM)
            capacity: Maximum tokens in bucket (burst capacity)
        """
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens from the bucket, waiting if necessary."""
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                wait_time = (tokens - self.tokens) / self.rate
                await asyncio.sleep(wait_time)


class DomainRateLimiter:
    """Per-domain rate limiter shared by both fetch modes.

    A product check may hit the same retailer twice (rendered, then static),
    and a tick checks many products of the same retailer, so requests are
    paced per bare domain.
    """

    # Requests per minute for known retailers
    DOMAIN_LIMITS_RPM = {
        "amazon.com.au": 20,
        "amazon.com": 20,
        "ebay.com.au": 30,
        "ebay.com": 30,
        "jbhifi.com.au": 15,
        "harveynorman.com.au": 10,
        "woolworths.com.au": 10,
        "coles.com.au": 10,
    }

    DEFAULT_RPM = 20

    def __init__(self):
        self._buckets: Dict[str, TokenBucket] = {}

    def _get_bucket(self, domain: str) -> TokenBucket:
        if domain not in self._buckets:
            rpm = self.DOMAIN_LIMITS_RPM.get(domain, self.DEFAULT_RPM)
            # Capacity allows small bursts (10% of RPM, min 2)
            self._buckets[domain] = TokenBucket(rate=rpm / 60.0, capacity=max(2.0, rpm / 10.0))
        return self._buckets[domain]

    async def acquire(self, domain: str, tokens: float = 1.0) -> None:
        """Block until the domain's budget allows another request."""
        await self._get_bucket(domain).acquire(tokens)

    def get_current_rate(self, domain: str) -> float:
        """Current limit for a domain in requests per minute."""
        return self._get_bucket(domain).rate * 60.0
