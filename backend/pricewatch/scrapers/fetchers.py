"""Page fetchers: headless-browser rendering and plain HTTP.

Both implement the ``FetchStrategy`` protocol and raise ``FetchError`` for
any retrieval failure. ``DocumentFetcher`` holds them in preference order
(rendered first; static as the fallback).
"""

from typing import List, Optional, Sequence

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError

from pricewatch.config import Settings, settings as default_settings
from pricewatch.core.exceptions import FetchError
from pricewatch.scrapers.base import RENDERED, STATIC, FetchStrategy, RenderedDocument
from pricewatch.scrapers.url_parser import get_domain
from pricewatch.scrapers.utils.browser_manager import BrowserManager, get_browser_manager
from pricewatch.scrapers.utils.rate_limiter import DomainRateLimiter
from pricewatch.scrapers.utils.retry import http_retry
from pricewatch.scrapers.utils.user_agents import browser_headers

logger = structlog.get_logger(__name__)


class RenderedFetcher:
    """Fetch a page through headless Chromium so client-side prices render."""

    mode = RENDERED

    def __init__(
        self,
        browser_manager: Optional[BrowserManager] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
        settings: Optional[Settings] = None,
    ):
        self.browser_manager = browser_manager or get_browser_manager()
        self.rate_limiter = rate_limiter
        self.settings = settings or default_settings
        self.logger = logger.bind(mode=self.mode)

    async def fetch(self, url: str, wait_selector: Optional[str] = None) -> RenderedDocument:
        domain = get_domain(url)
        if self.rate_limiter:
            await self.rate_limiter.acquire(domain)

        page = None
        try:
            page = await self.browser_manager.new_page(domain or "default")
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.settings.FETCH_TIMEOUT_SECONDS * 1000,
            )
            # Let client-side price widgets hydrate
            await page.wait_for_timeout(self.settings.RENDER_SETTLE_MS)

            if wait_selector:
                try:
                    await page.wait_for_selector(wait_selector, timeout=self.settings.SELECTOR_WAIT_MS)
                except PlaywrightError as e:
                    self.logger.info("wait_selector_not_found", url=url, selector=wait_selector, error=str(e))

            html = await page.content()
            final_url = page.url or url
        except PlaywrightError as e:
            raise FetchError(self.mode, url, str(e)) from e
        finally:
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as e:
                    self.logger.debug("page_close_failed", url=url, error=str(e))

        self.logger.debug("page_fetched", url=final_url, size=len(html))
        return RenderedDocument(url=final_url, html=html, mode=self.mode)


class StaticFetcher:
    """Fetch raw HTML over HTTP with browser-like headers."""

    mode = STATIC

    def __init__(
        self,
        rate_limiter: Optional[DomainRateLimiter] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rate_limiter = rate_limiter
        self.settings = settings or default_settings
        self._transport = transport
        self._get = http_retry(self.settings.STATIC_FETCH_ATTEMPTS)(self._request)
        self.logger = logger.bind(mode=self.mode)

    async def _request(self, url: str) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.settings.FETCH_TIMEOUT_SECONDS,
            headers=browser_headers(self.settings.BROWSER_LOCALE),
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response

    async def fetch(self, url: str, wait_selector: Optional[str] = None) -> RenderedDocument:
        if self.rate_limiter:
            await self.rate_limiter.acquire(get_domain(url))

        try:
            response = await self._get(url)
        except httpx.HTTPStatusError as e:
            raise FetchError(self.mode, url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(self.mode, url, str(e) or type(e).__name__) from e

        self.logger.debug("page_fetched", url=str(response.url), status=response.status_code)
        return RenderedDocument(url=str(response.url), html=response.text, mode=self.mode)


class DocumentFetcher:
    """Ordered list of fetch strategies."""

    def __init__(self, strategies: Sequence[FetchStrategy]):
        self.strategies: List[FetchStrategy] = list(strategies)

    async def fetch_document(self, url: str, wait_selector: Optional[str] = None) -> RenderedDocument:
        """Return the first document any strategy retrieves.

        Raises:
            FetchError: If every strategy fails
        """
        reasons = []
        for strategy in self.strategies:
            try:
                return await strategy.fetch(url, wait_selector)
            except FetchError as e:
                logger.warning("fetch_mode_failed", url=url, mode=e.mode, error=e.reason)
                reasons.append(f"{e.mode}: {e.reason}")
        raise FetchError("all", url, "; ".join(reasons) or "no fetch strategies configured")


def build_document_fetcher(settings: Optional[Settings] = None) -> DocumentFetcher:
    """Production fetcher: rendered first, static fallback, shared pacing."""
    limiter = DomainRateLimiter()
    return DocumentFetcher([
        RenderedFetcher(rate_limiter=limiter, settings=settings),
        StaticFetcher(rate_limiter=limiter, settings=settings),
    ])
