"""Playwright browser lifecycle manager.

One headless Chromium is shared by every rendered fetch, with a browser
context per retailer domain so cookies and consent state persist between
checks of the same store.
"""

import asyncio
from typing import Dict, Optional

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from pricewatch.config import settings
from pricewatch.scrapers.utils.user_agents import get_random_user_agent

logger = structlog.get_logger(__name__)


class BrowserManager:
    """Manages Playwright browser lifecycle.

    Contexts are created lazily with:
    - A desktop user agent and viewport
    - Australian locale and timezone
    - Stealth JS to mask automation signals
    - Font blocking for faster loads (images stay, their URLs are read
      from the DOM and never need to download)
    """

    def __init__(
        self,
        headless: bool = True,
        locale: str = "en-AU",
        timezone_id: str = "Australia/Sydney",
        block_resources: bool = True,
    ):
        self._headless = headless
        self._locale = locale
        self._timezone_id = timezone_id
        self._block_resources = block_resources
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._contexts: Dict[str, BrowserContext] = {}

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch the browser. Safe to call repeatedly."""
        async with self._lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                ],
            )
            logger.info("browser_started", headless=self._headless)

    async def stop(self) -> None:
        """Close all contexts and the browser."""
        async with self._lock:
            for name, ctx in self._contexts.items():
                try:
                    await ctx.close()
                except PlaywrightError as e:
                    logger.debug("browser_context_close_failed", name=name, error=str(e))
            self._contexts.clear()

            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    async def get_context(self, name: str = "default") -> BrowserContext:
        """Get or create a named browser context (one per retailer domain)."""
        if name in self._contexts:
            return self._contexts[name]

        if not self._browser:
            await self.start()

        context = await self._browser.new_context(
            user_agent=get_random_user_agent(),
            viewport={"width": 1920, "height": 1080},
            locale=self._locale,
            timezone_id=self._timezone_id,
            java_script_enabled=True,
            bypass_csp=True,
        )

        await context.add_init_script(STEALTH_JS % {"locale": self._locale})

        if self._block_resources:
            await context.route(
                "**/*.{woff,woff2,ttf,eot}",
                lambda route: route.abort(),
            )

        self._contexts[name] = context
        logger.info("browser_context_created", name=name)
        return context

    async def new_page(self, name: str = "default") -> Page:
        """Convenience: get context and open a new page."""
        ctx = await self.get_context(name)
        return await ctx.new_page()

    async def close_context(self, name: str) -> None:
        """Close a specific context by name."""
        ctx = self._contexts.pop(name, None)
        if ctx:
            await ctx.close()


# Minimal stealth JS to mask automation signals
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['%(locale)s', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
"""


_browser_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Get the global BrowserManager singleton."""
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager(
            headless=settings.BROWSER_HEADLESS,
            locale=settings.BROWSER_LOCALE,
            timezone_id=settings.SCHEDULER_TIMEZONE,
        )
    return _browser_manager


async def shutdown_browser_manager() -> None:
    """Stop the global browser if it was ever started."""
    global _browser_manager
    if _browser_manager is not None:
        await _browser_manager.stop()
        _browser_manager = None
