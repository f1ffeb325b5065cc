"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pricewatch.config import Settings
from pricewatch.db.utils import create_tables
from pricewatch.scrapers.base import RenderedDocument, ScrapeResult


# ============================================================================
# FAKES
# ============================================================================

class FakeClock:
    """Settable time source."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


Outcome = Union[ScrapeResult, BaseException]


class FakeScraper:
    """Returns queued ScrapeResults (or raises queued exceptions) per URL."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.outcomes: Dict[str, List[Outcome]] = {}
        self.calls: List[Tuple[str, Optional[str]]] = []

    def queue(self, url: str, *outcomes: Outcome) -> None:
        self.outcomes.setdefault(url, []).extend(outcomes)

    async def scrape_price(self, url: str, custom_selector: Optional[str] = None) -> ScrapeResult:
        self.calls.append((url, custom_selector))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[url].pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingNotifier:
    """Collects delivered messages; optionally fails every delivery."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[dict] = []

    async def deliver(self, message, title="Price Tracker", priority=0, url=None) -> bool:
        if self.fail:
            raise RuntimeError("channel down")
        self.sent.append({"message": message, "title": title, "priority": priority, "url": url})
        return True


def priced(price, available: bool = True, name: str = "Widget") -> ScrapeResult:
    """A successful scrape result."""
    return ScrapeResult(
        price=Decimal(str(price)),
        currency="AUD",
        is_available=available,
        product_name=name,
    )


def no_price() -> ScrapeResult:
    return ScrapeResult(
        price=None,
        currency="AUD",
        is_available=False,
        error="Unable to extract price with any method",
    )


def make_document(body: str, head: str = "", url: str = "https://shop.example.com/product/widget") -> RenderedDocument:
    return RenderedDocument(url=url, html=f"<html><head>{head}</head><body>{body}</body></html>")


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest_asyncio.fixture
async def test_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with one check at a time and no real channels."""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        MAX_CONCURRENT_CHECKS=1,
        SCHEDULER_TIMEZONE="UTC",
        CHECK_TIMEOUT_SECONDS=5.0,
        STATIC_FETCH_ATTEMPTS=1,
        RENDER_SETTLE_MS=0,
        NOTIFICATION_BATCH_SIZE=10,
        PRICE_HISTORY_RETENTION_DAYS=90,
        PUSHOVER_TOKEN="",
        PUSHOVER_USER="",
    )
