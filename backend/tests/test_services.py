"""Tests for the product and notification services.

Tests cover:
- Monitor lifecycle (add, duplicate detection, activation)
- Prior-state lookup used by alert evaluation
- Pushover delivery and notification statistics
"""

from decimal import Decimal
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from pricewatch.core.exceptions import DuplicateMonitorError, InvalidURLError, NotFoundError
from pricewatch.models import NotificationEvent, NotificationType
from pricewatch.services.notification_service import NotificationService, PushoverNotifier
from pricewatch.services.product_service import ProductService

from conftest import FakeScraper, RecordingNotifier, no_price, priced

URL = "https://www.jbhifi.com.au/products/sony-wh1000xm5"


# ============================================================================
# PRODUCT SERVICE
# ============================================================================

class TestProductService:
    """Test monitor lifecycle operations."""

    async def test_add_monitor(self, test_db: AsyncSession, clock):
        """Test a new monitor is canonicalized, named and priced."""
        scraper = FakeScraper()
        scraper.queue(URL, priced("399.00", name="Sony WH-1000XM5"))
        service = ProductService(test_db, clock=clock)

        monitor = await service.add_monitor(URL + "?utm_source=ad", scraper, target_price=Decimal("350"))

        assert monitor.url == URL
        assert monitor.store == "JB Hi-Fi"
        assert monitor.external_id == "sony-wh1000xm5"
        assert monitor.name == "Sony WH-1000XM5"
        assert monitor.current_price == Decimal("399.00")
        assert monitor.target_price == Decimal("350")
        assert monitor.is_active

        history = await service.get_price_history(monitor.id)
        assert len(history) == 1
        assert history[0].price == Decimal("399.00")

    async def test_add_monitor_without_price(self, test_db: AsyncSession, clock):
        """Test a failed initial scrape still creates the monitor, without history."""
        scraper = FakeScraper()
        scraper.queue(URL, no_price())
        service = ProductService(test_db, clock=clock)

        monitor = await service.add_monitor(URL, scraper)

        assert monitor.name == "Product from JB Hi-Fi"
        assert monitor.current_price is None
        assert await service.get_price_history(monitor.id) == []

    async def test_add_monitor_scrape_error_is_logged(self, test_db: AsyncSession, clock):
        """Test an exception from the initial scrape does not block creation."""
        scraper = FakeScraper()
        scraper.queue(URL, RuntimeError("browser crashed"))

        monitor = await ProductService(test_db, clock=clock).add_monitor(URL, scraper, name="Headphones")

        assert monitor.name == "Headphones"
        assert monitor.current_price is None

    async def test_duplicate_url_rejected(self, test_db: AsyncSession, clock):
        """Test the same canonical URL cannot be tracked twice."""
        scraper = FakeScraper()
        scraper.queue(URL, priced(399))
        service = ProductService(test_db, clock=clock)
        await service.add_monitor(URL, scraper)

        with pytest.raises(DuplicateMonitorError):
            await service.add_monitor(URL + "?utm_campaign=x", scraper)

        assert len(scraper.calls) == 1

    async def test_invalid_url_rejected(self, test_db: AsyncSession):
        """Test invalid URLs never reach the scraper."""
        scraper = FakeScraper()

        with pytest.raises(InvalidURLError):
            await ProductService(test_db).add_monitor("javascript:alert(1)", scraper)

        assert scraper.calls == []

    async def test_set_active(self, test_db: AsyncSession, clock):
        """Test deactivated monitors drop out of the active list."""
        scraper = FakeScraper()
        scraper.queue(URL, priced(399))
        service = ProductService(test_db, clock=clock)
        monitor = await service.add_monitor(URL, scraper)

        await service.set_active(monitor.id, False)

        assert await service.get_active_monitors() == []

    async def test_set_active_unknown_monitor(self, test_db: AsyncSession):
        with pytest.raises(NotFoundError):
            await ProductService(test_db).set_active(uuid4(), True)

    async def test_prior_state_follows_latest_observation(self, test_db: AsyncSession, clock):
        """Test prior availability comes from the newest observation."""
        scraper = FakeScraper()
        scraper.queue(URL, priced(399, available=False))
        service = ProductService(test_db, clock=clock)
        monitor = await service.add_monitor(URL, scraper)

        assert await service.get_prior_state(monitor) == (Decimal("399"), False)

        clock.advance(minutes=30)
        await service.record_observation(monitor, priced(380, available=True))
        await test_db.commit()

        assert await service.get_prior_state(monitor) == (Decimal("380"), True)


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class TestPushoverNotifier:
    """Test the Pushover channel."""

    async def test_without_credentials_only_logs(self, test_settings):
        """Test no request is made without credentials."""
        def handler(request):
            raise AssertionError("no request expected")

        notifier = PushoverNotifier(settings=test_settings, transport=httpx.MockTransport(handler))

        assert await notifier.deliver("hello") is False

    async def test_posts_message(self, test_settings):
        """Test the API payload carries title, priority and product link."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"status": 1})

        test_settings.PUSHOVER_TOKEN = "app-token"
        test_settings.PUSHOVER_USER = "user-key"
        notifier = PushoverNotifier(settings=test_settings, transport=httpx.MockTransport(handler))

        sent = await notifier.deliver("Price dropped", title="Price Drop Alert", priority=0, url=URL)

        assert sent is True
        assert seen["url"] == test_settings.PUSHOVER_API_URL
        assert "token=app-token" in seen["body"]
        assert "title=Price+Drop+Alert" in seen["body"]
        assert "url_title=View+Product" in seen["body"]
        assert "sound=gamelan" in seen["body"]

    async def test_high_priority_uses_alert_sound(self, test_settings):
        """Test priority messages get the louder sound."""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content.decode())
            return httpx.Response(200, json={"status": 1})

        test_settings.PUSHOVER_TOKEN = "app-token"
        test_settings.PUSHOVER_USER = "user-key"
        notifier = PushoverNotifier(settings=test_settings, transport=httpx.MockTransport(handler))

        assert await notifier.deliver("Target hit", title="Target Price Reached", priority=1) is True
        assert "priority=1" in bodies[0]
        assert "sound=pushover" in bodies[0]

    async def test_api_error_returns_false(self, test_settings):
        """Test a rejected request is reported, not raised."""
        test_settings.PUSHOVER_TOKEN = "app-token"
        test_settings.PUSHOVER_USER = "user-key"
        notifier = PushoverNotifier(
            settings=test_settings,
            transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"status": 0})),
        )

        assert await notifier.deliver("hello") is False


class TestNotificationService:
    """Test dispatch bookkeeping helpers."""

    async def test_stats_and_test_notification(self, test_db: AsyncSession, clock):
        """Test per-type and sent/pending counts."""
        scraper = FakeScraper()
        scraper.queue(URL, priced(399))
        monitor = await ProductService(test_db, clock=clock).add_monitor(URL, scraper)
        for kind, sent in [
            (NotificationType.PRICE_DROP, True),
            (NotificationType.PRICE_DROP, False),
            (NotificationType.TARGET_REACHED, False),
        ]:
            test_db.add(NotificationEvent(
                product_id=monitor.id, type=kind.value, message="m", sent=sent, created_at=clock(),
            ))
        await test_db.commit()

        notifier = RecordingNotifier()
        service = NotificationService(test_db, notifier, clock=clock)

        stats = await service.get_notification_stats()
        assert stats["total"] == 3
        assert stats["sent"] == 1
        assert stats["pending"] == 2
        assert stats["price_drop"] == 2
        assert stats["target_reached"] == 1

        assert await service.send_test_notification() is True
        assert notifier.sent[0]["title"] == "Test Notification"
