"""Notification delivery.

Pending notification events are handed to a ``Notifier`` in small batches.
Pushover is the built-in channel; without credentials messages are only
logged. Events are marked sent after one attempt whatever the outcome, so a
broken channel never causes repeated delivery attempts.
"""

from typing import Dict, Optional, Protocol, Tuple

import httpx
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricewatch.config import Settings, settings as default_settings
from pricewatch.core.clock import Clock, utcnow
from pricewatch.models.notification import NotificationEvent, NotificationType

logger = structlog.get_logger(__name__)

# type -> (title, Pushover priority)
NOTIFICATION_STYLES: Dict[str, Tuple[str, int]] = {
    NotificationType.TARGET_REACHED.value: ("Target Price Reached", 1),
    NotificationType.PRICE_DROP.value: ("Price Drop Alert", 0),
    NotificationType.BACK_IN_STOCK.value: ("Stock Alert", 0),
}
DEFAULT_TITLE = "Price Tracker"
TEST_TITLE = "Test Notification"
TEST_MESSAGE = "Price tracker is working correctly!"


class Notifier(Protocol):
    async def deliver(
        self,
        message: str,
        title: str = DEFAULT_TITLE,
        priority: int = 0,
        url: Optional[str] = None,
    ) -> bool:
        ...


class PushoverNotifier:
    """Sends push messages through the Pushover API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or default_settings
        self._transport = transport
        self.logger = logger.bind(service="pushover_notifier")

    @property
    def enabled(self) -> bool:
        return self.settings.has_pushover_credentials()

    async def deliver(
        self,
        message: str,
        title: str = DEFAULT_TITLE,
        priority: int = 0,
        url: Optional[str] = None,
    ) -> bool:
        """Send one message.

        Returns:
            True if Pushover accepted it, False if it was only logged or failed
        """
        if not self.enabled:
            self.logger.info("notification_logged", title=title, message=message)
            return False

        payload = {
            "token": self.settings.PUSHOVER_TOKEN,
            "user": self.settings.PUSHOVER_USER,
            "title": title,
            "message": message,
            "priority": priority,
            "sound": "pushover" if priority > 0 else "gamelan",
        }
        if url:
            payload["url"] = url
            payload["url_title"] = "View Product"

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(self.settings.PUSHOVER_API_URL, data=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.error("notification_send_failed", title=title, error=str(e))
            return False

        self.logger.info("notification_sent", title=title)
        return True


class NotificationService:
    """Dispatches pending notification events."""

    def __init__(self, db: AsyncSession, notifier: Notifier, clock: Clock = utcnow):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.logger = logger.bind(service="notification_service")

    async def send_pending(self, batch_size: int = 10) -> Dict[str, int]:
        """Deliver the oldest unsent events, marking each one sent.

        Args:
            batch_size: Maximum events handled in this call

        Returns:
            Dict with ``processed``, ``delivered`` and ``failed`` counts
        """
        result = await self.db.execute(
            select(NotificationEvent)
            .options(selectinload(NotificationEvent.product))
            .where(NotificationEvent.sent == False)
            .order_by(NotificationEvent.created_at)
            .limit(batch_size)
        )
        events = list(result.scalars().all())

        stats = {"processed": 0, "delivered": 0, "failed": 0}
        for event in events:
            title, priority = NOTIFICATION_STYLES.get(event.type, (DEFAULT_TITLE, 0))
            try:
                delivered = await self.notifier.deliver(
                    event.message,
                    title=title,
                    priority=priority,
                    url=event.product.url if event.product else None,
                )
            except Exception as e:
                self.logger.error(
                    "notification_delivery_crashed",
                    notification_id=str(event.id),
                    error=str(e),
                    exc_info=True,
                )
                delivered = False

            event.sent = True
            event.sent_at = self.clock()
            stats["processed"] += 1
            stats["delivered" if delivered else "failed"] += 1

        if events:
            await self.db.commit()
            self.logger.info("notifications_dispatched", **stats)

        return stats

    async def get_notification_stats(self) -> Dict[str, int]:
        """Counts of sent and pending events, plus per-type totals."""
        result = await self.db.execute(
            select(NotificationEvent.type, NotificationEvent.sent, func.count(NotificationEvent.id))
            .group_by(NotificationEvent.type, NotificationEvent.sent)
        )
        stats = {"total": 0, "sent": 0, "pending": 0}
        for kind, sent, count in result.all():
            stats["total"] += count
            stats["sent" if sent else "pending"] += count
            stats[kind] = stats.get(kind, 0) + count
        return stats

    async def send_test_notification(self) -> bool:
        """Push a fixed message to check the channel configuration."""
        return await self.notifier.deliver(
            TEST_MESSAGE,
            title=TEST_TITLE,
        )
