"""Alert evaluation: turns a new observation into notification events.

Each check compares the prior state of a monitor (captured before the new
observation was stored) with the new observation:

- price drop: any decrease from the prior current price
- target reached: first crossing to or below the target; re-arms only after
  an observation above the target following the last such alert
- stock: edge-triggered on availability flips (out of stock / restocked)
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pricewatch.core.clock import Clock, utcnow
from pricewatch.models.notification import NotificationEvent, NotificationType
from pricewatch.models.price_history import PriceObservation
from pricewatch.models.product import ProductMonitor

logger = structlog.get_logger(__name__)

OUT_OF_STOCK = "out_of_stock"
RESTOCKED = "restocked"


def is_price_drop(prior_price: Optional[Decimal], new_price: Decimal) -> bool:
    return prior_price is not None and new_price < prior_price


def is_target_crossing(
    prior_price: Optional[Decimal],
    new_price: Decimal,
    target_price: Optional[Decimal],
) -> bool:
    """New price at/below target while the prior one was above it (or unknown)."""
    if target_price is None or new_price > target_price:
        return False
    return prior_price is None or prior_price > target_price


def stock_transition(prior_available: bool, now_available: bool) -> Optional[str]:
    if prior_available and not now_available:
        return OUT_OF_STOCK
    if not prior_available and now_available:
        return RESTOCKED
    return None


def format_price_drop(name: str, prior_price: Decimal, new_price: Decimal) -> str:
    saving = prior_price - new_price
    percent = saving / prior_price * 100
    return (
        f"Price drop alert! {name} dropped from ${prior_price:.2f} to ${new_price:.2f} "
        f"(saved ${saving:.2f}, {percent:.1f}% off)"
    )


def format_target_reached(name: str, new_price: Decimal, target_price: Decimal) -> str:
    return f"Target price reached! {name} is now ${new_price:.2f} (target: ${target_price:.2f})"


def format_stock_change(name: str, transition: str, new_price: Decimal) -> str:
    if transition == OUT_OF_STOCK:
        return f"{name} is currently out of stock"
    return f"Good news! {name} is back in stock for ${new_price:.2f}"


class AlertService:
    """Decides which notification events a new observation produces."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.logger = logger.bind(service="alert_service")

    async def evaluate(
        self,
        monitor: ProductMonitor,
        prior_price: Optional[Decimal],
        prior_available: bool,
        observation: PriceObservation,
        now: Optional[datetime] = None,
    ) -> List[NotificationEvent]:
        """Create the notification events for one observation.

        Args:
            monitor: The monitor the observation belongs to
            prior_price: Current price before this observation
            prior_available: Availability before this observation
            observation: The observation just recorded
            now: Creation time for the events (defaults to the clock)

        Returns:
            The events added to the session (not yet committed)
        """
        created_at = now or self.clock()
        new_price = observation.price
        events: List[NotificationEvent] = []

        if is_price_drop(prior_price, new_price):
            events.append(self._event(
                monitor,
                NotificationType.PRICE_DROP,
                format_price_drop(monitor.name, prior_price, new_price),
                created_at,
            ))

        if await self.should_notify_target(monitor, prior_price, new_price):
            events.append(self._event(
                monitor,
                NotificationType.TARGET_REACHED,
                format_target_reached(monitor.name, new_price, monitor.target_price),
                created_at,
            ))

        transition = stock_transition(prior_available, observation.is_available)
        if transition:
            events.append(self._event(
                monitor,
                NotificationType.BACK_IN_STOCK,
                format_stock_change(monitor.name, transition, new_price),
                created_at,
            ))

        if events:
            self.db.add_all(events)
            await self.db.flush()
            self.logger.info(
                "notifications_created",
                product_id=str(monitor.id),
                types=[event.type for event in events],
            )

        return events

    async def should_notify_target(
        self,
        monitor: ProductMonitor,
        prior_price: Optional[Decimal],
        new_price: Decimal,
    ) -> bool:
        """Target crossing that has not already been announced.

        After a target alert, another one is only allowed once some
        observation recorded after that alert was above the target.
        """
        if not is_target_crossing(prior_price, new_price, monitor.target_price):
            return False

        last_alert_at = await self.db.scalar(
            select(NotificationEvent.created_at)
            .where(
                NotificationEvent.product_id == monitor.id,
                NotificationEvent.type == NotificationType.TARGET_REACHED.value,
            )
            .order_by(NotificationEvent.created_at.desc())
            .limit(1)
        )
        if last_alert_at is None:
            return True

        rose_above = await self.db.scalar(
            select(func.count(PriceObservation.id)).where(
                PriceObservation.product_id == monitor.id,
                PriceObservation.scraped_at > last_alert_at,
                PriceObservation.price > monitor.target_price,
            )
        )
        if not rose_above:
            self.logger.debug("target_alert_suppressed", product_id=str(monitor.id))
        return bool(rose_above)

    @staticmethod
    def _event(
        monitor: ProductMonitor,
        kind: NotificationType,
        message: str,
        created_at: datetime,
    ) -> NotificationEvent:
        return NotificationEvent(
            product_id=monitor.id,
            type=kind.value,
            message=message,
            sent=False,
            created_at=created_at,
        )
