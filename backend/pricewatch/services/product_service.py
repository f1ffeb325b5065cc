"""Product monitor service: monitor lifecycle and price history.

Handles adding monitors (with an initial scrape), looking them up, recording
observations from scheduled checks and purging old history.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pricewatch.core.clock import Clock, utcnow
from pricewatch.core.exceptions import DuplicateMonitorError, NotFoundError
from pricewatch.models.price_history import PriceObservation
from pricewatch.models.product import ProductMonitor
from pricewatch.scrapers.base import ScrapeResult
from pricewatch.scrapers.scraper_service import PriceScraper
from pricewatch.scrapers.url_parser import parse_url

logger = structlog.get_logger(__name__)


class ProductService:
    """Service for managing product monitors and their observations."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        """Initialize product service.

        Args:
            db: Async database session
            clock: Time source for timestamps
        """
        self.db = db
        self.clock = clock
        self.logger = logger.bind(service="product_service")

    async def add_monitor(
        self,
        url: str,
        scraper: PriceScraper,
        target_price: Optional[Decimal] = None,
        selector: Optional[str] = None,
        name: Optional[str] = None,
    ) -> ProductMonitor:
        """Start tracking a product URL.

        The URL is canonicalized and scraped once so the monitor starts out
        with a name, image and (when found) a first observation.

        Args:
            url: Product page URL as supplied by the user
            scraper: Scraper used for the initial check
            target_price: Optional alert threshold
            selector: Optional CSS selector override for the price element
            name: Optional display name; scraped name used when omitted

        Returns:
            The created ProductMonitor

        Raises:
            InvalidURLError: If the URL cannot be parsed
            DuplicateMonitorError: If the canonical URL is already tracked
        """
        parsed = parse_url(url)

        if await self.get_monitor_by_url(parsed.clean_url):
            raise DuplicateMonitorError(parsed.clean_url)

        try:
            result = await scraper.scrape_price(parsed.clean_url, selector)
        except Exception as e:
            self.logger.warning("initial_scrape_failed", url=parsed.clean_url, error=str(e))
            result = ScrapeResult(price=None, currency="", is_available=False, error=str(e))
        now = self.clock()

        monitor = ProductMonitor(
            name=name or result.product_name or f"Product from {parsed.store}",
            url=parsed.clean_url,
            store=parsed.store,
            external_id=parsed.product_id,
            selector=selector,
            image_url=result.image_url,
            current_price=result.price,
            target_price=target_price,
            is_active=True,
            last_checked=now,
        )
        self.db.add(monitor)
        await self.db.flush()

        if result.price is not None:
            self.db.add(PriceObservation(
                product_id=monitor.id,
                price=result.price,
                currency=result.currency,
                is_available=result.is_available,
                scraped_at=now,
            ))

        await self.db.commit()

        self.logger.info(
            "monitor_added",
            product_id=str(monitor.id),
            store=monitor.store,
            price=str(result.price) if result.price is not None else None,
            target_price=str(target_price) if target_price is not None else None,
        )
        return monitor

    async def get_monitor(self, product_id: UUID) -> Optional[ProductMonitor]:
        result = await self.db.execute(
            select(ProductMonitor).where(ProductMonitor.id == product_id)
        )
        return result.scalar_one_or_none()

    async def get_monitor_by_url(self, url: str) -> Optional[ProductMonitor]:
        """Look up a monitor by canonical URL."""
        result = await self.db.execute(
            select(ProductMonitor).where(ProductMonitor.url == url)
        )
        return result.scalar_one_or_none()

    async def get_active_monitors(self) -> List[ProductMonitor]:
        """All monitors that scheduled checks should visit."""
        result = await self.db.execute(
            select(ProductMonitor)
            .where(ProductMonitor.is_active == True)
            .order_by(ProductMonitor.created_at)
        )
        return list(result.scalars().all())

    async def set_active(self, product_id: UUID, is_active: bool) -> ProductMonitor:
        """Suspend or resume scheduled checks for a monitor.

        Raises:
            NotFoundError: If the monitor does not exist
        """
        monitor = await self.get_monitor(product_id)
        if not monitor:
            raise NotFoundError("ProductMonitor", str(product_id))

        monitor.is_active = is_active
        await self.db.commit()
        self.logger.info("monitor_active_changed", product_id=str(product_id), is_active=is_active)
        return monitor

    async def get_latest_observation(self, product_id: UUID) -> Optional[PriceObservation]:
        result = await self.db.execute(
            select(PriceObservation)
            .where(PriceObservation.product_id == product_id)
            .order_by(PriceObservation.scraped_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_prior_state(self, monitor: ProductMonitor) -> Tuple[Optional[Decimal], bool]:
        """Price and availability as of before the next observation.

        Availability comes from the newest observation. A monitor with a
        price but no observations counts as available, one without a price
        as unavailable.

        Must be called before the new observation is recorded.
        """
        prior_price = monitor.current_price
        latest = await self.get_latest_observation(monitor.id)
        if latest is not None:
            return prior_price, latest.is_available
        return prior_price, prior_price is not None

    async def record_observation(
        self,
        monitor: ProductMonitor,
        result: ScrapeResult,
        observed_at: Optional[datetime] = None,
    ) -> PriceObservation:
        """Append an observation and update the monitor's current view.

        The caller commits.
        """
        if result.price is None:
            raise ValueError("Cannot record an observation without a price")

        now = observed_at or self.clock()
        observation = PriceObservation(
            product_id=monitor.id,
            price=result.price,
            currency=result.currency,
            is_available=result.is_available,
            scraped_at=now,
        )
        self.db.add(observation)

        monitor.current_price = result.price
        monitor.last_checked = now
        if result.image_url and not monitor.image_url:
            monitor.image_url = result.image_url

        await self.db.flush()

        self.logger.debug(
            "observation_recorded",
            product_id=str(monitor.id),
            price=str(result.price),
            is_available=result.is_available,
        )
        return observation

    async def get_price_history(self, product_id: UUID, limit: int = 100) -> List[PriceObservation]:
        """Newest-first observations for a monitor."""
        result = await self.db.execute(
            select(PriceObservation)
            .where(PriceObservation.product_id == product_id)
            .order_by(PriceObservation.scraped_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def purge_price_history(self, cutoff: datetime) -> int:
        """Delete observations older than ``cutoff``. The caller commits.

        Returns:
            Number of rows removed
        """
        result = await self.db.execute(
            delete(PriceObservation)
            .where(PriceObservation.scraped_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0
        self.logger.info("price_history_purged", cutoff=cutoff.isoformat(), deleted=deleted)
        return deleted
