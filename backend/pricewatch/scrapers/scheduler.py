"""APScheduler-based monitoring scheduler.

Three recurring jobs:

- price check: every active monitor is checked concurrently (bounded), each
  in its own session so one failing product never affects another
- notification dispatch: pending events are delivered in small batches
- retention: observations past the retention horizon are deleted daily
"""

import asyncio
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Optional
from uuid import UUID

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricewatch.config import Settings, settings as default_settings
from pricewatch.core.clock import Clock, utcnow
from pricewatch.core.exceptions import NotFoundError
from pricewatch.scrapers.scraper_service import PriceScraper
from pricewatch.services.alert_service import AlertService
from pricewatch.services.notification_service import NotificationService, Notifier
from pricewatch.services.product_service import ProductService

logger = structlog.get_logger(__name__)

PRICE_CHECK_JOB = "price_check"
NOTIFICATION_JOB = "notification_dispatch"
RETENTION_JOB = "history_retention"


class MonitorScheduler:
    """Runs periodic price checks, notification dispatch and retention.

    This scheduler:
    - Registers the three recurring jobs on start
    - Never lets a job run overlap with itself
    - Isolates per-monitor failures inside a price check tick
    - Handles errors without stopping the scheduler
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        scraper: PriceScraper,
        notifier: Notifier,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        """Initialize the scheduler.

        Args:
            db_session_factory: Async session factory for database access
            scraper: Scraper used for every check
            notifier: Delivery channel for notification events
            settings: Settings override, mainly for tests
            clock: Time source for observations, events and retention
            scheduler: APScheduler instance to register jobs on
        """
        self.db_session_factory = db_session_factory
        self.scraper = scraper
        self.notifier = notifier
        self.settings = settings or default_settings
        self.clock = clock
        self.scheduler = scheduler or AsyncIOScheduler(timezone=self.settings.SCHEDULER_TIMEZONE)
        self.logger = logger.bind(service="monitor_scheduler")
        self._semaphore = asyncio.Semaphore(max(1, self.settings.MAX_CONCURRENT_CHECKS))
        self._job_ids: Dict[str, str] = {}

    def start(self) -> None:
        """Register the recurring jobs and start the scheduler."""
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return

        tz = self.settings.SCHEDULER_TIMEZONE
        self._add_job(
            PRICE_CHECK_JOB,
            self.run_price_check,
            IntervalTrigger(minutes=self.settings.PRICE_CHECK_INTERVAL_MINUTES, timezone=tz),
        )
        self._add_job(
            NOTIFICATION_JOB,
            self.run_notification_dispatch,
            IntervalTrigger(minutes=self.settings.NOTIFICATION_INTERVAL_MINUTES, timezone=tz),
        )
        self._add_job(
            RETENTION_JOB,
            self.run_retention,
            CronTrigger(hour=self.settings.RETENTION_CRON_HOUR, minute=0, timezone=tz),
        )

        self.scheduler.start()
        self.logger.info(
            "scheduler_started",
            price_check_minutes=self.settings.PRICE_CHECK_INTERVAL_MINUTES,
            notification_minutes=self.settings.NOTIFICATION_INTERVAL_MINUTES,
            retention_hour=self.settings.RETENTION_CRON_HOUR,
        )

    def stop(self, wait: bool = True) -> None:
        """Stop the scheduler, by default waiting for running jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            self._job_ids.clear()
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    def _add_job(self, name: str, func: Callable[[], Awaitable], trigger) -> Job:
        job = self.scheduler.add_job(
            func=self._run_job,
            trigger=trigger,
            args=[name, func],
            id=name,
            name=name.replace("_", " ").title(),
            replace_existing=True,
            max_instances=1,  # a slow tick is skipped, never doubled up
            coalesce=True,
        )
        self._job_ids[name] = job.id
        self.logger.info("job_added", job=name, trigger=str(trigger))
        return job

    async def _run_job(self, name: str, func: Callable[[], Awaitable]) -> None:
        """Wrapper that APScheduler calls. Exceptions are logged, never raised."""
        try:
            await func()
        except Exception as e:
            self.logger.error("scheduled_job_failed", job=name, error=str(e), exc_info=True)

    # ------------------------------------------------------------------
    # Price checks
    # ------------------------------------------------------------------

    async def run_price_check(self) -> Dict[str, int]:
        """Check every active monitor once.

        Returns:
            Tally with ``checked``, ``no_price`` and ``failed`` counts
        """
        async with self.db_session_factory() as db:
            monitors = await ProductService(db, clock=self.clock).get_active_monitors()
            monitor_ids = [monitor.id for monitor in monitors]

        self.logger.info("price_check_started", monitors=len(monitor_ids))

        outcomes = await asyncio.gather(
            *(self.check_monitor(monitor_id) for monitor_id in monitor_ids),
            return_exceptions=True,
        )

        tally = {"checked": 0, "no_price": 0, "failed": 0}
        for monitor_id, outcome in zip(monitor_ids, outcomes):
            if isinstance(outcome, BaseException):
                tally["failed"] += 1
                self.logger.error(
                    "price_check_failed",
                    product_id=str(monitor_id),
                    error=str(outcome) or type(outcome).__name__,
                    exc_info=outcome,
                )
            elif outcome:
                tally["checked"] += 1
            else:
                tally["no_price"] += 1

        self.logger.info("price_check_completed", **tally)
        return tally

    async def check_monitor(self, monitor_id: UUID) -> bool:
        """Scrape one monitor and record the outcome.

        Returns:
            True if a price was recorded, False if none could be extracted

        Raises:
            NotFoundError: If the monitor no longer exists
        """
        async with self._semaphore:
            async with self.db_session_factory() as db:
                monitor = await ProductService(db).get_monitor(monitor_id)
                if monitor is None:
                    raise NotFoundError("ProductMonitor", str(monitor_id))
                url, selector, name = monitor.url, monitor.selector, monitor.name

            log = self.logger.bind(product_id=str(monitor_id), name=name)

            result = await asyncio.wait_for(
                self.scraper.scrape_price(url, selector),
                timeout=self.settings.CHECK_TIMEOUT_SECONDS,
            )
            if result.price is None:
                log.warning("price_not_extracted", error=result.error)
                return False

            async with self.db_session_factory() as db:
                products = ProductService(db, clock=self.clock)
                monitor = await products.get_monitor(monitor_id)
                if monitor is None:
                    raise NotFoundError("ProductMonitor", str(monitor_id))

                prior_price, prior_available = await products.get_prior_state(monitor)
                now = self.clock()
                observation = await products.record_observation(monitor, result, now)
                events = await AlertService(db, clock=self.clock).evaluate(
                    monitor, prior_price, prior_available, observation, now=now,
                )
                await db.commit()

            log.info(
                "price_updated",
                price=str(result.price),
                prior_price=str(prior_price) if prior_price is not None else None,
                is_available=result.is_available,
                notifications=len(events),
            )
            return True

    async def check_single_product(self, monitor_id: UUID) -> bool:
        """Check one monitor on demand, outside the schedule."""
        return await self.check_monitor(monitor_id)

    # ------------------------------------------------------------------
    # Notifications / retention
    # ------------------------------------------------------------------

    async def run_notification_dispatch(self) -> Dict[str, int]:
        async with self.db_session_factory() as db:
            service = NotificationService(db, self.notifier, clock=self.clock)
            return await service.send_pending(self.settings.NOTIFICATION_BATCH_SIZE)

    async def run_retention(self) -> int:
        """Delete observations older than the retention horizon.

        Returns:
            Number of observations removed
        """
        cutoff = self.clock() - timedelta(days=self.settings.PRICE_HISTORY_RETENTION_DAYS)
        async with self.db_session_factory() as db:
            deleted = await ProductService(db, clock=self.clock).purge_price_history(cutoff)
            await db.commit()
        return deleted

    def get_jobs_status(self) -> dict:
        """Next run time and trigger for each registered job."""
        jobs = {}
        for name, job_id in self._job_ids.items():
            job = self.scheduler.get_job(job_id)
            if job:
                jobs[name] = {
                    "job_id": job_id,
                    "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                    "trigger": str(job.trigger),
                }
        return jobs

    def is_running(self) -> bool:
        return self.scheduler.running
