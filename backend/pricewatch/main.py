"""PriceWatch command-line entry point.

Usage:
    pricewatch run
    pricewatch check URL [--selector CSS]
    pricewatch add URL [--target PRICE] [--selector CSS] [--name NAME]
    pricewatch test-notification
"""

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import structlog

from pricewatch.config import settings
from pricewatch.core.exceptions import PriceWatchException
from pricewatch.db.session import async_session_factory, engine
from pricewatch.db.utils import check_database_health, create_tables
from pricewatch.scrapers.scheduler import MonitorScheduler
from pricewatch.scrapers.scraper_service import PriceScraper
from pricewatch.scrapers.utils.browser_manager import shutdown_browser_manager
from pricewatch.services.notification_service import TEST_MESSAGE, TEST_TITLE, PushoverNotifier
from pricewatch.services.product_service import ProductService

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if settings.DEBUG else logging.INFO),
)
logger = structlog.get_logger(__name__)


async def run_service() -> None:
    """Start the scheduler and block until interrupted."""
    logger.info("starting_pricewatch", environment=settings.ENVIRONMENT, debug=settings.DEBUG)

    health = await check_database_health(engine)
    if not health["healthy"]:
        raise PriceWatchException(f"Database unavailable: {health.get('error')}")
    await create_tables(engine)

    notifier = PushoverNotifier()
    if not notifier.enabled:
        logger.warning("pushover_not_configured")

    scheduler = MonitorScheduler(async_session_factory, PriceScraper(), notifier)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop(wait=False)
        await shutdown_browser_manager()
        await engine.dispose()
        logger.info("pricewatch_stopped")


async def check_url(url: str, selector: Optional[str]) -> int:
    """Scrape a URL once and print the result without storing it."""
    try:
        result = await PriceScraper().test_scrape(url, selector)
    finally:
        await shutdown_browser_manager()
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.price is not None else 1


async def add_url(url: str, target: Optional[Decimal], selector: Optional[str], name: Optional[str]) -> int:
    await create_tables(engine)
    try:
        async with async_session_factory() as db:
            monitor = await ProductService(db).add_monitor(
                url,
                PriceScraper(),
                target_price=target,
                selector=selector,
                name=name,
            )
    finally:
        await shutdown_browser_manager()
        await engine.dispose()

    print(json.dumps({
        "id": str(monitor.id),
        "name": monitor.name,
        "url": monitor.url,
        "store": monitor.store,
        "current_price": float(monitor.current_price) if monitor.current_price is not None else None,
        "target_price": float(monitor.target_price) if monitor.target_price is not None else None,
    }, indent=2))
    return 0


async def test_notification() -> int:
    sent = await PushoverNotifier().deliver(TEST_MESSAGE, title=TEST_TITLE)
    print("Test notification sent" if sent else "Notification not delivered (see log)")
    return 0 if sent else 1


def _price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a price: {value}")
    if not price.is_finite() or price <= 0:
        raise argparse.ArgumentTypeError(f"not a price: {value}")
    return price


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pricewatch", description="Retail price monitor")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the monitoring scheduler")

    check = sub.add_parser("check", help="Scrape a URL once and print the result")
    check.add_argument("url")
    check.add_argument("--selector", help="CSS selector for the price element")

    add = sub.add_parser("add", help="Start monitoring a product URL")
    add.add_argument("url")
    add.add_argument("--target", type=_price, help="Target price for alerts")
    add.add_argument("--selector", help="CSS selector for the price element")
    add.add_argument("--name", help="Display name")

    sub.add_parser("test-notification", help="Send a test push notification")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if args.command == "run":
            asyncio.run(run_service())
            return 0
        if args.command == "check":
            return asyncio.run(check_url(args.url, args.selector))
        if args.command == "add":
            return asyncio.run(add_url(args.url, args.target, args.selector, args.name))
        if args.command == "test-notification":
            return asyncio.run(test_notification())
    except KeyboardInterrupt:
        return 0
    except PriceWatchException as e:
        logger.error("command_failed", command=args.command, error=e.message)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
