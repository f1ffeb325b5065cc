"""Scrape orchestration.

Runs each fetch mode in preference order and passes every retrieved document
through extraction and availability classification. The first document that
yields a price wins; a mode that fetches fine but yields no price does not
stop the next mode from being tried.
"""

from typing import Optional

import structlog

from pricewatch.config import Settings, settings as default_settings
from pricewatch.core.exceptions import FetchError, NoSelectorError
from pricewatch.scrapers.availability import classify
from pricewatch.scrapers.base import RenderedDocument, ScrapeResult
from pricewatch.scrapers.extraction import extract, resolve_selector
from pricewatch.scrapers.fetchers import DocumentFetcher, build_document_fetcher
from pricewatch.scrapers.url_parser import parse_url

logger = structlog.get_logger(__name__)

UNABLE_TO_EXTRACT = "Unable to extract price with any method"


class PriceScraper:
    """Turns a product URL into a ScrapeResult."""

    def __init__(
        self,
        fetcher: Optional[DocumentFetcher] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the scraper.

        Args:
            fetcher: Ordered fetch strategies; production default when omitted
            settings: Settings override, mainly for tests
        """
        self.settings = settings or default_settings
        self.fetcher = fetcher or build_document_fetcher(self.settings)
        self.logger = logger.bind(service="price_scraper")

    async def scrape_price(self, url: str, custom_selector: Optional[str] = None) -> ScrapeResult:
        """Scrape price, name, image and availability for one product URL.

        Args:
            url: Product page URL
            custom_selector: Optional CSS selector for the price element

        Returns:
            ScrapeResult; ``price`` is None with ``error`` set when every
            fetch mode failed or produced no price

        Raises:
            InvalidURLError: If the URL is not an absolute http(s) URL
        """
        parsed = parse_url(url)
        log = self.logger.bind(url=parsed.clean_url, store=parsed.store)
        log.info("scraping_product", custom_selector=bool(custom_selector))

        wait_selector = self._wait_selector(parsed.domain, custom_selector)

        for strategy in self.fetcher.strategies:
            try:
                document = await strategy.fetch(parsed.clean_url, wait_selector)
            except FetchError as e:
                log.warning("fetch_mode_failed", mode=strategy.mode, error=e.reason)
                continue
            except Exception as e:
                log.error("fetch_mode_crashed", mode=strategy.mode, error=str(e), exc_info=True)
                continue

            result = self.scrape_document(document, parsed.domain, custom_selector)
            if result.price is not None:
                log.info(
                    "price_extracted",
                    mode=strategy.mode,
                    price=str(result.price),
                    currency=result.currency,
                    is_available=result.is_available,
                )
                return result

            log.info("no_price_in_document", mode=strategy.mode)

        log.warning("price_extraction_failed")
        return ScrapeResult(
            price=None,
            currency=self.settings.DEFAULT_CURRENCY,
            is_available=False,
            error=UNABLE_TO_EXTRACT,
        )

    def scrape_document(
        self,
        document: RenderedDocument,
        domain: str,
        custom_selector: Optional[str] = None,
    ) -> ScrapeResult:
        """Extract and classify an already-fetched document."""
        soup = document.soup()
        extraction = extract(
            document,
            domain,
            custom_selector,
            default_currency=self.settings.DEFAULT_CURRENCY,
            soup=soup,
        )
        return ScrapeResult(
            price=extraction.price,
            currency=extraction.currency,
            is_available=classify(document, soup=soup),
            product_name=extraction.name,
            image_url=extraction.image_url,
            mode=document.mode,
        )

    async def test_scrape(self, url: str, selector: Optional[str] = None) -> ScrapeResult:
        """Scrape once without persisting anything, for trying selectors."""
        result = await self.scrape_price(url, selector)
        self.logger.info("test_scrape_result", url=url, selector=selector, **result.to_dict())
        return result

    @staticmethod
    def _wait_selector(domain: str, custom_selector: Optional[str]) -> Optional[str]:
        try:
            return resolve_selector(domain, custom_selector)
        except NoSelectorError:
            return None
