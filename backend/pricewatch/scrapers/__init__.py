"""Product page scraping.

This package provides:
- URL canonicalization and retailer identification
- Rendered (Playwright) and static (httpx) page fetchers
- Layered price/name/image extraction and availability classification
- The monitoring scheduler that runs periodic checks
"""

from .base import ExtractionResult, RenderedDocument, ScrapeResult, RENDERED, STATIC
from .url_parser import ParsedURL, parse_url, clean_url, get_domain
from .extraction import extract
from .availability import classify
from .fetchers import DocumentFetcher, RenderedFetcher, StaticFetcher, build_document_fetcher
from .scraper_service import PriceScraper

__all__ = [
    # Data structures
    "ExtractionResult",
    "RenderedDocument",
    "ScrapeResult",
    "RENDERED",
    "STATIC",
    # URLs
    "ParsedURL",
    "parse_url",
    "clean_url",
    "get_domain",
    # Pipeline
    "extract",
    "classify",
    # Fetching
    "DocumentFetcher",
    "RenderedFetcher",
    "StaticFetcher",
    "build_document_fetcher",
    "PriceScraper",
]
