"""Shared data structures for the fetch/extract pipeline."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol

from bs4 import BeautifulSoup

RENDERED = "rendered"
STATIC = "static"


@dataclass
class RenderedDocument:
    """An HTML document retrieved in one fetch mode.

    ``url`` is the final URL after redirects and is used to resolve
    relative links such as image sources.
    """

    url: str
    html: str
    mode: str = STATIC

    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html or "", "html.parser")


class FetchStrategy(Protocol):
    """One way of retrieving a product page."""

    mode: str

    async def fetch(self, url: str, wait_selector: Optional[str] = None) -> RenderedDocument:
        ...


@dataclass
class ExtractionResult:
    """Best-effort product data pulled out of one document."""

    price: Optional[Decimal]
    currency: str
    name: Optional[str] = None
    image_url: Optional[str] = None
    strategy: Optional[str] = None  # which price strategy matched


@dataclass
class ScrapeResult:
    """Outcome of scraping a product URL across all fetch modes."""

    price: Optional[Decimal]
    currency: str
    is_available: bool
    product_name: Optional[str] = None
    image_url: Optional[str] = None
    error: Optional[str] = None
    mode: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dict for display."""
        data: Dict[str, Any] = {
            "price": float(self.price) if self.price is not None else None,
            "currency": self.currency,
            "is_available": self.is_available,
            "product_name": self.product_name,
            "image_url": self.image_url,
        }
        if self.error:
            data["error"] = self.error
        if self.mode:
            data["mode"] = self.mode
        return data
