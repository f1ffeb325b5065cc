"""Stock availability classification for product pages.

Signals are checked in descending reliability:

1. JSON-LD offer ``availability`` values
2. An enabled add-to-cart / buy-now control
3. Negative phrases in the product area of the page

With no signal at all a page is treated as available.
"""

from typing import Optional

import structlog
from bs4 import BeautifulSoup

from pricewatch.scrapers.base import RenderedDocument
from pricewatch.scrapers.structured_data import iter_offers, iter_structured_products

logger = structlog.get_logger(__name__)

IN_STOCK_TOKENS = ("instock", "in_stock", "in stock")
OUT_OF_STOCK_TOKENS = ("outofstock", "out_of_stock", "out of stock", "soldout", "sold out")

CTA_SELECTOR = ", ".join([
    'button[type="submit"]',
    'input[type="submit"]',
    ".add-to-cart",
    ".buy-now",
    '[class*="add-cart"]',
])
CTA_PHRASES = ("add to cart", "buy now")

PRODUCT_AREA_SELECTORS = ", ".join([
    ".product-info",
    ".product-details",
    ".product-main",
    ".product-form",
    ".availability",
    ".stock-status",
    '[class*="stock"]',
    '[class*="available"]',
])
UNAVAILABLE_PHRASES = (
    "out of stock",
    "sold out",
    "currently unavailable",
    "temporarily unavailable",
)


def availability_from_token(value: str) -> Optional[bool]:
    """Map a schema.org availability value to in/out of stock."""
    token = value.lower()
    if any(t in token for t in OUT_OF_STOCK_TOKENS):
        return False
    if any(t in token for t in IN_STOCK_TOKENS):
        return True
    return None


def structured_availability(soup: BeautifulSoup) -> Optional[bool]:
    """Availability declared by the first JSON-LD offer that declares one."""
    for product in iter_structured_products(soup):
        for offer in iter_offers(product):
            raw = offer.get("availability")
            values = raw if isinstance(raw, list) else [raw]
            for value in values:
                if not isinstance(value, str):
                    continue
                verdict = availability_from_token(value)
                if verdict is not None:
                    return verdict
    return None


def has_active_purchase_control(soup: BeautifulSoup) -> bool:
    """Whether an enabled add-to-cart or buy-now control is present."""
    for element in soup.select(CTA_SELECTOR):
        text = element.get_text(" ")
        if element.name == "input":
            text = element.get("value") or ""
        label = " ".join(text.lower().split())
        if not any(phrase in label for phrase in CTA_PHRASES):
            continue
        if element.has_attr("disabled"):
            continue
        if str(element.get("aria-disabled", "")).strip().lower() == "true":
            continue
        return True
    return False


def product_area_text(soup: BeautifulSoup) -> str:
    parts = [element.get_text(" ") for element in soup.select(PRODUCT_AREA_SELECTORS)]
    return " ".join(" ".join(parts).lower().split())


def classify(document: RenderedDocument, soup: Optional[BeautifulSoup] = None) -> bool:
    """Decide whether the product on this page can currently be bought."""
    soup = soup if soup is not None else document.soup()

    verdict = structured_availability(soup)
    if verdict is not None:
        logger.debug("availability_classified", url=document.url, source="json_ld", available=verdict)
        return verdict

    if has_active_purchase_control(soup):
        logger.debug("availability_classified", url=document.url, source="cta", available=True)
        return True

    area = product_area_text(soup)
    if any(phrase in area for phrase in UNAVAILABLE_PHRASES):
        logger.debug("availability_classified", url=document.url, source="text", available=False)
        return False

    return True
