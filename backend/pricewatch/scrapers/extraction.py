"""Layered extraction of price, name and image from a product page.

Price strategies run in a fixed order and the first one that yields a value
inside the accepted bounds wins:

1. JSON-LD ``Product`` offers
2. ``<meta>`` price tags (OpenGraph, product, microdata, twitter)
3. CSS selectors (override, retailer default, generic heuristics) with
   regex parsing of the element text

A failing strategy never aborts the pipeline; it is logged and the next one
runs. ``extract`` always returns an ``ExtractionResult``.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, List, Optional, Tuple
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from pricewatch.config import settings
from pricewatch.core.exceptions import NoSelectorError
from pricewatch.scrapers.base import ExtractionResult, RenderedDocument
from pricewatch.scrapers.retailers import (
    GENERIC_PRICE_SELECTOR,
    get_default_selector,
    get_title_suffixes,
)
from pricewatch.scrapers.structured_data import iter_offers, iter_structured_products
from pricewatch.scrapers.utils.normalizer import PriceNormalizer

logger = structlog.get_logger(__name__)

# (attribute, value) pairs, tried in order
META_PRICE_TAGS: List[Tuple[str, str]] = [
    ("property", "og:price:amount"),
    ("property", "product:price:amount"),
    ("name", "price"),
    ("property", "product:price"),
    ("itemprop", "price"),
    ("name", "twitter:data1"),
]

META_CURRENCY_TAGS: List[Tuple[str, str]] = [
    ("property", "og:price:currency"),
    ("property", "product:price:currency"),
    ("name", "currency"),
    ("property", "product:currency"),
    ("itemprop", "priceCurrency"),
]

# Ordered most to least specific; the bare number pattern is the last resort
PRICE_PATTERNS = [
    re.compile(r"\$[\d,]+\.?\d*"),
    re.compile(r"[\d,]+\.?\d*\s*\$"),
    re.compile(r"(?:AUD?|USD|NZD|CAD|EUR|GBP)\s*[\d,]+\.?\d*", re.IGNORECASE),
    re.compile(r"[\d,]+\.?\d*"),
]

NAME_SELECTORS = [
    "#productTitle",
    ".product-title",
    "h1",
    ".name",
    ".title",
    ".product-name",
    ".item-title",
]

IMAGE_SELECTORS = [
    "#landingImage",
    ".product-image img",
    ".main-image img",
    "img[data-src]",
    ".gallery img",
    ".product-photo img",
]

_CURRENCY_CODE = re.compile(r"[A-Za-z]{3}")
_TITLE_SUFFIX = re.compile(
    r"\s+[-|:]\s+(?:%s)\s*$" % "|".join(re.escape(s) for s in get_title_suffixes()),
    re.IGNORECASE,
)


@dataclass
class ExtractionContext:
    """Inputs shared by every price strategy."""

    soup: BeautifulSoup
    domain: str
    selector_override: Optional[str]
    default_currency: str


@dataclass
class PriceCandidate:
    price: Decimal
    currency: Optional[str] = None
    name: Optional[str] = None


def _collapse_whitespace(text: Any) -> Optional[str]:
    if not isinstance(text, str):
        return None
    collapsed = " ".join(text.split())
    return collapsed or None


def normalize_currency(raw: Any) -> Optional[str]:
    """Three-letter upper-case code, or None if ``raw`` is not one."""
    if not isinstance(raw, str):
        return None
    code = raw.strip()
    return code.upper() if _CURRENCY_CODE.fullmatch(code) else None


def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> Optional[str]:
    tag = soup.find("meta", attrs={attr: value})
    if tag is None:
        return None
    content = tag.get("content")
    if not isinstance(content, str) or not content.strip():
        return None
    return content.strip()


# ============================================================================
# Price strategies
# ============================================================================


def extract_from_json_ld(ctx: ExtractionContext) -> Optional[PriceCandidate]:
    """First in-bounds offer price of the first priced Product in JSON-LD."""
    for product in iter_structured_products(ctx.soup):
        for offer in iter_offers(product):
            raw = offer.get("price")
            if raw in (None, ""):
                raw = offer.get("lowPrice")
            if raw in (None, "") and isinstance(offer.get("priceSpecification"), dict):
                raw = offer["priceSpecification"].get("price")
            price = PriceNormalizer.parse_price(raw)
            if price is not None:
                return PriceCandidate(
                    price=price,
                    currency=normalize_currency(offer.get("priceCurrency")),
                    name=_collapse_whitespace(product.get("name")),
                )

        # Some sites put the price straight on the product
        price = PriceNormalizer.parse_price(product.get("price"))
        if price is not None:
            return PriceCandidate(
                price=price,
                currency=normalize_currency(product.get("priceCurrency")),
                name=_collapse_whitespace(product.get("name")),
            )
    return None


def extract_from_meta_tags(ctx: ExtractionContext) -> Optional[PriceCandidate]:
    """First in-bounds value among the known meta price tags."""
    for attr, value in META_PRICE_TAGS:
        price = PriceNormalizer.parse_price(_meta_content(ctx.soup, attr, value))
        if price is None:
            continue
        currency = None
        for currency_attr, currency_value in META_CURRENCY_TAGS:
            currency = normalize_currency(_meta_content(ctx.soup, currency_attr, currency_value))
            if currency:
                break
        return PriceCandidate(price=price, currency=currency)
    return None


def resolve_selector(domain: str, override: Optional[str] = None) -> str:
    """Pick the price selector: override, retailer default, then generic.

    Raises:
        NoSelectorError: If nothing applies and the generic fallback is disabled
    """
    if override and override.strip():
        return override.strip()
    default = get_default_selector(domain)
    if default:
        return default
    if settings.GENERIC_SELECTOR_FALLBACK:
        return GENERIC_PRICE_SELECTOR
    raise NoSelectorError(domain)


def price_from_text(text: str) -> Optional[Decimal]:
    """Scan text with the price patterns, most specific first."""
    for pattern in PRICE_PATTERNS:
        for match in pattern.findall(text):
            price = PriceNormalizer.parse_price(re.sub(r"[^\d.,]", "", match))
            if price is not None:
                return price
    return None


def extract_from_selectors(ctx: ExtractionContext) -> Optional[PriceCandidate]:
    """Parse the text of elements matched by the resolved price selector."""
    try:
        selector = resolve_selector(ctx.domain, ctx.selector_override)
        elements = ctx.soup.select(selector)
    except NoSelectorError as e:
        logger.warning("no_price_selector", domain=ctx.domain, error=e.message)
        return None
    except SelectorSyntaxError as e:
        logger.warning("invalid_price_selector", domain=ctx.domain, error=str(e))
        return None

    for element in elements:
        text = element.get_text().strip()
        if not text:
            continue
        price = price_from_text(text)
        if price is not None:
            return PriceCandidate(price=price)
    return None


PriceStrategy = Callable[[ExtractionContext], Optional[PriceCandidate]]

PRICE_STRATEGIES: List[Tuple[str, PriceStrategy]] = [
    ("json_ld", extract_from_json_ld),
    ("meta", extract_from_meta_tags),
    ("selector", extract_from_selectors),
]


# ============================================================================
# Name / image
# ============================================================================


def strip_title_suffix(title: str) -> str:
    """Drop a trailing ``- Retailer`` from a page title."""
    return _TITLE_SUFFIX.sub("", title).strip()


def extract_name(soup: BeautifulSoup, structured_name: Optional[str] = None) -> Optional[str]:
    """Product name from title elements, structured data, then ``<title>``."""
    for selector in NAME_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = _collapse_whitespace(element.get_text())
        if text:
            return text

    if structured_name:
        return structured_name

    if soup.title is not None:
        title = _collapse_whitespace(soup.title.get_text())
        if title:
            return strip_title_suffix(title) or None
    return None


def extract_image(soup: BeautifulSoup, base_url: Optional[str] = None) -> Optional[str]:
    """Main product image URL, resolved against the page URL."""
    candidates: List[str] = []
    for selector in IMAGE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        src = element.get("src") or element.get("data-src")
        if isinstance(src, str) and src.strip():
            candidates.append(src.strip())
            break

    og_image = _meta_content(soup, "property", "og:image")
    if og_image:
        candidates.append(og_image)

    for src in candidates:
        # Inline placeholders are not useful outside the page
        if src.startswith("data:"):
            continue
        return urljoin(base_url, src) if base_url else src
    return None


# ============================================================================
# Pipeline
# ============================================================================


def extract(
    document: RenderedDocument,
    domain_hint: str,
    selector_override: Optional[str] = None,
    default_currency: Optional[str] = None,
    soup: Optional[BeautifulSoup] = None,
) -> ExtractionResult:
    """Run every price strategy in order and resolve name and image.

    Args:
        document: Fetched page
        domain_hint: Bare retailer domain used to pick a default selector
        selector_override: Per-monitor CSS selector, tried before defaults
        default_currency: Currency when the page does not declare one
        soup: Already-parsed document, to avoid parsing twice

    Returns:
        ExtractionResult; ``price`` is None when no strategy matched
    """
    currency_default = default_currency or settings.DEFAULT_CURRENCY
    soup = soup if soup is not None else document.soup()
    ctx = ExtractionContext(
        soup=soup,
        domain=domain_hint,
        selector_override=selector_override,
        default_currency=currency_default,
    )

    candidate: Optional[PriceCandidate] = None
    strategy_name: Optional[str] = None
    for name, strategy in PRICE_STRATEGIES:
        try:
            candidate = strategy(ctx)
        except Exception as e:
            logger.warning(
                "extraction_strategy_failed",
                strategy=name,
                url=document.url,
                error=str(e),
                exc_info=True,
            )
            candidate = None
        if candidate is not None:
            strategy_name = name
            break

    structured_name = candidate.name if candidate is not None else None
    result = ExtractionResult(
        price=candidate.price if candidate is not None else None,
        currency=(candidate.currency if candidate and candidate.currency else currency_default),
        name=extract_name(soup, structured_name),
        image_url=extract_image(soup, document.url),
        strategy=strategy_name,
    )

    logger.debug(
        "extraction_complete",
        url=document.url,
        strategy=strategy_name,
        price=str(result.price) if result.price is not None else None,
    )
    return result
