"""Known retailers and their default price selectors."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pricewatch.config import settings


@dataclass(frozen=True)
class Retailer:
    """A retailer with a tuned default price selector."""

    name: str
    domains: Tuple[str, ...]
    default_selector: str
    title_suffix: str


RETAILERS: List[Retailer] = [
    Retailer(
        name="Amazon Australia",
        domains=("amazon.com.au",),
        default_selector=".a-price .a-offscreen, .a-price-whole",
        title_suffix="Amazon.com.au",
    ),
    Retailer(
        name="Amazon",
        domains=("amazon.com",),
        default_selector=".a-price .a-offscreen, .a-price-whole",
        title_suffix="Amazon.com",
    ),
    Retailer(
        name="eBay Australia",
        domains=("ebay.com.au",),
        default_selector=".u-flL.condensedfont, .price .notranslate",
        title_suffix="eBay",
    ),
    Retailer(
        name="eBay",
        domains=("ebay.com",),
        default_selector=".u-flL.condensedfont, .price .notranslate",
        title_suffix="eBay",
    ),
    Retailer(
        name="JB Hi-Fi",
        domains=("jbhifi.com.au",),
        default_selector=".price, .current-price",
        title_suffix="JB Hi-Fi",
    ),
    Retailer(
        name="Harvey Norman",
        domains=("harveynorman.com.au",),
        default_selector=".price, .product-price",
        title_suffix="Harvey Norman",
    ),
    Retailer(
        name="Woolworths",
        domains=("woolworths.com.au",),
        default_selector=".price, .shelfProductTile-price",
        title_suffix="Woolworths",
    ),
    Retailer(
        name="Coles",
        domains=("coles.com.au",),
        default_selector=".price, .product-price",
        title_suffix="Coles",
    ),
]

# Heuristic selector set for stores without a tuned selector
GENERIC_PRICE_SELECTOR = ", ".join([
    '.price, [class*="price"], [id*="price"]',
    '.cost, [class*="cost"], [id*="cost"]',
    '.amount, [class*="amount"], [id*="amount"]',
    '[class*="dollar"], [class*="currency"]',
    ".sale-price, .current-price, .product-price",
    ".value, [data-price], [data-cost]",
])

_BY_DOMAIN: Dict[str, Retailer] = {
    domain: retailer for retailer in RETAILERS for domain in retailer.domains
}


def get_retailer(domain: str) -> Optional[Retailer]:
    """Look up a known retailer by bare domain (no ``www.``)."""
    return _BY_DOMAIN.get(domain)


def get_default_selector(domain: str) -> Optional[str]:
    """Default price selector for a domain, configured overrides first."""
    configured = settings.RETAILER_SELECTORS.get(domain)
    if configured:
        return configured
    retailer = get_retailer(domain)
    return retailer.default_selector if retailer else None


def get_title_suffixes() -> List[str]:
    """Unique retailer suffixes appended to page titles."""
    seen: List[str] = []
    for retailer in RETAILERS:
        if retailer.title_suffix not in seen:
            seen.append(retailer.title_suffix)
    return seen
