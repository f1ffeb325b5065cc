"""Product URL canonicalization and retailer identification."""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from pricewatch.core.exceptions import InvalidURLError
from pricewatch.scrapers.retailers import get_retailer


# Common tracking parameters to remove
TRACKING_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "gclid",
    "fbclid",
    "ref",
    "referer",
    "referrer",
    "_branch_match_id",
    "mc_cid",
    "mc_eid",
    "gclsrc",
    "dclid",
    "wbraid",
    "gbraid",
}

AMAZON_DOMAINS = {"amazon.com.au", "amazon.com"}
AMAZON_ALLOWED_PARAMS = {"dp", "gp", "product"}
EBAY_DOMAINS = {"ebay.com.au", "ebay.com"}

_AMAZON_ASIN = re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{10})")
_EBAY_ITEM = re.compile(r"/itm/(?:[^/]+/)?(\d+)")
_JBHIFI_SLUG = re.compile(r"/([a-zA-Z0-9-]+)$")
_HARVEY_NORMAN = re.compile(r"/p/([^/]+)")
_WOOLWORTHS = re.compile(r"/shop/productdetails/(\d+)")
_COLES = re.compile(r"/product/([^/]+)")
_GENERIC = re.compile(r"/(?:product|item|p)/([^/?]+)")


@dataclass(frozen=True)
class ParsedURL:
    """A product URL split into the pieces the scraper needs."""

    url: str
    clean_url: str
    domain: str
    store: str
    product_id: Optional[str] = None


def get_domain(url: str) -> str:
    """Lower-cased host without a leading ``www.``."""
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def parse_url(url: str) -> ParsedURL:
    """Parse a product URL and extract retailer information.

    Raises:
        InvalidURLError: If the URL is not an absolute http(s) URL
    """
    if not url or not isinstance(url, str):
        raise InvalidURLError(str(url))

    try:
        parsed = urlparse(url.strip())
        # Accessing port validates it
        parsed.port
    except ValueError:
        raise InvalidURLError(url)

    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidURLError(url)

    domain = get_domain(url)
    retailer = get_retailer(domain)

    return ParsedURL(
        url=url,
        clean_url=clean_url(url.strip()),
        domain=domain,
        store=retailer.name if retailer else f"{domain} (Generic)",
        product_id=extract_product_id(url, domain),
    )


def clean_url(url: str) -> str:
    """Remove tracking parameters and the fragment from a product URL.

    Amazon keeps only its product parameters and eBay only the item id.
    Unparseable input is returned unchanged.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url

    domain = get_domain(url)
    query_params = parse_qs(parsed.query, keep_blank_values=True)

    if domain in AMAZON_DOMAINS:
        filtered = {k: v for k, v in query_params.items() if k in AMAZON_ALLOWED_PARAMS}
    elif domain in EBAY_DOMAINS:
        if _EBAY_ITEM.search(parsed.path):
            filtered = {}
        elif "itm" in query_params:
            filtered = {"itm": query_params["itm"][:1]}
        else:
            filtered = {}
    else:
        filtered = {k: v for k, v in query_params.items() if k not in TRACKING_PARAMS}

    new_query = urlencode(filtered, doseq=True)

    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), parsed.path, parsed.params, new_query, "")
    )


def extract_product_id(url: str, domain: str) -> Optional[str]:
    """Extract the retailer's product identifier from a URL, if recognizable."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None

    path = parsed.path

    if domain in AMAZON_DOMAINS:
        match = _AMAZON_ASIN.search(path)
    elif domain in EBAY_DOMAINS:
        match = _EBAY_ITEM.search(path)
        if not match:
            item = parse_qs(parsed.query).get("itm")
            return item[0] if item else None
    elif domain == "jbhifi.com.au":
        match = _JBHIFI_SLUG.search(path)
    elif domain == "harveynorman.com.au":
        match = _HARVEY_NORMAN.search(path)
    elif domain == "woolworths.com.au":
        match = _WOOLWORTHS.search(path)
    elif domain == "coles.com.au":
        match = _COLES.search(path)
    else:
        match = _GENERIC.search(path)

    return match.group(1) if match else None
