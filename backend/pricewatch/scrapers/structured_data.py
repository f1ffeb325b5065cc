"""JSON-LD helpers shared by price extraction and availability checks.

Embedded JSON-LD can nest products arbitrarily deep (arrays, ``@graph``
containers, ``isVariantOf`` chains), so the search is an explicit-stack walk
with a depth cap rather than recursion.
"""

import json
from typing import Any, Dict, Iterator, List, Optional, Tuple

import structlog
from bs4 import BeautifulSoup

from pricewatch.core.exceptions import ParseError

logger = structlog.get_logger(__name__)

MAX_JSON_LD_DEPTH = 32


def load_json_ld(raw: Optional[str]) -> Any:
    """Decode one JSON-LD block.

    Raises:
        ParseError: If the block is empty or not valid JSON
    """
    text = (raw or "").strip()
    if not text:
        raise ParseError("Empty JSON-LD block")
    try:
        return json.loads(text)
    except (ValueError, RecursionError) as e:
        raise ParseError(f"Malformed JSON-LD block: {e}") from e


def iter_json_ld_blocks(soup: BeautifulSoup) -> Iterator[Any]:
    """Yield each decodable JSON-LD block, skipping malformed ones."""
    scripts = soup.find_all(
        "script",
        attrs={"type": lambda value: bool(value) and "ld+json" in value.lower()},
    )
    for index, script in enumerate(scripts):
        try:
            yield load_json_ld(script.string if script.string is not None else script.get_text())
        except ParseError as e:
            logger.debug("json_ld_block_skipped", index=index, error=e.message)


def _type_names(node: Dict[str, Any]) -> List[str]:
    raw = node.get("@type")
    values = raw if isinstance(raw, list) else [raw]
    names = []
    for value in values:
        if isinstance(value, str):
            # "http://schema.org/Product" and "schema:Product" both mean Product
            names.append(value.rsplit("/", 1)[-1].rsplit(":", 1)[-1])
    return names


def is_product(node: Any) -> bool:
    return isinstance(node, dict) and "Product" in _type_names(node)


def iter_products(data: Any) -> Iterator[Dict[str, Any]]:
    """Yield every ``Product``-typed object in document order."""
    stack: List[Tuple[Any, int]] = [(data, 0)]
    while stack:
        node, depth = stack.pop()
        if depth > MAX_JSON_LD_DEPTH:
            continue
        if isinstance(node, list):
            stack.extend((item, depth + 1) for item in reversed(node))
        elif isinstance(node, dict):
            if is_product(node):
                yield node
            children = [value for value in node.values() if isinstance(value, (dict, list))]
            stack.extend((child, depth + 1) for child in reversed(children))


def iter_offers(product: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Yield the offers of a product, flattening AggregateOffer containers."""
    offers = product.get("offers")
    pending = list(offers) if isinstance(offers, list) else [offers]
    seen = 0
    while pending and seen < 100:
        offer = pending.pop(0)
        seen += 1
        if not isinstance(offer, dict):
            continue
        yield offer
        nested = offer.get("offers")
        if isinstance(nested, list):
            pending.extend(nested)
        elif isinstance(nested, dict):
            pending.append(nested)


def iter_structured_products(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    """Every product object across every JSON-LD block of a page."""
    for block in iter_json_ld_blocks(soup):
        yield from iter_products(block)
