"""Tests for price parsing and the layered extraction pipeline."""

import json
from decimal import Decimal

import pytest

from pricewatch.core.exceptions import NoSelectorError
from pricewatch.scrapers import extraction
from pricewatch.scrapers.base import RenderedDocument
from pricewatch.scrapers.extraction import (
    extract,
    price_from_text,
    resolve_selector,
    strip_title_suffix,
)
from pricewatch.scrapers.utils.normalizer import PriceNormalizer

from conftest import make_document


def json_ld(data) -> str:
    return f'<script type="application/ld+json">{json.dumps(data)}</script>'


# ============================================================================
# PRICE NORMALIZER
# ============================================================================

class TestPriceNormalizer:
    """Test raw price parsing and bounds."""

    @pytest.mark.parametrize("raw,expected", [
        ("1,237.00", Decimal("1237.00")),
        ("$12.99", Decimal("12.99")),
        ("AUD 49", Decimal("49")),
        (19.5, Decimal("19.5")),
        (100, Decimal("100")),
        ("$1,299.00 (was $1,499)", Decimal("1299.00")),
        ("Now 25.50, save 4.50", Decimal("25.50")),
    ])
    def test_clean_price_string(self, raw, expected):
        """Test common price formats parse to the same number."""
        assert PriceNormalizer.clean_price_string(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "free", True, float("nan"), float("inf")])
    def test_unparseable(self, raw):
        """Test non-prices parse to None."""
        assert PriceNormalizer.clean_price_string(raw) is None

    @pytest.mark.parametrize("raw", ["0", "0.00", "-5", "$-12.50", "1000000", "2,500,000.00"])
    def test_out_of_bounds_rejected(self, raw):
        """Test zero, negative and implausibly large values are rejected."""
        assert PriceNormalizer.parse_price(raw) is None

    def test_upper_bound_is_exclusive(self):
        """Test the largest accepted price sits just below one million."""
        assert PriceNormalizer.is_valid_price(Decimal("999999.99"))
        assert not PriceNormalizer.is_valid_price(Decimal("1000000"))


# ============================================================================
# STRUCTURED DATA
# ============================================================================

class TestJsonLdStrategy:
    """Test JSON-LD offer extraction."""

    def test_single_offer(self):
        """Test a plain Product with one Offer."""
        doc = make_document("", head=json_ld({
            "@context": "https://schema.org",
            "@type": "Product",
            "name": "Widget",
            "offers": {"@type": "Offer", "price": "129.95", "priceCurrency": "AUD"},
        }))

        result = extract(doc, "shop.example.com")

        assert result.price == Decimal("129.95")
        assert result.currency == "AUD"
        assert result.strategy == "json_ld"

    def test_nested_graph_and_offer_list(self):
        """Test products inside @graph with the first valid offer winning."""
        doc = make_document("", head=json_ld({
            "@graph": [
                {"@type": "WebPage", "name": "Page"},
                {
                    "@type": ["Product", "Thing"],
                    "offers": [
                        {"@type": "Offer", "price": "0"},
                        {"@type": "Offer", "price": "49.00", "priceCurrency": "usd"},
                    ],
                },
            ]
        }))

        result = extract(doc, "shop.example.com")

        assert result.price == Decimal("49.00")
        assert result.currency == "USD"

    def test_aggregate_offer_low_price(self):
        """Test AggregateOffer lowPrice is used when no price is given."""
        doc = make_document("", head=json_ld({
            "@type": "Product",
            "offers": {"@type": "AggregateOffer", "lowPrice": 19.99, "highPrice": 39.99},
        }))

        result = extract(doc, "shop.example.com", default_currency="NZD")

        assert result.price == Decimal("19.99")
        assert result.currency == "NZD"

    def test_malformed_block_is_skipped(self):
        """Test a broken JSON-LD block does not hide a later valid one."""
        head = '<script type="application/ld+json">{"@type": "Product", oops</script>' + json_ld({
            "@type": "Product",
            "offers": {"price": "75.50"},
        })

        result = extract(make_document("", head=head), "shop.example.com")

        assert result.price == Decimal("75.50")
        assert result.strategy == "json_ld"

    def test_deeply_nested_product_is_bounded(self):
        """Test pathological nesting neither crashes nor recurses forever."""
        data = {"@type": "Product", "offers": {"price": "10.00"}}
        for _ in range(40):
            data = {"wrapper": [data]}

        result = extract(make_document("", head=json_ld(data)), "shop.example.com")

        assert result.price is None


class TestMetaStrategy:
    """Test meta tag extraction."""

    def test_open_graph_price(self):
        """Test OpenGraph price and currency tags."""
        head = (
            '<meta property="og:price:amount" content="1,299.00">'
            '<meta property="og:price:currency" content="AUD">'
        )

        result = extract(make_document("", head=head), "shop.example.com")

        assert result.price == Decimal("1299.00")
        assert result.currency == "AUD"
        assert result.strategy == "meta"

    def test_first_valid_tag_wins(self):
        """Test an out-of-bounds tag falls through to the next one."""
        head = (
            '<meta property="og:price:amount" content="0">'
            '<meta property="product:price:amount" content="45">'
        )

        result = extract(make_document("", head=head), "shop.example.com")

        assert result.price == Decimal("45")

    def test_malformed_json_ld_falls_back_to_meta(self):
        """Test invalid structured data does not stop the meta strategy."""
        head = (
            '<script type="application/ld+json">not json</script>'
            '<meta name="price" content="12.34">'
        )

        result = extract(make_document("", head=head), "shop.example.com")

        assert result.price == Decimal("12.34")
        assert result.strategy == "meta"

    def test_tag_with_several_numbers_reads_the_first(self):
        """Test a tag quoting a previous price yields only the current one."""
        head = '<meta name="twitter:data1" content="$1,299.00 (was $1,499)">'

        result = extract(make_document("", head=head), "shop.example.com")

        assert result.price == Decimal("1299.00")
        assert result.strategy == "meta"


# ============================================================================
# SELECTORS
# ============================================================================

class TestSelectorStrategy:
    """Test selector resolution and text parsing."""

    def test_override_selector(self):
        """Test the per-monitor override selector is used."""
        doc = make_document('<span class="special">Now $1,234.50</span>')

        result = extract(doc, "shop.example.com", selector_override=".special")

        assert result.price == Decimal("1234.50")
        assert result.currency == "AUD"
        assert result.strategy == "selector"

    def test_retailer_default_selector(self):
        """Test the retailer's tuned selector is used for known domains."""
        doc = make_document('<span class="a-price"><span class="a-offscreen">$49.99</span></span>')

        result = extract(doc, "amazon.com.au")

        assert result.price == Decimal("49.99")

    def test_generic_selector_with_currency_code(self):
        """Test the generic heuristics and the currency-code pattern."""
        doc = make_document('<div class="product-price">AUD 45.00</div>')

        result = extract(doc, "shop.example.com")

        assert result.price == Decimal("45.00")

    def test_out_of_bounds_text_yields_no_price(self):
        """Test selector matches outside the bounds are not accepted."""
        doc = make_document('<div class="price">$0.00</div><div class="price">$2,000,000</div>')

        result = extract(doc, "shop.example.com")

        assert result.price is None
        assert result.strategy is None

    def test_strategy_order(self):
        """Test JSON-LD beats meta tags which beat selectors."""
        head = json_ld({"@type": "Product", "offers": {"price": "100"}})
        head += '<meta property="og:price:amount" content="90">'
        doc = make_document('<div class="price">$80</div>', head=head)

        result = extract(doc, "shop.example.com")

        assert result.price == Decimal("100")
        assert result.strategy == "json_ld"

    def test_invalid_override_only_disables_selector_strategy(self):
        """Test a broken override selector leaves other strategies working."""
        with_meta = make_document("", head='<meta name="price" content="19.00">')
        selector_only = make_document('<div class="price">$80</div>')

        assert extract(with_meta, "shop.example.com", selector_override="div[").price == Decimal("19.00")
        assert extract(selector_only, "shop.example.com", selector_override="div[").price is None

    def test_no_selector_without_generic_fallback(self, monkeypatch):
        """Test unknown domains raise when the generic fallback is off."""
        monkeypatch.setattr(extraction.settings, "GENERIC_SELECTOR_FALLBACK", False)

        with pytest.raises(NoSelectorError):
            resolve_selector("unknown.example")

        doc = make_document('<div class="price">$80</div>')
        assert extract(doc, "unknown.example").price is None

    def test_resolve_selector_precedence(self):
        """Test override, then retailer default, then generic."""
        assert resolve_selector("amazon.com.au", " .mine ") == ".mine"
        assert resolve_selector("amazon.com.au") == ".a-price .a-offscreen, .a-price-whole"
        assert resolve_selector("unknown.example") == extraction.GENERIC_PRICE_SELECTOR

    @pytest.mark.parametrize("text,expected", [
        ("Save 20% - $89.99", Decimal("89.99")),
        ("89,99 $", Decimal("8999")),
        ("Price: NZD 15.50", Decimal("15.50")),
        ("1,299.00", Decimal("1299.00")),
        ("Call us", None),
    ])
    def test_price_from_text(self, text, expected):
        """Test the pattern order prefers dollar-prefixed amounts."""
        assert price_from_text(text) == expected


# ============================================================================
# NAME / IMAGE
# ============================================================================

class TestNameAndImage:
    """Test product name and image resolution."""

    def test_name_from_heading(self):
        """Test whitespace in headings is collapsed."""
        doc = make_document("<h1>  Sony \n  WH-1000XM5  </h1>")
        assert extract(doc, "shop.example.com").name == "Sony WH-1000XM5"

    def test_name_from_json_ld_before_title(self):
        """Test structured data names beat the page title."""
        head = "<title>Ignored - JB Hi-Fi</title>" + json_ld({
            "@type": "Product",
            "name": "LD Widget",
            "offers": {"price": "10"},
        })
        assert extract(make_document("", head=head), "jbhifi.com.au").name == "LD Widget"

    def test_name_from_title_without_suffix(self):
        """Test retailer suffixes are stripped from page titles."""
        doc = make_document("", head="<title>Widget Pro | JB Hi-Fi</title>")
        assert extract(doc, "jbhifi.com.au").name == "Widget Pro"

    def test_strip_title_suffix(self):
        assert strip_title_suffix("Thing - Amazon.com.au") == "Thing"
        assert strip_title_suffix("Thing - Something Else") == "Thing - Something Else"

    def test_relative_image_is_resolved(self):
        """Test image sources are resolved against the page URL."""
        doc = make_document('<img id="landingImage" src="/images/w.jpg">')
        assert extract(doc, "shop.example.com").image_url == "https://shop.example.com/images/w.jpg"

    def test_lazy_image_and_og_fallback(self):
        """Test data-src images and the og:image fallback."""
        lazy = make_document('<div class="gallery"><img data-src="https://cdn.example.com/a.jpg"></div>')
        og = make_document("", head='<meta property="og:image" content="https://cdn.example.com/og.jpg">')

        assert extract(lazy, "shop.example.com").image_url == "https://cdn.example.com/a.jpg"
        assert extract(og, "shop.example.com").image_url == "https://cdn.example.com/og.jpg"

    def test_empty_document(self):
        """Test an empty page yields an empty result instead of an error."""
        result = extract(RenderedDocument(url="https://shop.example.com/p/1", html=""), "shop.example.com")

        assert result.price is None
        assert result.currency == "AUD"
        assert result.name is None
        assert result.image_url is None
