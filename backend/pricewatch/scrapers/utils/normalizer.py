"""Price string parsing utilities."""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

# Prices at or above this are treated as parse noise (SKUs, phone numbers)
MAX_PRICE = Decimal("1000000")

PRICE_TOKEN = re.compile(r"-?\d[\d,]*(?:\.\d+)?")


class PriceNormalizer:
    """Price parsing helpers shared by every extraction strategy."""

    @staticmethod
    def clean_price_string(raw: Any) -> Optional[Decimal]:
        """Parse a price string and extract numeric value.

        Handles various formats:
        - "1,237.00" -> 1237.00
        - "$12.99" -> 12.99
        - "AUD 49" -> 49
        - 19.5 -> 19.5

        Args:
            raw: Raw price string or number

        Returns:
            Decimal price value, or None if parsing fails
        """
        if raw is None or isinstance(raw, bool):
            return None

        if isinstance(raw, (int, float, Decimal)):
            try:
                value = Decimal(str(raw))
            except InvalidOperation:
                return None
            return value if value.is_finite() else None

        # Only the first number counts; "$1,299 (was $1,499)" is 1299
        match = PRICE_TOKEN.search(str(raw))
        if not match:
            return None

        # Remove thousand separators (commas)
        cleaned = match.group(0).replace(",", "")

        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            return None
        return value if value.is_finite() else None

    @staticmethod
    def is_valid_price(price: Optional[Decimal]) -> bool:
        """Whether a parsed value is a plausible price: finite, > 0, < 1,000,000."""
        return price is not None and price.is_finite() and Decimal("0") < price < MAX_PRICE

    @classmethod
    def parse_price(cls, raw: Any) -> Optional[Decimal]:
        """Parse and bounds-check in one step."""
        price = cls.clean_price_string(raw)
        return price if cls.is_valid_price(price) else None
