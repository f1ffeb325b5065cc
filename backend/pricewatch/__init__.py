"""PriceWatch: retailer price monitoring with deduplicated alerts."""

__version__ = "0.1.0"
