"""SQLAlchemy models for PriceWatch.

All models are imported here so metadata.create_all can discover them.
"""

from pricewatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from pricewatch.models.product import ProductMonitor
from pricewatch.models.price_history import PriceObservation
from pricewatch.models.notification import NotificationEvent, NotificationType

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "ProductMonitor",
    "PriceObservation",
    "NotificationEvent",
    "NotificationType",
]
