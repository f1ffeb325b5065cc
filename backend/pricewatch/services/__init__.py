"""Service classes for monitor lifecycle, alert evaluation and delivery."""

from pricewatch.services.alert_service import AlertService
from pricewatch.services.notification_service import (
    NotificationService,
    Notifier,
    PushoverNotifier,
)
from pricewatch.services.product_service import ProductService

__all__ = [
    "AlertService",
    "NotificationService",
    "Notifier",
    "PushoverNotifier",
    "ProductService",
]
