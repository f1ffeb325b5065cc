"""Notification events produced by the alert state machine."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricewatch.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricewatch.models.product import ProductMonitor


class NotificationType(str, enum.Enum):
    PRICE_DROP = "price_drop"
    TARGET_REACHED = "target_reached"
    BACK_IN_STOCK = "back_in_stock"


class NotificationEvent(UUIDPrimaryKeyMixin, Base):
    """A pending or delivered alert for a monitor.

    Only the ``sent`` flag and ``sent_at`` change after creation.
    """

    __tablename__ = "notifications"

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="'price_drop', 'target_reached' or 'back_in_stock'"
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)

    sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index("idx_notifications_product_type_created", "product_id", "type", "created_at"),
        Index("idx_notifications_sent", "sent"),
    )

    product: Mapped["ProductMonitor"] = relationship(back_populates="notifications")

    def __repr__(self) -> str:
        return f"<NotificationEvent(product_id={self.product_id}, type='{self.type}', sent={self.sent})>"
