"""Product monitor model: one tracked retailer URL."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricewatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricewatch.models.price_history import PriceObservation
    from pricewatch.models.notification import NotificationEvent


class ProductMonitor(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A product tracked by its canonical URL.

    The canonical URL is unique. Deactivating a monitor suspends scheduled
    checks but keeps its observation and notification history.
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False, unique=True, comment="Canonical product URL")
    store: Mapped[str] = mapped_column(String(100), nullable=False, comment="Retailer label")
    external_id: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Retailer-specific product identifier derived from the URL"
    )
    selector: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="CSS selector override for the price element"
    )
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Pricing
    current_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    target_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
        comment="Alert when price drops to or below this"
    )

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_checked: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_products_active", "is_active"),
    )

    # Relationships
    price_history: Mapped[list["PriceObservation"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PriceObservation.scraped_at.desc()",
    )
    notifications: Mapped[list["NotificationEvent"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<ProductMonitor(id={self.id}, name='{self.name[:50]}', store='{self.store}')>"
