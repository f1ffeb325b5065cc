"""Price observations recorded by each check."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricewatch.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricewatch.models.product import ProductMonitor


class PriceObservation(UUIDPrimaryKeyMixin, Base):
    """One timestamped price/availability reading.

    Rows are append-only. The newest row per product is that product's
    current view; rows past the retention horizon are purged.
    """

    __tablename__ = "price_history"

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AUD")
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="When this price was captured"
    )

    __table_args__ = (
        Index("idx_price_history_product_scraped", "product_id", "scraped_at"),
        Index("idx_price_history_scraped", "scraped_at"),
    )

    product: Mapped["ProductMonitor"] = relationship(back_populates="price_history")

    def __repr__(self) -> str:
        return f"<PriceObservation(product_id={self.product_id}, price={self.price}, scraped_at={self.scraped_at})>"
