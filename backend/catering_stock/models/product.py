"""Product model."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catering_stock.db.base import Base, TimestampMixin, VersionMixin


class Product(Base, TimestampMixin, VersionMixin):
    """Inventory product.

    ``stock_quantity`` is only written by the movement ledger and the
    reversal engine, always through a version compare-and-set.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    unit: Mapped[str] = mapped_column(String(20), default="pcs", nullable=False)  # pcs, g, kg, ml, L
    stock_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)

    # Relationships
    stock_movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="product"
    )


# Forward references
from catering_stock.models.stock import StockMovement
