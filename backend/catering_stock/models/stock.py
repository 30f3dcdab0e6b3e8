"""Stock ledger models: BulkMovement and StockMovement."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catering_stock.db.base import Base

# Largest magnitude a BigInteger bulk id can hold
BULK_ID_MAX = 2**63 - 1


class MovementType(str, Enum):
    """Direction of a stock movement."""

    IN = "in"
    OUT = "out"

    @property
    def opposite(self) -> "MovementType":
        return MovementType.IN if self is MovementType.OUT else MovementType.OUT


class OperationType(str, Enum):
    """What produced a bulk movement."""

    MENU_CONSUMPTION = "menu_consumption"  # Menu served to guests
    BULK_OUT = "bulk_out"  # Manual multi-product stock out
    REVERSAL = "reversal"  # Compensating group for an undone bulk movement


class BulkMovement(Base):
    """A group of stock movements committed and reversed as one unit.

    ``id`` is chosen by the application (or the caller) and is the
    idempotency key of the commit. Reversal groups use ``-id`` of the group
    they undo.
    """

    __tablename__ = "bulk_movements"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)  # in, out
    operation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    can_be_reversed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_reversed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reversed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reversal_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    reversal_of_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("bulk_movements.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships
    movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="bulk_movement", order_by="StockMovement.id"
    )


class StockMovement(Base):
    """Append-only ledger row. ``quantity`` is positive; ``type`` gives the sign."""

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)  # in, out
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    is_bulk: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bulk_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("bulk_movements.id", ondelete="CASCADE"), nullable=True, index=True
    )
    reversal_of_movement_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("stock_movements.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="stock_movements")
    bulk_movement: Mapped[Optional["BulkMovement"]] = relationship(
        "BulkMovement", back_populates="movements"
    )

    @property
    def signed_quantity(self) -> Decimal:
        """Quantity with the sign implied by ``type``."""
        return self.quantity if self.type == MovementType.IN.value else -self.quantity


# Forward references
from catering_stock.models.product import Product
