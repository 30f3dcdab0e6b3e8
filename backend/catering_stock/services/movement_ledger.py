"""Movement Ledger - commits consumptions as bulk stock movements.

Flow for a commit:
1. Refuse the whole commit if any item is insufficient (no writes at all).
2. Pick the bulk movement id (caller's idempotency key or a fresh one).
3. In ONE transaction:
   a. Insert the BulkMovement (type "out", reversible).
   b. For each item, in product id order: lock the product row, re-check live stock, move
      stock_quantity with a version compare-and-set, insert the StockMovement.
4. Commit. Any failure rolls back everything written in step 3.
5. Write the activity entry (best effort).

Stock is always decremented from the live row, never overwritten with a
value computed from the calculation snapshot.
"""

import logging
import secrets
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from catering_stock.core.config import settings
from catering_stock.models.product import Product
from catering_stock.models.stock import BulkMovement, MovementType, OperationType, StockMovement
from catering_stock.services import activity_service
from catering_stock.services.consumption_calculator import ConsumptionItem, items_from_lines
from catering_stock.services.exceptions import (
    ConcurrentModificationError,
    DuplicateBulkMovementError,
    EmptyMenuError,
    InsufficientStockError,
    InvalidBulkIdError,
    InvalidRecipeError,
    LedgerError,
    NotFoundError,
    PersistenceError,
)

logger = logging.getLogger(__name__)

BULK_ID_ATTEMPTS = 5


def quantize_quantity(value: Decimal) -> Decimal:
    """Round a quantity to the precision stock columns keep."""
    quantum = Decimal(1).scaleb(-settings.quantity_scale)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def lock_product(db: Session, project_id: int, product_id: int) -> Product:
    """Load a product fresh from the database, row-locked where supported."""
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.project_id == project_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not product:
        raise NotFoundError("Product", product_id)
    return product


def apply_stock_delta(db: Session, product: Product, delta: Decimal) -> Decimal:
    """Move ``product.stock_quantity`` by ``delta`` with a version compare-and-set.

    Returns the new stock. Raises ConcurrentModificationError if another
    writer bumped the version since ``product`` was loaded.
    """
    seen_version = product.version
    new_qty = Decimal(str(product.stock_quantity)) + delta

    result = db.execute(
        update(Product)
        .where(Product.id == product.id, Product.version == seen_version)
        .values(stock_quantity=new_qty, version=seen_version + 1)
    )
    if result.rowcount != 1:
        raise ConcurrentModificationError(product.id)
    return new_qty


def _insufficient(items: Sequence[ConsumptionItem]) -> List[Dict]:
    return [
        {
            "product_id": item.product_id,
            "product_name": item.product_name,
            "available": str(item.current_stock),
            "needed": str(item.total_needed),
            "unit": item.unit,
        }
        for item in items
        if not item.sufficient
    ]


class MovementLedgerService:
    """Writes bulk and single stock movements for one project."""

    def __init__(self, db: Session, project_id: int, user_id: Optional[str] = None):
        self.db = db
        self.project_id = project_id
        self.user_id = user_id

    # ===== CORE: CONSUMPTION COMMIT (ATOMIC) =====

    def commit_consumption(
        self,
        items: Sequence[ConsumptionItem],
        menu_label: str,
        guest_count: int,
        bulk_id: Optional[int] = None,
        operation_type: OperationType = OperationType.MENU_CONSUMPTION,
    ) -> int:
        """Commit a calculated consumption. Returns the bulk movement id."""
        total_cost = sum((item.cost for item in items), Decimal("0"))
        bulk_note = (
            f"Menu consumption: {menu_label} - {guest_count} guests "
            f"(Total: {total_cost:.2f} {settings.currency_symbol})"
        )
        movement_note = f"Menu consumption: {menu_label} - {guest_count} guests"

        bulk_id = self._commit_items(
            items,
            operation_type=OperationType(operation_type),
            bulk_note=bulk_note,
            movement_note=movement_note,
            bulk_id=bulk_id,
        )

        activity_service.log_activity(
            self.db,
            self.project_id,
            activity_service.MENU_CONSUMPTION,
            f"{menu_label} menu - {guest_count} guests ({len(items)} products consumed, "
            f"Total: {total_cost:.2f} {settings.currency_symbol})",
            entity_type="bulk_movement",
            entity_id=bulk_id,
            user_id=self.user_id,
        )
        return bulk_id

    def bulk_stock_out(
        self,
        lines: Sequence[Tuple[int, Decimal]],
        note: Optional[str] = None,
        bulk_id: Optional[int] = None,
    ) -> int:
        """Take several products out of stock as one reversible bulk movement."""
        if not lines:
            raise EmptyMenuError("No products selected for bulk stock out")

        product_ids = {product_id for product_id, _ in lines}
        products = {
            p.id: p
            for p in self.db.query(Product).filter(
                Product.id.in_(list(product_ids)),
                Product.project_id == self.project_id,
            ).all()
        }
        missing = sorted(product_ids - set(products))
        if missing:
            raise NotFoundError("Product", missing[0])

        items = items_from_lines(lines, products)
        note = note or "Bulk stock out"
        bulk_id = self._commit_items(
            items,
            operation_type=OperationType.BULK_OUT,
            bulk_note=note,
            movement_note=note,
            bulk_id=bulk_id,
        )

        total_cost = sum((item.cost for item in items), Decimal("0"))
        activity_service.log_activity(
            self.db,
            self.project_id,
            activity_service.STOCK_BULK_OUT,
            f"{note} - {len(items)} products (Total: {total_cost:.2f} {settings.currency_symbol})",
            entity_type="bulk_movement",
            entity_id=bulk_id,
            user_id=self.user_id,
        )
        return bulk_id

    # ===== SINGLE MOVEMENT =====

    def record_movement(
        self,
        product_id: int,
        movement_type: MovementType,
        quantity: Decimal,
        notes: Optional[str] = None,
    ) -> StockMovement:
        """Record one non-bulk movement and apply it to stock."""
        movement_type = MovementType(movement_type)
        quantity = quantize_quantity(quantity)
        if quantity <= 0:
            raise InvalidRecipeError("Movement quantity must be greater than zero")

        try:
            product = lock_product(self.db, self.project_id, product_id)
            delta = quantity if movement_type is MovementType.IN else -quantity
            current = Decimal(str(product.stock_quantity))
            if current + delta < 0:
                raise InsufficientStockError([{
                    "product_id": product.id,
                    "product_name": product.name,
                    "available": str(current),
                    "needed": str(quantity),
                    "unit": product.unit,
                }])

            apply_stock_delta(self.db, product, delta)
            movement = StockMovement(
                project_id=self.project_id,
                product_id=product.id,
                type=movement_type.value,
                quantity=quantity,
                date=datetime.now(timezone.utc),
                is_bulk=False,
                notes=notes,
                user_id=self.user_id,
            )
            self.db.add(movement)
            self.db.flush()
            self.db.commit()
        except LedgerError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Stock movement for product {product_id} failed: {e}", exc_info=True)
            raise PersistenceError(f"Stock movement failed: {e}") from e

        self.db.refresh(movement)
        activity_service.log_activity(
            self.db,
            self.project_id,
            activity_service.STOCK_ADD if movement_type is MovementType.IN else activity_service.STOCK_REMOVE,
            f"{product.name}: {movement_type.value} {quantity} {product.unit}",
            entity_type="stock_movement",
            entity_id=movement.id,
            user_id=self.user_id,
        )
        return movement

    # ===== INTERNALS =====

    def generate_bulk_id(self) -> int:
        """Pick a positive numeric bulk id that is not taken yet."""
        for _ in range(BULK_ID_ATTEMPTS):
            candidate = secrets.randbits(settings.bulk_id_bits)
            if candidate > 0 and self.db.get(BulkMovement, candidate) is None:
                return candidate
        raise PersistenceError("Could not allocate a unique bulk movement id")

    def _claim_bulk_id(self, bulk_id: Optional[int]) -> int:
        if bulk_id is None:
            return self.generate_bulk_id()
        if isinstance(bulk_id, bool) or not isinstance(bulk_id, int):
            raise InvalidBulkIdError(bulk_id, "bulk_id must be an integer")
        if not 0 < bulk_id < 2**settings.bulk_id_bits:
            raise InvalidBulkIdError(
                bulk_id, f"bulk_id must be between 1 and {2**settings.bulk_id_bits - 1}"
            )
        if self.db.get(BulkMovement, bulk_id) is not None:
            logger.warning(f"Rejected commit reusing bulk movement id {bulk_id}")
            raise DuplicateBulkMovementError(bulk_id)
        return bulk_id

    def _commit_items(
        self,
        items: Sequence[ConsumptionItem],
        operation_type: OperationType,
        bulk_note: str,
        movement_note: str,
        bulk_id: Optional[int],
    ) -> int:
        # Sufficiency is decided before anything is written
        shortages = _insufficient(items)
        if shortages:
            logger.warning(
                f"Refused {operation_type.value} commit: insufficient stock for "
                f"{[s['product_name'] for s in shortages]}"
            )
            raise InsufficientStockError(shortages)

        lines = [(item, quantize_quantity(item.total_needed)) for item in items]
        lines = [(item, qty) for item, qty in lines if qty > 0]
        if not lines:
            raise EmptyMenuError("Nothing to commit: every item has a zero quantity")
        # Product rows are locked in product id order
        lines.sort(key=lambda line: line[0].product_id)

        bulk_id = self._claim_bulk_id(bulk_id)
        now = datetime.now(timezone.utc)

        try:
            self.db.add(BulkMovement(
                id=bulk_id,
                project_id=self.project_id,
                date=now,
                type=MovementType.OUT.value,
                operation_type=operation_type.value,
                can_be_reversed=True,
                is_reversed=False,
                notes=bulk_note[:500],
                user_id=self.user_id,
            ))
            self.db.flush()

            for item, quantity in lines:
                product = lock_product(self.db, self.project_id, item.product_id)
                live_stock = Decimal(str(product.stock_quantity))
                if live_stock < quantity:
                    raise ConcurrentModificationError(
                        product.id,
                        f"Stock of '{product.name}' changed since calculation: "
                        f"need {quantity}, have {live_stock} {product.unit}",
                    )
                if live_stock != item.current_stock:
                    logger.info(
                        f"Stock of '{product.name}' moved from {item.current_stock} to {live_stock} "
                        f"since calculation; deducting from live stock"
                    )

                apply_stock_delta(self.db, product, -quantity)
                self.db.add(StockMovement(
                    project_id=self.project_id,
                    product_id=product.id,
                    type=MovementType.OUT.value,
                    quantity=quantity,
                    date=now,
                    is_bulk=True,
                    bulk_id=bulk_id,
                    notes=movement_note[:500],
                    user_id=self.user_id,
                ))

            self.db.flush()
            self.db.commit()
        except LedgerError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            if self.db.get(BulkMovement, bulk_id) is not None:
                raise DuplicateBulkMovementError(bulk_id) from e
            logger.error(f"Bulk movement {bulk_id} failed: {e}", exc_info=True)
            raise PersistenceError(f"Bulk movement commit failed: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Bulk movement {bulk_id} failed: {e}", exc_info=True)
            raise PersistenceError(f"Bulk movement commit failed: {e}") from e

        logger.info(
            f"Committed {operation_type.value} bulk movement {bulk_id} "
            f"with {len(lines)} stock movement(s) for project {self.project_id}"
        )
        return bulk_id


def get_movement_ledger_service(db: Session, project_id: int, user_id: Optional[str] = None) -> MovementLedgerService:
    """Factory function to get movement ledger service."""
    return MovementLedgerService(db, project_id, user_id)
