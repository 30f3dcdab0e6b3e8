"""Reversal Engine - undoes a committed bulk movement exactly once.

The original group is never touched except for its reversal flags. The undo
is a new bulk group with id ``-bulk_id`` holding one opposite-type movement
per original movement, each applied to the product's *current* stock.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from catering_stock.models.product import Product
from catering_stock.models.stock import BULK_ID_MAX, BulkMovement, MovementType, OperationType, StockMovement
from catering_stock.services import activity_service
from catering_stock.services.exceptions import (
    InsufficientStockError,
    LedgerError,
    NotFoundError,
    NotReversibleError,
    PersistenceError,
)
from catering_stock.services.movement_ledger import apply_stock_delta, lock_product

logger = logging.getLogger(__name__)


def reversal_id_for(bulk_id: int) -> int:
    """Id of the group that undoes ``bulk_id``."""
    return -bulk_id


@dataclass
class ReversedLine:
    movement_id: int
    original_movement_id: int
    product_id: int
    product_name: str
    type: str
    quantity: Decimal
    new_stock: Decimal


@dataclass
class ReversalResult:
    """Outcome of reversing one bulk movement."""

    original_bulk_id: int
    reversal_bulk_id: int
    reversed_at: datetime
    reversed_by: Optional[str] = None
    reason: Optional[str] = None
    lines: List[ReversedLine] = field(default_factory=list)


class ReversalService:
    """Reverses bulk movements and lists what can still be reversed."""

    def __init__(self, db: Session, project_id: int, user_id: Optional[str] = None):
        self.db = db
        self.project_id = project_id
        self.user_id = user_id

    def _get_bulk(self, bulk_id: int, lock: bool = False) -> BulkMovement:
        if not -BULK_ID_MAX <= bulk_id <= BULK_ID_MAX:
            raise NotFoundError("Bulk movement", bulk_id)
        query = self.db.query(BulkMovement).filter(
            BulkMovement.id == bulk_id,
            BulkMovement.project_id == self.project_id,
        )
        if lock:
            query = query.populate_existing().with_for_update()
        bulk = query.first()
        if not bulk:
            raise NotFoundError("Bulk movement", bulk_id)
        return bulk

    # ===== REVERSAL (ATOMIC) =====

    def reverse_bulk_movement(self, bulk_id: int, reason: Optional[str] = None) -> ReversalResult:
        """Undo every movement of ``bulk_id`` in one transaction.

        Raises:
            NotFoundError: no such bulk movement in this project.
            NotReversibleError: already reversed, not reversible, or empty.
            InsufficientStockError: undoing an "in" group would drive stock negative.
            PersistenceError: the store failed; nothing was applied.
        """
        now = datetime.now(timezone.utc)
        reversal_id = reversal_id_for(bulk_id)

        try:
            bulk = self._get_bulk(bulk_id, lock=True)
            if not bulk.can_be_reversed:
                raise NotReversibleError(bulk_id, f"Bulk movement {bulk_id} was already reversed or cannot be reversed")

            # Product rows are locked in product id order
            originals = (
                self.db.query(StockMovement)
                .filter(StockMovement.bulk_id == bulk_id)
                .order_by(StockMovement.product_id, StockMovement.id)
                .all()
            )
            if not originals:
                raise NotReversibleError(bulk_id, f"Bulk movement {bulk_id} has no movements to reverse")

            # Only one reverser can win this flip
            flipped = self.db.execute(
                update(BulkMovement)
                .where(
                    BulkMovement.id == bulk_id,
                    BulkMovement.project_id == self.project_id,
                    BulkMovement.can_be_reversed.is_(True),
                )
                .values(
                    can_be_reversed=False,
                    is_reversed=True,
                    reversed_at=now,
                    reversed_by=self.user_id,
                    reversal_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                raise NotReversibleError(bulk_id, f"Bulk movement {bulk_id} was reversed concurrently")

            opposite = MovementType(bulk.type).opposite
            self.db.add(BulkMovement(
                id=reversal_id,
                project_id=self.project_id,
                date=now,
                type=opposite.value,
                operation_type=OperationType.REVERSAL.value,
                can_be_reversed=False,
                is_reversed=False,
                reversal_of_id=bulk_id,
                reversal_reason=reason,
                notes=f"Reversal of bulk movement {bulk_id}" + (f": {reason}" if reason else ""),
                user_id=self.user_id,
            ))
            self.db.flush()

            pending = []
            for original in originals:
                product = lock_product(self.db, self.project_id, original.product_id)
                quantity = Decimal(str(original.quantity))
                delta = quantity if original.type == MovementType.OUT.value else -quantity
                current = Decimal(str(product.stock_quantity))
                if current + delta < 0:
                    raise InsufficientStockError(
                        [{
                            "product_id": product.id,
                            "product_name": product.name,
                            "available": str(current),
                            "needed": str(quantity),
                            "unit": product.unit,
                        }],
                        f"Cannot reverse bulk movement {bulk_id}: '{product.name}' would go negative",
                    )

                new_stock = apply_stock_delta(self.db, product, delta)
                compensating = StockMovement(
                    project_id=self.project_id,
                    product_id=product.id,
                    type=MovementType(original.type).opposite.value,
                    quantity=quantity,
                    date=now,
                    is_bulk=True,
                    bulk_id=reversal_id,
                    reversal_of_movement_id=original.id,
                    notes=f"Reversal of movement {original.id}",
                    user_id=self.user_id,
                )
                self.db.add(compensating)
                pending.append((compensating, original, product, new_stock))

            self.db.flush()
            lines = [
                ReversedLine(
                    movement_id=compensating.id,
                    original_movement_id=original.id,
                    product_id=product.id,
                    product_name=product.name,
                    type=compensating.type,
                    quantity=Decimal(str(compensating.quantity)),
                    new_stock=new_stock,
                )
                for compensating, original, product, new_stock in pending
            ]
            self.db.commit()
        except LedgerError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            if self.db.get(BulkMovement, reversal_id) is not None:
                raise NotReversibleError(bulk_id, f"Bulk movement {bulk_id} was already reversed") from e
            logger.error(f"Reversal of bulk movement {bulk_id} failed: {e}", exc_info=True)
            raise PersistenceError(f"Reversal failed: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Reversal of bulk movement {bulk_id} failed: {e}", exc_info=True)
            raise PersistenceError(f"Reversal failed: {e}") from e

        logger.info(
            f"Reversed bulk movement {bulk_id} as {reversal_id} "
            f"({len(lines)} movement(s)) for project {self.project_id}"
        )
        activity_service.log_activity(
            self.db,
            self.project_id,
            activity_service.MENU_CONSUMPTION_UNDO,
            f"Bulk movement {bulk_id} reversed ({len(lines)} products)"
            + (f" - Reason: {reason}" if reason else ""),
            entity_type="bulk_movement",
            entity_id=bulk_id,
            user_id=self.user_id,
        )

        return ReversalResult(
            original_bulk_id=bulk_id,
            reversal_bulk_id=reversal_id,
            reversed_at=now,
            reversed_by=self.user_id,
            reason=reason,
            lines=lines,
        )

    # ===== READS =====

    def list_reversible_operations(self) -> List[Dict[str, Any]]:
        """Bulk movements that can still be reversed, newest first."""
        bulks = (
            self.db.query(BulkMovement)
            .options(selectinload(BulkMovement.movements).selectinload(StockMovement.product))
            .filter(
                BulkMovement.project_id == self.project_id,
                BulkMovement.can_be_reversed.is_(True),
            )
            .order_by(BulkMovement.date.desc(), BulkMovement.id.desc())
            .all()
        )

        operations = []
        for bulk in bulks:
            estimated_cost = sum(
                (Decimal(str(m.quantity)) * Decimal(str(m.product.price or 0)) for m in bulk.movements),
                Decimal("0"),
            )
            operations.append({
                "id": bulk.id,
                "date": bulk.date,
                "type": bulk.type,
                "operation_type": bulk.operation_type,
                "notes": bulk.notes,
                "user_id": bulk.user_id,
                "total_items": len(bulk.movements),
                "estimated_cost": estimated_cost,
            })
        return operations

    def get_operation_details(self, bulk_id: int) -> Dict[str, Any]:
        """A bulk movement with its member rows and each product's current stock."""
        bulk = self._get_bulk(bulk_id)
        rows = (
            self.db.query(StockMovement, Product)
            .join(Product, Product.id == StockMovement.product_id)
            .filter(StockMovement.bulk_id == bulk_id)
            .order_by(StockMovement.id)
            .all()
        )

        return {
            "id": bulk.id,
            "date": bulk.date,
            "type": bulk.type,
            "operation_type": bulk.operation_type,
            "can_be_reversed": bulk.can_be_reversed,
            "is_reversed": bulk.is_reversed,
            "reversed_at": bulk.reversed_at,
            "reversed_by": bulk.reversed_by,
            "reversal_reason": bulk.reversal_reason,
            "reversal_of_id": bulk.reversal_of_id,
            "notes": bulk.notes,
            "movements": [
                {
                    "id": movement.id,
                    "product_id": product.id,
                    "product_name": product.name,
                    "unit": product.unit,
                    "type": movement.type,
                    "quantity": movement.quantity,
                    "current_stock": product.stock_quantity,
                    "unit_price": product.price,
                    "reversal_of_movement_id": movement.reversal_of_movement_id,
                }
                for movement, product in rows
            ],
        }


def get_reversal_service(db: Session, project_id: int, user_id: Optional[str] = None) -> ReversalService:
    """Factory function to get reversal service."""
    return ReversalService(db, project_id, user_id)
