"""Movement Aggregator - folds flat stock movement rows back into bulk groups.

``group_movements()`` is a pure fold over whatever window of rows it is
given. Filters act on individual movement dates (and products), so a bulk
group can straddle the window edge; when the true group sizes are known the
affected views are marked ``is_partial`` instead of silently rendering the
visible subset as the whole group.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from catering_stock.models.product import Product
from catering_stock.models.stock import MovementType, StockMovement

logger = logging.getLogger(__name__)


@dataclass
class MovementDetail:
    """One stock movement row priced at read time."""

    id: int
    product_id: int
    product_name: str
    type: str
    quantity: Decimal
    date: datetime
    unit_price: Decimal
    cost: Decimal
    notes: Optional[str] = None


@dataclass
class SingleMovementView:
    movement: MovementDetail
    is_bulk: bool = False


@dataclass
class BulkMovementView:
    bulk_id: int
    type: str
    date: datetime
    details: List[MovementDetail] = field(default_factory=list)
    total_cost: Decimal = Decimal("0")
    expected_member_count: Optional[int] = None
    is_bulk: bool = True

    @property
    def member_count(self) -> int:
        return len(self.details)

    @property
    def is_partial(self) -> bool:
        if self.expected_member_count is None:
            return False
        return self.member_count < self.expected_member_count


MovementView = Union[BulkMovementView, SingleMovementView]


def _detail(row, unit_prices: Mapping[int, Decimal], product_names: Mapping[int, str]) -> MovementDetail:
    quantity = Decimal(str(row.quantity))
    unit_price = Decimal(str(unit_prices.get(row.product_id, 0)))
    return MovementDetail(
        id=row.id,
        product_id=row.product_id,
        product_name=product_names.get(row.product_id, ""),
        type=row.type,
        quantity=quantity,
        date=row.date,
        unit_price=unit_price,
        cost=quantity * unit_price,
        notes=row.notes,
    )


def group_movements(
    rows: Sequence,
    unit_prices: Mapping[int, Decimal],
    group_sizes: Optional[Mapping[int, int]] = None,
    product_names: Optional[Mapping[int, str]] = None,
) -> List[MovementView]:
    """Group ``rows`` by bulk id, keeping first-appearance order.

    Args:
        rows: stock movement rows (anything with the StockMovement columns).
        unit_prices: product id -> unit price used for costs.
        group_sizes: bulk id -> number of members the group has in the store.
            When given, bulk views know their expected size.
        product_names: product id -> display name.
    """
    product_names = product_names or {}
    views: List[MovementView] = []
    bulk_views: Dict[int, BulkMovementView] = {}

    for row in rows:
        detail = _detail(row, unit_prices, product_names)

        if not row.is_bulk or row.bulk_id is None:
            views.append(SingleMovementView(movement=detail))
            continue

        view = bulk_views.get(row.bulk_id)
        if view is None:
            view = BulkMovementView(
                bulk_id=row.bulk_id,
                type=row.type,
                date=row.date,
                expected_member_count=group_sizes.get(row.bulk_id) if group_sizes is not None else None,
            )
            bulk_views[row.bulk_id] = view
            views.append(view)

        view.details.append(detail)
        view.total_cost += detail.cost

    return views


@dataclass
class GroupedMovements:
    views: List[MovementView]

    @property
    def partial_groups(self) -> int:
        return sum(1 for view in self.views if isinstance(view, BulkMovementView) and view.is_partial)


def _window_start(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _window_end(value: Union[date, datetime]) -> datetime:
    # A bare date includes the whole day
    if isinstance(value, datetime):
        return value
    return datetime.combine(value + timedelta(days=1), time.min, tzinfo=timezone.utc)


class MovementQueryService:
    """Loads filtered movement windows and groups them for display."""

    def __init__(self, db: Session, project_id: int):
        self.db = db
        self.project_id = project_id

    def list_grouped(
        self,
        date_from: Optional[Union[date, datetime]] = None,
        date_to: Optional[Union[date, datetime]] = None,
        movement_type: Optional[MovementType] = None,
        product_id: Optional[int] = None,
    ) -> GroupedMovements:
        query = self.db.query(StockMovement).filter(StockMovement.project_id == self.project_id)

        if date_from is not None:
            query = query.filter(StockMovement.date >= _window_start(date_from))
        if date_to is not None:
            if isinstance(date_to, datetime):
                query = query.filter(StockMovement.date <= date_to)
            else:
                query = query.filter(StockMovement.date < _window_end(date_to))
        if movement_type is not None:
            query = query.filter(StockMovement.type == MovementType(movement_type).value)
        if product_id is not None:
            query = query.filter(StockMovement.product_id == product_id)

        rows = query.order_by(StockMovement.date.desc(), StockMovement.id.desc()).all()

        product_ids = {row.product_id for row in rows}
        products = (
            self.db.query(Product.id, Product.name, Product.price)
            .filter(Product.id.in_(list(product_ids)))
            .all()
            if product_ids else []
        )
        unit_prices = {p.id: Decimal(str(p.price or 0)) for p in products}
        product_names = {p.id: p.name for p in products}

        bulk_ids = {row.bulk_id for row in rows if row.is_bulk and row.bulk_id is not None}
        group_sizes: Dict[int, int] = {}
        if bulk_ids:
            group_sizes = dict(
                self.db.query(StockMovement.bulk_id, func.count(StockMovement.id))
                .filter(StockMovement.bulk_id.in_(list(bulk_ids)))
                .group_by(StockMovement.bulk_id)
                .all()
            )

        grouped = GroupedMovements(
            views=group_movements(rows, unit_prices, group_sizes=group_sizes, product_names=product_names)
        )
        if grouped.partial_groups:
            logger.info(
                f"Movement window for project {self.project_id} cuts through "
                f"{grouped.partial_groups} bulk group(s)"
            )
        return grouped
