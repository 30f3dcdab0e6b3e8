"""Stock and bulk movement schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from catering_stock.core.config import settings
from catering_stock.models.stock import MovementType


class StockMovementCreate(BaseModel):
    """Single stock movement request."""

    product_id: int
    type: MovementType
    quantity: Decimal
    notes: Optional[str] = Field(None, max_length=500)


class StockMovementResponse(BaseModel):
    """Stock movement response schema."""

    id: int
    product_id: int
    type: str
    quantity: Decimal
    date: datetime
    is_bulk: bool
    bulk_id: Optional[int] = None
    reversal_of_movement_id: Optional[int] = None
    notes: Optional[str] = None
    user_id: Optional[str] = None

    model_config = {"from_attributes": True}


class BulkStockOutLine(BaseModel):
    product_id: int
    quantity: Decimal


class BulkStockOutRequest(BaseModel):
    """Manual bulk stock out of several products."""

    lines: List[BulkStockOutLine]
    note: Optional[str] = Field(None, max_length=500)
    bulk_id: Optional[int] = Field(None, gt=0, lt=2**settings.bulk_id_bits)


class BulkStockOutResponse(BaseModel):
    bulk_id: int


class ReverseRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ReversedLineResponse(BaseModel):
    movement_id: int
    original_movement_id: int
    product_id: int
    product_name: str
    type: str
    quantity: Decimal
    new_stock: Decimal

    model_config = {"from_attributes": True}


class ReversalResultResponse(BaseModel):
    """Outcome of a bulk movement reversal."""

    original_bulk_id: int
    reversal_bulk_id: int
    reversed_at: datetime
    reversed_by: Optional[str] = None
    reason: Optional[str] = None
    lines: List[ReversedLineResponse]

    model_config = {"from_attributes": True}


class ReversibleOperationResponse(BaseModel):
    id: int
    date: datetime
    type: str
    operation_type: str
    notes: Optional[str] = None
    user_id: Optional[str] = None
    total_items: int
    estimated_cost: Decimal


class OperationMovementResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    unit: str
    type: str
    quantity: Decimal
    current_stock: Decimal
    unit_price: Decimal
    reversal_of_movement_id: Optional[int] = None


class OperationDetailsResponse(BaseModel):
    """A bulk movement with its member movements."""

    id: int
    date: datetime
    type: str
    operation_type: str
    can_be_reversed: bool
    is_reversed: bool
    reversed_at: Optional[datetime] = None
    reversed_by: Optional[str] = None
    reversal_reason: Optional[str] = None
    reversal_of_id: Optional[int] = None
    notes: Optional[str] = None
    movements: List[OperationMovementResponse]


# Grouped movement views

class MovementDetailResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    type: str
    quantity: Decimal
    date: datetime
    unit_price: Decimal
    cost: Decimal
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class SingleMovementViewResponse(BaseModel):
    is_bulk: bool = False
    movement: MovementDetailResponse

    model_config = {"from_attributes": True}


class BulkMovementViewResponse(BaseModel):
    is_bulk: bool = True
    bulk_id: int
    type: str
    date: datetime
    total_cost: Decimal
    member_count: int
    expected_member_count: Optional[int] = None
    is_partial: bool
    details: List[MovementDetailResponse]

    model_config = {"from_attributes": True}
