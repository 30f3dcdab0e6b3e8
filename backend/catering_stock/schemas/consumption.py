"""Menu consumption schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from catering_stock.core.config import settings


class ConsumptionRequest(BaseModel):
    """Menu and guest count to calculate consumption for."""

    menu_id: int
    guest_count: int


class ConsumptionCommitRequest(ConsumptionRequest):
    """Commit request. ``bulk_id`` makes the commit idempotent when supplied."""

    bulk_id: Optional[int] = Field(
        None, gt=0, lt=2**settings.bulk_id_bits, description="Idempotency key for the bulk movement"
    )


class ConsumptionItemResponse(BaseModel):
    product_id: int
    product_name: str
    total_needed: Decimal
    unit: str
    current_stock: Decimal
    unit_price: Decimal
    sufficient: bool
    cost: Decimal
    shortage: Decimal

    model_config = {"from_attributes": True}


class ConsumptionResultResponse(BaseModel):
    """Result of a consumption calculation."""

    menu_id: int
    menu_name: str
    guest_count: int
    items: List[ConsumptionItemResponse]
    total_cost: Decimal
    all_sufficient: bool

    model_config = {"from_attributes": True}


class ConsumptionCommitResponse(BaseModel):
    bulk_id: int
    menu_id: int
    guest_count: int
    total_cost: Decimal
    items: List[ConsumptionItemResponse]
