"""Stock movement routes - grouped movement history and single movements."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, Request

from catering_stock.core.rate_limit import limiter
from catering_stock.core.responses import list_response
from catering_stock.core.scope import ProjectId, UserId
from catering_stock.db.session import DbSession
from catering_stock.models.stock import MovementType
from catering_stock.schemas.movement import (
    BulkMovementViewResponse,
    SingleMovementViewResponse,
    StockMovementCreate,
    StockMovementResponse,
)
from catering_stock.services.movement_aggregator import BulkMovementView, MovementQueryService
from catering_stock.services.movement_ledger import MovementLedgerService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
@limiter.limit("60/minute")
def list_stock_movements(
    request: Request,
    db: DbSession,
    project_id: ProjectId,
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    type: Optional[MovementType] = Query(None),
    product_id: Optional[int] = Query(None),
):
    """Movement history with bulk movements folded into groups.

    ``partial_groups`` counts bulk groups only partly inside the filter.
    """
    grouped = MovementQueryService(db, project_id).list_grouped(
        date_from=date_from,
        date_to=date_to,
        movement_type=type,
        product_id=product_id,
    )
    items = [
        BulkMovementViewResponse.model_validate(view)
        if isinstance(view, BulkMovementView)
        else SingleMovementViewResponse.model_validate(view)
        for view in grouped.views
    ]
    return list_response(items, partial_groups=grouped.partial_groups)


@router.post("", response_model=StockMovementResponse, status_code=201)
@limiter.limit("30/minute")
def create_stock_movement(
    request: Request,
    payload: StockMovementCreate,
    db: DbSession,
    project_id: ProjectId,
    user_id: UserId,
):
    """Record a single stock in/out movement."""
    movement = MovementLedgerService(db, project_id, user_id).record_movement(
        payload.product_id,
        payload.type,
        payload.quantity,
        notes=payload.notes,
    )
    return StockMovementResponse.model_validate(movement)
