"""Menu consumption routes - calculate and commit menu consumption.

Flow:
- Calculate: read-only; returns per-product needs, sufficiency and cost.
- Commit: recalculates from current stock, refuses if anything is short,
  then writes one reversible bulk movement for the whole menu.
"""

import logging

from fastapi import APIRouter, Request

from catering_stock.core.rate_limit import limiter
from catering_stock.core.scope import ProjectId, UserId
from catering_stock.db.session import DbSession
from catering_stock.schemas.consumption import (
    ConsumptionCommitRequest,
    ConsumptionCommitResponse,
    ConsumptionItemResponse,
    ConsumptionRequest,
    ConsumptionResultResponse,
)
from catering_stock.services.consumption_calculator import ConsumptionService
from catering_stock.services.movement_ledger import MovementLedgerService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/calculate", response_model=ConsumptionResultResponse)
@limiter.limit("60/minute")
def calculate_consumption(
    request: Request,
    payload: ConsumptionRequest,
    db: DbSession,
    project_id: ProjectId,
):
    """Calculate what serving a menu to the given number of guests consumes."""
    result = ConsumptionService(db, project_id).calculate(payload.menu_id, payload.guest_count)
    return ConsumptionResultResponse.model_validate(result)


@router.post("/commit", response_model=ConsumptionCommitResponse, status_code=201)
@limiter.limit("30/minute")
def commit_consumption(
    request: Request,
    payload: ConsumptionCommitRequest,
    db: DbSession,
    project_id: ProjectId,
    user_id: UserId,
):
    """Deduct a menu's consumption from stock as one bulk movement."""
    result = ConsumptionService(db, project_id).calculate(payload.menu_id, payload.guest_count)
    bulk_id = MovementLedgerService(db, project_id, user_id).commit_consumption(
        result.items,
        menu_label=result.menu_name,
        guest_count=result.guest_count,
        bulk_id=payload.bulk_id,
    )
    return ConsumptionCommitResponse(
        bulk_id=bulk_id,
        menu_id=result.menu_id,
        guest_count=result.guest_count,
        total_cost=result.total_cost,
        items=[ConsumptionItemResponse.model_validate(item) for item in result.items],
    )
