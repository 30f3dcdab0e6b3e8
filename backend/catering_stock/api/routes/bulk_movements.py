"""Bulk movement routes - manual bulk stock out, listing and reversal."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Path, Request

from catering_stock.core.rate_limit import limiter
from catering_stock.core.responses import list_response
from catering_stock.core.scope import ProjectId, UserId
from catering_stock.db.session import DbSession
from catering_stock.models.stock import BULK_ID_MAX
from catering_stock.schemas.movement import (
    BulkStockOutRequest,
    BulkStockOutResponse,
    OperationDetailsResponse,
    ReversalResultResponse,
    ReverseRequest,
    ReversibleOperationResponse,
)
from catering_stock.services.movement_ledger import MovementLedgerService
from catering_stock.services.reversal_engine import ReversalService

logger = logging.getLogger(__name__)

router = APIRouter()

BulkId = Annotated[int, Path(ge=-BULK_ID_MAX, le=BULK_ID_MAX, description="Bulk movement ID")]


@router.post("/stock-out", response_model=BulkStockOutResponse, status_code=201)
@limiter.limit("30/minute")
def bulk_stock_out(
    request: Request,
    payload: BulkStockOutRequest,
    db: DbSession,
    project_id: ProjectId,
    user_id: UserId,
):
    """Take several products out of stock as one reversible operation."""
    bulk_id = MovementLedgerService(db, project_id, user_id).bulk_stock_out(
        [(line.product_id, line.quantity) for line in payload.lines],
        note=payload.note,
        bulk_id=payload.bulk_id,
    )
    return BulkStockOutResponse(bulk_id=bulk_id)


@router.get("/reversible")
@limiter.limit("60/minute")
def list_reversible_operations(
    request: Request,
    db: DbSession,
    project_id: ProjectId,
):
    """Bulk movements that can still be reversed, newest first."""
    operations = ReversalService(db, project_id).list_reversible_operations()
    return list_response([ReversibleOperationResponse(**op) for op in operations])


@router.get("/{bulk_id}", response_model=OperationDetailsResponse)
@limiter.limit("60/minute")
def get_operation_details(
    request: Request,
    bulk_id: BulkId,
    db: DbSession,
    project_id: ProjectId,
):
    return OperationDetailsResponse(**ReversalService(db, project_id).get_operation_details(bulk_id))


@router.post("/{bulk_id}/reverse", response_model=ReversalResultResponse)
@limiter.limit("30/minute")
def reverse_bulk_movement(
    request: Request,
    bulk_id: BulkId,
    db: DbSession,
    project_id: ProjectId,
    user_id: UserId,
    payload: Optional[ReverseRequest] = None,
):
    """Undo a bulk movement. Each bulk movement can be reversed once."""
    reason = payload.reason if payload else None
    result = ReversalService(db, project_id, user_id).reverse_bulk_movement(bulk_id, reason=reason)
    return ReversalResultResponse.model_validate(result)
