"""API routes."""

import logging
from fastapi import APIRouter

from catering_stock.api.routes import bulk_movements, consumption, stock_movements

logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(consumption.router, prefix="/consumption", tags=["consumption"])
api_router.include_router(bulk_movements.router, prefix="/bulk-movements", tags=["bulk-movements"])
api_router.include_router(stock_movements.router, prefix="/stock-movements", tags=["stock-movements"])
