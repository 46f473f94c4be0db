"""
API v1 Router - BuildOps
"""
from fastapi import APIRouter
from app.api.v1.endpoints import (
    build_orders,
    inventory,
    costing,
)

router = APIRouter()

# Build Orders
router.include_router(
    build_orders.router,
    prefix="/build-orders",
    tags=["build-orders"]
)

# Inventory ledger & audit trail
router.include_router(
    inventory.router,
    prefix="/inventory",
    tags=["inventory"]
)

# Costing
router.include_router(
    costing.router,
    prefix="/costing",
    tags=["costing"]
)
