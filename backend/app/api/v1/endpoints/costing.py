"""
Costing API Endpoints

COGS estimates from the BOM and the product cost snapshot history.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.db.unit_of_work import run_in_transaction
from app.exceptions import NotFoundError
from app.logging_config import audit_log, get_logger
from app.schemas.costing import CostEstimateResponse, CostSnapshotCreate, ProductCostResponse
from app.services.costing_service import CostingService

logger = get_logger(__name__)

router = APIRouter()


def get_costing_service(db: Session = Depends(get_db)) -> CostingService:
    return CostingService(db)


@router.get("/products/{product}/estimate", response_model=CostEstimateResponse)
async def estimate_product_cost(
    product: str,
    quantity: float = Query(1, gt=0),
    bom_version: Optional[str] = None,
    service: CostingService = Depends(get_costing_service),
):
    """Material cost estimate; nothing is stored"""
    estimate = service.calculate_product_cogs(product, quantity, bom_version)
    if not estimate.lines:
        raise NotFoundError("BOM", f"{product}@{bom_version}" if bom_version else product)
    return estimate.to_dict()


@router.post("/snapshots", response_model=ProductCostResponse, status_code=201)
def create_cost_snapshot(
    request: CostSnapshotCreate,
    db: Session = Depends(get_db),
    service: CostingService = Depends(get_costing_service),
):
    """Store a BOM estimate (plus labor and overhead) as a cost snapshot"""

    def work():
        estimate = service.calculate_product_cogs(request.product, request.quantity, request.bom_version)
        if not estimate.lines:
            raise NotFoundError("BOM", request.product)
        snapshot = service.save_cost_snapshot(
            product=request.product,
            cost_type=request.cost_type.value,
            quantity=request.quantity,
            lines=estimate.lines,
            labor_cost=request.labor_cost,
            overhead_cost=request.overhead_cost,
            bom_version=estimate.bom_version,
            calculated_by=request.calculated_by,
            notes=request.notes,
        )
        db.flush()
        return snapshot

    snapshot = run_in_transaction(db, work, description="save_cost_snapshot")
    audit_log(
        "COST_SNAPSHOT_SAVED",
        actor=request.calculated_by,
        resource_type="product_cost",
        resource_id=snapshot.id,
        details={"product": snapshot.product, "cost_per_unit": str(snapshot.cost_per_unit)},
    )
    return snapshot


@router.get("/history", response_model=List[ProductCostResponse])
async def cost_history(
    product: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    service: CostingService = Depends(get_costing_service),
):
    """Snapshots, newest first"""
    return service.cost_history(product, limit)


@router.get("/latest", response_model=List[ProductCostResponse])
async def latest_costs(service: CostingService = Depends(get_costing_service)):
    """Most recent snapshot for each product"""
    return service.latest_cost_per_product()
