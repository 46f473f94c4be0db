"""
Inventory API Endpoints

Read-only access to the inventory ledger and its audit trail. Stock is only
changed by build order transitions and the receiving process.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.status_config import TransactionType
from app.db.session import get_db
from app.exceptions import NotFoundError
from app.logging_config import get_logger
from app.models.component import Component
from app.schemas.build_order import InventoryTransactionResponse
from app.schemas.inventory import ComponentStockResponse, InventoryRecordResponse, ReconcileResponse
from app.services.audit_trail import AuditTrail
from app.services.inventory_ledger import InventoryLedger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/components/{component_id}/records", response_model=ComponentStockResponse)
async def get_component_records(component_id: int, db: Session = Depends(get_db)):
    """Per-location stock of one component with totals"""
    component = db.get(Component, component_id)
    if not component:
        raise NotFoundError("Component", component_id)

    ledger = InventoryLedger(db)
    totals = ledger.totals(component_id)
    return ComponentStockResponse(
        component_id=component.id,
        part_number=component.part_number,
        name=component.name,
        unit=component.unit,
        quantity=float(totals["quantity"]),
        reserved_quantity=float(totals["reserved_quantity"]),
        available_quantity=float(totals["available_quantity"]),
        records=[InventoryRecordResponse.model_validate(r) for r in ledger.get(component_id)],
    )


@router.get("/transactions", response_model=List[InventoryTransactionResponse])
async def list_transactions(
    component_id: Optional[int] = None,
    location_id: Optional[int] = None,
    type: Optional[TransactionType] = Query(None, description="reserve, unreserve, consume, receive, adjust"),
    reference: Optional[str] = Query(None, description="Build number"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Audit trail entries, most recent first"""
    return AuditTrail(db).history(
        component_id=component_id,
        location_id=location_id,
        txn_type=type.value if type else None,
        reference=reference,
        limit=limit,
    )


@router.get("/reconcile", response_model=ReconcileResponse)
async def reconcile(component_id: Optional[int] = None, db: Session = Depends(get_db)):
    """Replay the audit trail and compare it with every inventory record"""
    result = AuditTrail(db).reconcile(component_id=component_id)
    logger.info(
        f"Reconciled {result.records_checked} inventory records",
        extra={"mismatches": len(result.mismatches), "component_id": component_id},
    )
    return result.to_dict()
