"""
Inventory Pydantic Schemas

Read-only views over the inventory ledger and its audit trail.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class InventoryRecordResponse(BaseModel):
    id: int
    component_id: int
    location_id: int
    quantity: float
    reserved_quantity: float
    available_quantity: float
    cost_per_unit: Optional[float] = None
    minimum_stock: Optional[float] = None
    maximum_stock: Optional[float] = None
    status: str
    version: int
    updated_at: datetime

    model_config = {"from_attributes": True}


class ComponentStockResponse(BaseModel):
    """All records of one component with totals"""
    component_id: int
    part_number: str
    name: str
    unit: str
    quantity: float
    reserved_quantity: float
    available_quantity: float
    records: List[InventoryRecordResponse]


class LedgerMismatchResponse(BaseModel):
    inventory_record_id: int
    component_id: int
    location_id: int
    recorded_quantity: float
    replayed_quantity: float
    recorded_reserved: float
    replayed_reserved: float
    recorded_available: float
    details: str


class ReconcileResponse(BaseModel):
    """Audit trail replay compared against the ledger"""
    checked_at: datetime
    records_checked: int
    transactions_replayed: int
    is_consistent: bool
    mismatches: List[LedgerMismatchResponse] = Field(default_factory=list)
