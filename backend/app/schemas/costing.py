"""
Costing Pydantic Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.core.status_config import CostType


class CostLineResponse(BaseModel):
    component_id: int
    part_number: Optional[str] = None
    component_name: Optional[str] = None
    quantity_per_unit: float
    quantity: float
    unit_cost: float
    line_total: float
    source: str

    model_config = {"from_attributes": True}


class CostEstimateResponse(BaseModel):
    """BOM-based estimate; nothing is stored"""
    product: str
    quantity: float
    bom_version: Optional[str] = None
    lines: List[CostLineResponse]
    material_cost: float
    cost_per_unit: float
    has_unknown_costs: bool


class CostSnapshotCreate(BaseModel):
    """Store an estimate as a snapshot, optionally with labor and overhead"""
    product: str = Field(..., min_length=1, max_length=200)
    quantity: float = Field(1, gt=0)
    bom_version: Optional[str] = None
    cost_type: CostType = CostType.ESTIMATE
    labor_cost: float = Field(0, ge=0)
    overhead_cost: float = Field(0, ge=0)
    calculated_by: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class ProductCostResponse(BaseModel):
    id: int
    product: str
    build_order_id: Optional[int] = None
    type: str
    bom_version: Optional[str] = None
    quantity: float
    material_cost: float
    labor_cost: float
    overhead_cost: float
    total_cost: float
    cost_per_unit: float
    has_unknown_costs: bool
    calculated_at: datetime
    calculated_by: Optional[str] = None
    notes: Optional[str] = None
    lines: List[CostLineResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}
