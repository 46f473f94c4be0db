"""
Build Order Pydantic Schemas

Requests and responses for the build order lifecycle endpoints.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.core.status_config import BuildOrderStatus, BuildPriority


# ============================================================================
# Requests
# ============================================================================

class ActorRequest(BaseModel):
    """Every lifecycle request names who performed it"""
    performed_by: str = Field(..., min_length=1, max_length=100)

    @field_validator("performed_by")
    @classmethod
    def strip_actor(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("performed_by cannot be blank")
        return v


class BuildOrderCreate(ActorRequest):
    """Create a build order in planned status"""
    product: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0)
    priority: BuildPriority = BuildPriority.NORMAL
    bom_version: Optional[str] = Field(None, max_length=50)
    assigned_to: Optional[str] = Field(None, max_length=100)
    scheduled_start: Optional[datetime] = None
    notes: Optional[str] = None


class ReserveMaterialsRequest(ActorRequest):
    """Reserve BOM materials; ``force`` accepts a partial reservation"""
    force: bool = False


class StartBuildRequest(ActorRequest):
    assigned_to: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class SubmitQCRequest(ActorRequest):
    units_built: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class CompleteBuildRequest(ActorRequest):
    """QC results; passed + failed may not exceed the build quantity"""
    qc_passed: int = Field(..., ge=0)
    qc_failed: int = Field(0, ge=0)
    qc_notes: Optional[str] = None


class CancelBuildRequest(ActorRequest):
    reason: str = Field(..., min_length=1)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("A cancellation reason is required")
        return v


# ============================================================================
# Responses
# ============================================================================

class BuildOrderResponse(BaseModel):
    """Build order as stored"""
    id: int
    build_number: str
    product: str
    quantity: int
    bom_version: Optional[str] = None
    status: BuildOrderStatus
    priority: str
    consumption_point: str
    assigned_to: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    actual_start: Optional[datetime] = None
    submitted_to_qc_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    units_built: Optional[int] = None
    qc_status: Optional[str] = None
    qc_passed_count: Optional[int] = None
    qc_failed_count: Optional[int] = None
    qc_notes: Optional[str] = None
    yield_rate: Optional[float] = None
    duration_hours: Optional[float] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = {"from_attributes": True}


class TransitionResponse(BaseModel):
    """Result of a lifecycle transition"""
    build_order: BuildOrderResponse
    details: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)


class BuildOrderEventResponse(BaseModel):
    id: int
    event_type: str
    severity: str
    title: str
    description: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_by: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InventoryTransactionResponse(BaseModel):
    """One audit trail entry"""
    id: int
    type: str
    component_id: int
    location_id: int
    inventory_record_id: int
    quantity: float
    previous_quantity: float
    new_quantity: float
    previous_reserved: float
    new_reserved: float
    reference_type: Optional[str] = None
    reference: Optional[str] = None
    build_order_id: Optional[int] = None
    reason: Optional[str] = None
    performed_by: Optional[str] = None
    timestamp: datetime

    model_config = {"from_attributes": True}


class MaterialLocation(BaseModel):
    inventory_record_id: int
    location_id: int
    location_code: Optional[str] = None
    quantity: float
    reserved_quantity: float
    available_quantity: float
    status: str


class MaterialRequirement(BaseModel):
    """One BOM line with availability across locations"""
    component_id: int
    part_number: Optional[str] = None
    component_name: Optional[str] = None
    quantity_per_unit: float
    needed: float
    available: float
    reserved_for_build: float
    outstanding_for_build: float
    consumed_for_build: float = 0.0
    is_optional: bool
    reference_designator: Optional[str] = None
    fulfillable: bool
    locations: List[MaterialLocation] = Field(default_factory=list)


class BuildOrderDetailResponse(BaseModel):
    build_order: BuildOrderResponse
    bom_version: Optional[str] = None
    materials: List[MaterialRequirement]
    shortages: List[Dict[str, Any]]
    all_materials_fulfillable: bool
    can_reserve_materials: bool
    allowed_transitions: List[str]
    transactions: List[InventoryTransactionResponse]
    events: List[BuildOrderEventResponse]


class PickListItem(BaseModel):
    component_id: int
    part_number: Optional[str] = None
    component_name: Optional[str] = None
    inventory_record_id: int
    location_id: int
    location_code: Optional[str] = None
    quantity: float


class PickListResponse(BaseModel):
    build_order_id: int
    build_number: str
    status: str
    source: str  # reservations, consumed, plan, none
    items: List[PickListItem]
    shortfalls: List[Dict[str, Any]] = Field(default_factory=list)


class BuildHistoryEntry(BaseModel):
    id: int
    build_number: str
    product: str
    quantity: int
    qc_passed_count: Optional[int] = None
    qc_failed_count: Optional[int] = None
    yield_rate: Optional[float] = None
    duration_hours: Optional[float] = None
    actual_start: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ProductionStatsResponse(BaseModel):
    product: Optional[str] = None
    total: int
    by_status: Dict[str, int]
    active: int
    units_planned: int
    units_passed: int
    units_failed: int
    overall_yield: Optional[float] = None
    average_duration_hours: Optional[float] = None


class StatusTransitionsResponse(BaseModel):
    """The full transition table"""
    statuses: List[str]
    transitions: Dict[str, List[str]]
    operations: Dict[str, str]
    terminal: List[str]
