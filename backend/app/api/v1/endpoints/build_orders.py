"""
Build Orders API Endpoints

Build order lifecycle: create, reserve materials, start, submit to QC,
complete and cancel, plus the read models behind the production dashboards.

Every mutating endpoint runs one lifecycle transition inside
``run_in_transaction`` so it commits atomically and is retried on
concurrency conflicts. Those endpoints are plain functions so FastAPI runs
them in its threadpool, where the retry backoff may sleep.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.status_config import (
    BUILD_ORDER_OPERATIONS,
    BUILD_ORDER_TRANSITIONS,
    BuildOrderStatus,
    get_allowed_build_order_transitions,
    is_terminal_status,
)
from app.db.session import get_db
from app.db.unit_of_work import run_in_transaction
from app.exceptions import InsufficientStockError
from app.logging_config import get_logger
from app.schemas.build_order import (
    BuildHistoryEntry,
    BuildOrderCreate,
    BuildOrderDetailResponse,
    BuildOrderEventResponse,
    BuildOrderResponse,
    CancelBuildRequest,
    CompleteBuildRequest,
    InventoryTransactionResponse,
    PickListResponse,
    ProductionStatsResponse,
    ReserveMaterialsRequest,
    StartBuildRequest,
    StatusTransitionsResponse,
    SubmitQCRequest,
    TransitionResponse,
)
from app.schemas.common import ErrorResponse
from app.services import build_queries
from app.services.audit_trail import AuditTrail
from app.services.build_lifecycle import BuildLifecycleService, TransitionResult

logger = get_logger(__name__)

router = APIRouter()

TRANSITION_ERRORS = {
    400: {"model": ErrorResponse, "description": "Illegal transition or invalid input"},
    404: {"model": ErrorResponse, "description": "Build order not found"},
    409: {"model": ErrorResponse, "description": "Concurrent modification, retry later"},
}


def get_lifecycle_service(db: Session = Depends(get_db)) -> BuildLifecycleService:
    return BuildLifecycleService(db)


def _transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        build_order=BuildOrderResponse.model_validate(result.order),
        details=result.details,
        warnings=result.warnings,
    )


# ============================================================================
# Read endpoints
# ============================================================================

@router.get("/", response_model=List[BuildOrderResponse])
async def list_build_orders(
    status: Optional[BuildOrderStatus] = None,
    product: Optional[str] = None,
    search: Optional[str] = Query(None, description="Match build number, product or assignee"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """List build orders, newest first"""
    return build_queries.list_build_orders(
        db,
        status=status.value if status else None,
        product=product,
        search=search,
        limit=limit,
    )


@router.get("/active", response_model=List[BuildOrderResponse])
async def list_active_build_orders(db: Session = Depends(get_db)):
    """Non-terminal build orders in work-queue order"""
    return build_queries.list_active(db)


@router.get("/history", response_model=List[BuildHistoryEntry])
async def build_history(
    product: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Completed builds with duration and yield"""
    return build_queries.history(db, product=product, limit=limit)


@router.get("/stats", response_model=ProductionStatsResponse)
async def production_stats(product: Optional[str] = None, db: Session = Depends(get_db)):
    return build_queries.production_stats(db, product=product)


@router.get("/status-transitions", response_model=StatusTransitionsResponse)
async def status_transitions():
    """The build order state table, for clients that render action buttons"""
    return StatusTransitionsResponse(
        statuses=[s.value for s in BuildOrderStatus],
        transitions={s.value: get_allowed_build_order_transitions(s.value) for s in BUILD_ORDER_TRANSITIONS},
        operations={op: target.value for op, target in BUILD_ORDER_OPERATIONS.items()},
        terminal=[s.value for s in BuildOrderStatus if is_terminal_status(s.value)],
    )


@router.get("/{build_order_id}", response_model=BuildOrderResponse, responses={404: TRANSITION_ERRORS[404]})
async def get_build_order(build_order_id: int, service: BuildLifecycleService = Depends(get_lifecycle_service)):
    return service.get_build_order(build_order_id)


@router.get("/{build_order_id}/detail", response_model=BuildOrderDetailResponse)
async def get_build_order_detail(build_order_id: int, db: Session = Depends(get_db)):
    """Order with material availability, audit entries and event timeline"""
    detail = build_queries.get_build_detail(db, build_order_id)
    return BuildOrderDetailResponse(
        build_order=BuildOrderResponse.model_validate(detail["order"]),
        bom_version=detail["bom_version"],
        materials=detail["materials"],
        shortages=detail["shortages"],
        all_materials_fulfillable=detail["all_materials_fulfillable"],
        can_reserve_materials=detail["can_reserve_materials"],
        allowed_transitions=detail["allowed_transitions"],
        transactions=[InventoryTransactionResponse.model_validate(t) for t in detail["transactions"]],
        events=[BuildOrderEventResponse.model_validate(e) for e in detail["events"]],
    )


@router.get("/{build_order_id}/pick-list", response_model=PickListResponse)
async def get_pick_list(build_order_id: int, db: Session = Depends(get_db)):
    return build_queries.get_pick_list(db, build_order_id)


@router.get("/{build_order_id}/transactions", response_model=List[InventoryTransactionResponse])
async def get_build_transactions(
    build_order_id: int,
    service: BuildLifecycleService = Depends(get_lifecycle_service),
):
    """Audit trail entries attributed to this build order, oldest first"""
    order = service.get_build_order(build_order_id)
    return AuditTrail(service.db).for_reference(order.build_number)


# ============================================================================
# Lifecycle transitions
# ============================================================================

@router.post("/", response_model=TransitionResponse, status_code=201, responses=TRANSITION_ERRORS)
def create_build_order(
    request: BuildOrderCreate,
    db: Session = Depends(get_db),
    service: BuildLifecycleService = Depends(get_lifecycle_service),
):
    result = run_in_transaction(
        db,
        lambda: service.create_build_order(
            product=request.product,
            quantity=request.quantity,
            performed_by=request.performed_by,
            priority=request.priority.value,
            bom_version=request.bom_version,
            assigned_to=request.assigned_to,
            scheduled_start=request.scheduled_start,
            notes=request.notes,
        ),
        description="create_build_order",
    )
    return _transition_response(result)


@router.post(
    "/{build_order_id}/reserve",
    response_model=TransitionResponse,
    responses={**TRANSITION_ERRORS, 422: {"model": ErrorResponse, "description": "Insufficient stock"}},
)
def reserve_materials(
    build_order_id: int,
    request: ReserveMaterialsRequest,
    db: Session = Depends(get_db),
    service: BuildLifecycleService = Depends(get_lifecycle_service),
):
    """
    Reserve BOM materials for the full build quantity.

    Without ``force`` any shortage rejects the request with
    INSUFFICIENT_STOCK and nothing is reserved; a ``materials_short`` event
    is still recorded for the alert queue.
    """
    try:
        result = run_in_transaction(
            db,
            lambda: service.reserve_materials(
                build_order_id,
                performed_by=request.performed_by,
                force=request.force,
            ),
            description="reserve_materials",
        )
    except InsufficientStockError as e:
        try:
            run_in_transaction(
                db,
                lambda: service.record_materials_short(
                    build_order_id,
                    e.shortages,
                    performed_by=request.performed_by,
                ),
                description="record_materials_short",
            )
        except Exception:
            logger.error(
                f"Failed to record materials_short event for build order {build_order_id}",
                exc_info=True,
                extra={"build_order_id": build_order_id},
            )
        raise
    return _transition_response(result)


@router.post("/{build_order_id}/start", response_model=TransitionResponse, responses=TRANSITION_ERRORS)
def start_build(
    build_order_id: int,
    request: StartBuildRequest,
    db: Session = Depends(get_db),
    service: BuildLifecycleService = Depends(get_lifecycle_service),
):
    result = run_in_transaction(
        db,
        lambda: service.start_build(
            build_order_id,
            performed_by=request.performed_by,
            assigned_to=request.assigned_to,
            notes=request.notes,
        ),
        description="start_build",
    )
    return _transition_response(result)


@router.post("/{build_order_id}/submit-qc", response_model=TransitionResponse, responses=TRANSITION_ERRORS)
def submit_to_qc(
    build_order_id: int,
    request: SubmitQCRequest,
    db: Session = Depends(get_db),
    service: BuildLifecycleService = Depends(get_lifecycle_service),
):
    result = run_in_transaction(
        db,
        lambda: service.submit_to_qc(
            build_order_id,
            performed_by=request.performed_by,
            units_built=request.units_built,
            notes=request.notes,
        ),
        description="submit_to_qc",
    )
    return _transition_response(result)


@router.post("/{build_order_id}/complete", response_model=TransitionResponse, responses=TRANSITION_ERRORS)
def complete_build(
    build_order_id: int,
    request: CompleteBuildRequest,
    db: Session = Depends(get_db),
    service: BuildLifecycleService = Depends(get_lifecycle_service),
):
    """Record QC results, settle remaining reservations and snapshot cost"""
    result = run_in_transaction(
        db,
        lambda: service.complete_build(
            build_order_id,
            performed_by=request.performed_by,
            qc_passed=request.qc_passed,
            qc_failed=request.qc_failed,
            qc_notes=request.qc_notes,
        ),
        description="complete_build",
    )
    return _transition_response(result)


@router.post("/{build_order_id}/cancel", response_model=TransitionResponse, responses=TRANSITION_ERRORS)
def cancel_build(
    build_order_id: int,
    request: CancelBuildRequest,
    db: Session = Depends(get_db),
    service: BuildLifecycleService = Depends(get_lifecycle_service),
):
    """Cancel and release every outstanding reservation"""
    result = run_in_transaction(
        db,
        lambda: service.cancel_build(
            build_order_id,
            performed_by=request.performed_by,
            reason=request.reason,
        ),
        description="cancel_build",
    )
    return _transition_response(result)
