"""
Build Lifecycle Service

The build order state machine. Each public method is one lifecycle
transition; it validates the move against app.core.status_config, applies
the stock side effects through the inventory ledger, writes one audit entry
per record touched and updates the order.

    create_build_order     -> planned
    reserve_materials      planned            -> materials_reserved
    start_build            materials_reserved -> in_progress
    submit_to_qc           in_progress        -> qc
    complete_build         qc                 -> complete
    cancel_build           any non-terminal   -> cancelled

Transitions never commit. Callers wrap each one in
app.db.unit_of_work.run_in_transaction so that everything a transition did
commits together, rolls back together, and is retried as a whole on a
concurrency conflict.

Reserved materials leave inventory at the order's ``consumption_point``:
``start`` consumes every outstanding reservation when the build starts;
``complete`` consumes (passed + failed) units' worth at completion and
releases the rest.
"""
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.settings import Settings, get_settings
from app.core.status_config import (
    BUILD_ORDER_OPERATIONS,
    BuildOrderStatus,
    BuildPriority,
    ConsumptionPoint,
    QCStatus,
    TransactionType,
    get_accepted_source_statuses,
    get_allowed_build_order_transitions,
    is_valid_build_order_transition,
)
from app.exceptions import (
    ConcurrencyError,
    ConflictError,
    IllegalTransitionError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from app.logging_config import audit_log, get_logger
from app.models.build_event import BuildOrderEvent
from app.models.build_order import BuildOrder
from app.models.component import Component
from app.models.inventory import InventoryRecord, InventoryTransaction
from app.services.audit_trail import AuditTrail, OutstandingReservation
from app.services.bom_index import BomIndex, required_quantities
from app.services.costing_service import CostingService
from app.services.event_service import record_build_event
from app.services.inventory_ledger import InventoryLedger, ZERO, quantize, to_decimal
from app.services.pricing import PricingSource
from app.services.reservation_allocator import ReservationAllocator

logger = get_logger(__name__)

# Generated numbers can collide with a concurrent create; regenerate this many times
BUILD_NUMBER_ATTEMPTS = 5


@dataclass
class TransitionResult:
    """
    Outcome of a lifecycle transition.

    ``warnings`` holds non-fatal problems (forced partial reservation, cost
    snapshot failure); the transition itself succeeded.
    """
    order: BuildOrder
    details: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


def _product_code(product: str) -> str:
    letters = re.sub(r"[^A-Za-z0-9]", "", product)
    return (letters[:2] or "XX").upper()


class BuildLifecycleService:
    """Runs build order transitions against one database session"""

    def __init__(
        self,
        db: Session,
        *,
        clock: Clock = utcnow,
        settings: Optional[Settings] = None,
        pricing: Optional[PricingSource] = None,
        bom_index: Optional[BomIndex] = None,
    ):
        self.db = db
        self.clock = clock
        self.settings = settings or get_settings()
        self.ledger = InventoryLedger(db, clock=clock)
        self.allocator = ReservationAllocator(self.ledger)
        self.audit = AuditTrail(db, clock=clock)
        self.bom = bom_index or BomIndex(db)
        self.costing = CostingService(db, pricing=pricing, clock=clock)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def get_build_order(self, build_order_id: int, *, for_update: bool = False) -> BuildOrder:
        query = self.db.query(BuildOrder).filter(BuildOrder.id == build_order_id)
        if for_update:
            query = query.with_for_update()
        order = query.first()
        if not order:
            raise NotFoundError("BuildOrder", build_order_id)
        return order

    @staticmethod
    def _require_actor(performed_by: str) -> str:
        if not performed_by or not performed_by.strip():
            raise ValidationError("performed_by is required", field="performed_by")
        return performed_by.strip()

    def _check_transition(self, order: BuildOrder, operation: str) -> BuildOrderStatus:
        target = BUILD_ORDER_OPERATIONS[operation]
        if not is_valid_build_order_transition(order.status, target.value):
            logger.info(
                f"Rejected {operation} on {order.build_number} in status {order.status}",
                extra={"build_number": order.build_number, "status": order.status},
            )
            raise IllegalTransitionError(
                operation=operation,
                build_number=order.build_number,
                current_state=order.status,
                requested_state=target.value,
                allowed_states=get_allowed_build_order_transitions(order.status),
                accepted_from=get_accepted_source_statuses(target.value),
            )
        return target

    def _set_status(
        self,
        order: BuildOrder,
        target: BuildOrderStatus,
        performed_by: str,
        now: datetime,
        description: Optional[str] = None,
    ) -> None:
        old_status = order.status
        order.status = target.value
        order.updated_at = now
        record_build_event(
            self.db,
            build_order_id=order.id,
            event_type="status_change",
            title=f"Status changed to {target.value}",
            description=description,
            old_value=old_status,
            new_value=target.value,
            performed_by=performed_by,
            created_at=now,
        )

    def _move_stock(
        self,
        order: BuildOrder,
        record: InventoryRecord,
        txn_type: TransactionType,
        amount: Decimal,
        *,
        performed_by: str,
        reason: str,
    ) -> InventoryTransaction:
        """Apply one reserve/unreserve/consume to the ledger and log it"""
        amount = to_decimal(amount)
        previous_quantity = to_decimal(record.quantity)
        previous_reserved = to_decimal(record.reserved_quantity)

        if txn_type == TransactionType.RESERVE:
            self.ledger.mutate(record, reserved_delta=amount)
            signed = -amount
        elif txn_type == TransactionType.UNRESERVE:
            self.ledger.mutate(record, reserved_delta=-amount)
            signed = amount
        elif txn_type == TransactionType.CONSUME:
            self.ledger.mutate(record, quantity_delta=-amount, reserved_delta=-amount)
            signed = -amount
        else:
            raise ValueError(f"Build orders do not write {txn_type} transactions")

        return self.audit.append(
            txn_type,
            record,
            signed,
            previous_quantity=previous_quantity,
            previous_reserved=previous_reserved,
            reference=order.build_number,
            build_order_id=order.id,
            performed_by=performed_by,
            reason=reason,
        )

    def _release(
        self,
        order: BuildOrder,
        holdings: List[OutstandingReservation],
        *,
        performed_by: str,
        reason: str,
    ) -> List[Dict[str, Any]]:
        records = self.ledger.lock_records(h.inventory_record_id for h in holdings)
        released = []
        for holding in holdings:
            self._move_stock(
                order,
                records[holding.inventory_record_id],
                TransactionType.UNRESERVE,
                holding.quantity,
                performed_by=performed_by,
                reason=reason,
            )
            released.append(holding.to_dict())
        return released

    def _shortage(self, component_id: int, needed: Decimal, available: Decimal) -> Dict[str, Any]:
        component = self.db.get(Component, component_id)
        return {
            "component_id": component_id,
            "part_number": component.part_number if component else None,
            "component_name": component.name if component else None,
            "needed": float(needed),
            "available": float(available),
            "shortfall": float(needed - available),
        }

    def _build_number_taken(self, build_number: str) -> bool:
        return (
            self.db.query(BuildOrder.id).filter(BuildOrder.build_number == build_number).first()
            is not None
        )

    def generate_build_number(self, product: str, year: Optional[int] = None) -> str:
        """Next BUILD-<PC>-<YYYY>-<NNN> number for the product code and year"""
        year = year or self.clock().year
        prefix = f"{self.settings.BUILD_NUMBER_PREFIX}-{_product_code(product)}-{year}-"
        existing = (
            self.db.query(BuildOrder.build_number)
            .filter(BuildOrder.build_number.like(f"{prefix}%"))
            .all()
        )
        last = 0
        for (number,) in existing:
            suffix = number[len(prefix):]
            if suffix.isdigit():
                last = max(last, int(suffix))
        return f"{prefix}{last + 1:03d}"

    # ==========================================================================
    # Creation
    # ==========================================================================

    def create_build_order(
        self,
        *,
        product: str,
        quantity: int,
        performed_by: str,
        priority: str = BuildPriority.NORMAL.value,
        bom_version: Optional[str] = None,
        assigned_to: Optional[str] = None,
        scheduled_start: Optional[datetime] = None,
        notes: Optional[str] = None,
        build_number: Optional[str] = None,
    ) -> TransitionResult:
        """Create a build order in ``planned``"""
        performed_by = self._require_actor(performed_by)
        if not product or not product.strip():
            raise ValidationError("Product is required", field="product")
        if quantity is None or int(quantity) != quantity or quantity <= 0:
            raise ValidationError("Quantity must be a positive whole number", field="quantity", value=quantity)
        try:
            priority = BuildPriority(priority).value
        except ValueError:
            raise ValidationError(
                f"Priority must be one of: {', '.join(p.value for p in BuildPriority)}",
                field="priority",
                value=priority,
            )

        product = product.strip()
        if build_number and self._build_number_taken(build_number):
            raise ConflictError(
                f"Build number {build_number} already exists",
                details={"build_number": build_number},
            )

        now = self.clock()
        for attempt in range(1, BUILD_NUMBER_ATTEMPTS + 1):
            number = build_number or self.generate_build_number(product)
            order = BuildOrder(
                build_number=number,
                product=product,
                quantity=int(quantity),
                status=BuildOrderStatus.PLANNED.value,
                priority=priority,
                bom_version=bom_version,
                consumption_point=self.settings.MATERIAL_CONSUMPTION_POINT,
                assigned_to=assigned_to,
                scheduled_start=scheduled_start,
                notes=notes,
                created_by=performed_by,
                created_at=now,
                updated_at=now,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(order)
                    self.db.flush()
                break
            except IntegrityError:
                if build_number:
                    raise ConflictError(
                        f"Build number {build_number} already exists",
                        details={"build_number": build_number},
                    )
                if not self._build_number_taken(number):
                    raise
                # Another transaction committed the same number first
                logger.info(
                    f"Build number {number} was taken concurrently, generating another ({attempt}/{BUILD_NUMBER_ATTEMPTS})",
                    extra={"build_number": number},
                )
        else:
            raise ConcurrencyError(
                f"Could not allocate a unique build number for {product}; retry later",
                attempts=BUILD_NUMBER_ATTEMPTS,
            )
        build_number = number

        record_build_event(
            self.db,
            build_order_id=order.id,
            event_type="created",
            title=f"Build order {build_number} created",
            description=f"{product} x{quantity}",
            new_value=BuildOrderStatus.PLANNED.value,
            performed_by=performed_by,
            created_at=now,
        )
        self.db.flush()

        logger.info(
            f"Created build order {build_number}",
            extra={"build_number": build_number, "product": product, "quantity": quantity},
        )
        audit_log(
            "BUILD_CREATED",
            actor=performed_by,
            resource_type="build_order",
            resource_id=order.id,
            details={"build_number": build_number, "product": product, "quantity": quantity},
        )
        return TransitionResult(order=order, details={"build_number": build_number})

    # ==========================================================================
    # planned -> materials_reserved
    # ==========================================================================

    def reserve_materials(
        self,
        build_order_id: int,
        *,
        performed_by: str,
        force: bool = False,
    ) -> TransitionResult:
        """
        Reserve every non-optional BOM component for the full order quantity.

        A feasibility pass runs first; any shortage aborts with
        InsufficientStockError listing all short components, before anything
        is mutated. With ``force`` the reservation proceeds best-effort and
        the shortages come back in the result instead.
        """
        performed_by = self._require_actor(performed_by)
        order = self.get_build_order(build_order_id, for_update=True)
        target = self._check_transition(order, "reserve_materials")

        bom_version = self.bom.resolve_version(order.product, order.bom_version)
        entries = self.bom.get_bom_entries(order.product, bom_version)
        if not entries:
            raise NotFoundError(
                "BOM",
                f"{order.product}@{bom_version}" if bom_version else order.product,
            )

        requirements = required_quantities(entries, order.quantity)
        records_by_component = self.ledger.lock_components(requirements)

        # Pass 1: feasibility
        shortages = []
        for component_id, required in requirements.items():
            available = sum(
                (to_decimal(r.available_quantity) for r in records_by_component[component_id]),
                ZERO,
            )
            if available < required:
                shortages.append(self._shortage(component_id, required, available))

        if shortages and not force:
            logger.warning(
                f"Insufficient stock to reserve {order.build_number}: {len(shortages)} short components",
                extra={"build_number": order.build_number, "shortages": shortages},
            )
            raise InsufficientStockError(order.build_number, shortages)

        # Pass 2: allocate and reserve
        reason = f"Reserved for {order.build_number} ({order.product} x{order.quantity})"
        reservations = []
        allocations = []
        for component_id, required in requirements.items():
            records = records_by_component[component_id]
            allocation = self.allocator.plan(component_id, records, required)
            by_id = {r.id: r for r in records}
            for record_id, quantity in allocation.takes:
                record = by_id[record_id]
                self._move_stock(
                    order,
                    record,
                    TransactionType.RESERVE,
                    quantity,
                    performed_by=performed_by,
                    reason=reason,
                )
                reservations.append({
                    "inventory_record_id": record_id,
                    "component_id": component_id,
                    "location_id": record.location_id,
                    "quantity": float(quantity),
                })
            allocations.append(allocation.to_dict())

        warnings = []
        if shortages:
            for s in shortages:
                warnings.append(
                    f"Partial reservation: {s['part_number'] or s['component_id']} short by {s['shortfall']}"
                )
            record_build_event(
                self.db,
                build_order_id=order.id,
                event_type="materials_short",
                title=f"Materials short for {order.build_number} (forced reservation)",
                description="; ".join(warnings),
                severity="warning",
                performed_by=performed_by,
                created_at=self.clock(),
            )

        now = self.clock()
        order.bom_version = bom_version
        self._set_status(
            order,
            target,
            performed_by,
            now,
            description="Forced partial reservation" if shortages else None,
        )
        self.db.flush()

        logger.info(
            f"Reserved materials for {order.build_number}",
            extra={
                "build_number": order.build_number,
                "status": order.status,
                "records_touched": len(reservations),
                "forced": force,
            },
        )
        audit_log(
            "BUILD_MATERIALS_RESERVED",
            actor=performed_by,
            resource_type="build_order",
            resource_id=order.id,
            details={"build_number": order.build_number, "reservations": reservations, "forced": force},
        )
        return TransitionResult(
            order=order,
            details={
                "bom_version": bom_version,
                "forced": force,
                "allocations": allocations,
                "reservations": reservations,
                "shortages": shortages,
            },
            warnings=warnings,
        )

    def record_materials_short(
        self,
        build_order_id: int,
        shortages: List[Dict[str, Any]],
        *,
        performed_by: Optional[str] = None,
    ) -> BuildOrderEvent:
        """
        Record a ``materials_short`` alert after a rejected reservation.

        Runs in its own unit of work because the rejected transition rolled
        back everything it touched.
        """
        order = self.get_build_order(build_order_id)
        description = "; ".join(
            f"{s.get('part_number') or s['component_id']}: need {s['needed']}, "
            f"available {s['available']}, short {s['shortfall']}"
            for s in shortages
        )
        return record_build_event(
            self.db,
            build_order_id=order.id,
            event_type="materials_short",
            title=f"Materials short for {order.build_number}",
            description=description,
            severity="warning",
            performed_by=performed_by,
            created_at=self.clock(),
        )

    # ==========================================================================
    # materials_reserved -> in_progress
    # ==========================================================================

    def start_build(
        self,
        build_order_id: int,
        *,
        performed_by: str,
        assigned_to: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Start the build. With consumption at ``start``, every reservation the
        audit trail shows as outstanding is consumed from the exact record it
        names.
        """
        performed_by = self._require_actor(performed_by)
        order = self.get_build_order(build_order_id, for_update=True)
        target = self._check_transition(order, "start_build")

        consumed = []
        if order.consumption_point == ConsumptionPoint.START.value:
            holdings = self.audit.outstanding_reservations(order.build_number)
            records = self.ledger.lock_records(h.inventory_record_id for h in holdings)
            reason = f"Consumed for {order.build_number} - build started"
            for holding in holdings:
                self._move_stock(
                    order,
                    records[holding.inventory_record_id],
                    TransactionType.CONSUME,
                    holding.quantity,
                    performed_by=performed_by,
                    reason=reason,
                )
                consumed.append(holding.to_dict())

        now = self.clock()
        order.actual_start = now
        if assigned_to:
            order.assigned_to = assigned_to
        if notes:
            order.append_note(notes)
        self._set_status(order, target, performed_by, now)
        self.db.flush()

        logger.info(
            f"Started build {order.build_number}",
            extra={"build_number": order.build_number, "records_consumed": len(consumed)},
        )
        audit_log(
            "BUILD_STARTED",
            actor=performed_by,
            resource_type="build_order",
            resource_id=order.id,
            details={"build_number": order.build_number, "consumed": consumed},
        )
        return TransitionResult(
            order=order,
            details={"consumption_point": order.consumption_point, "consumed": consumed},
        )

    # ==========================================================================
    # in_progress -> qc
    # ==========================================================================

    def submit_to_qc(
        self,
        build_order_id: int,
        *,
        performed_by: str,
        units_built: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Hand the build to QC. No stock moves."""
        performed_by = self._require_actor(performed_by)
        order = self.get_build_order(build_order_id, for_update=True)
        target = self._check_transition(order, "submit_to_qc")

        if units_built is not None and not 0 <= units_built <= order.quantity:
            raise ValidationError(
                f"Units built must be between 0 and {order.quantity}",
                field="units_built",
                value=units_built,
            )

        now = self.clock()
        order.units_built = units_built
        order.qc_status = QCStatus.PENDING.value
        order.submitted_to_qc_at = now
        if notes:
            order.append_note(notes)
        self._set_status(order, target, performed_by, now)
        self.db.flush()

        logger.info(
            f"Submitted {order.build_number} to QC",
            extra={"build_number": order.build_number, "units_built": units_built},
        )
        audit_log(
            "BUILD_SUBMITTED_TO_QC",
            actor=performed_by,
            resource_type="build_order",
            resource_id=order.id,
            details={"build_number": order.build_number, "units_built": units_built},
        )
        return TransitionResult(order=order, details={"units_built": units_built})

    # ==========================================================================
    # qc -> complete
    # ==========================================================================

    def complete_build(
        self,
        build_order_id: int,
        *,
        performed_by: str,
        qc_passed: int,
        qc_failed: int = 0,
        qc_notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Record QC results and close the build.

        Reservations still outstanding (consumption at ``complete``) are
        consumed for passed + failed units, using the per-unit quantity the
        order actually reserved, and whatever remains is released. A cost
        snapshot is then written; if that fails the build still completes and
        the failure is returned as a warning.
        """
        performed_by = self._require_actor(performed_by)
        order = self.get_build_order(build_order_id, for_update=True)
        target = self._check_transition(order, "complete_build")

        if qc_passed < 0 or qc_failed < 0:
            raise ValidationError("QC counts cannot be negative", field="qc_passed")
        total_units = qc_passed + qc_failed
        if total_units > order.quantity:
            raise ValidationError(
                f"QC passed + failed ({total_units}) exceeds build quantity ({order.quantity})",
                field="qc_failed",
                value=total_units,
            )

        consumed = []
        released = []
        holdings = self.audit.outstanding_reservations(order.build_number)
        if holdings:
            records = self.ledger.lock_records(h.inventory_record_id for h in holdings)
            # Units built draw the BOM rate for the version stamped at reservation,
            # whatever share of the order was actually reserved.
            bom_rates = required_quantities(self.bom.get_bom_entries(order.product, order.bom_version), 1)
            reserved_totals = self.audit.reserved_by_component(order.build_number)

            by_component: Dict[int, List[OutstandingReservation]] = OrderedDict()
            for holding in holdings:
                by_component.setdefault(holding.component_id, []).append(holding)

            consume_reason = f"Consumed for {order.build_number} - {total_units} units built"
            release_reason = (
                f"Released - {order.build_number} completed with {total_units} "
                f"of {order.quantity} units"
            )
            for component_id, component_holdings in by_component.items():
                per_unit = bom_rates.get(component_id)
                if per_unit is None:
                    per_unit = reserved_totals[component_id] / order.quantity
                outstanding = sum((h.quantity for h in component_holdings), ZERO)
                remaining = min(quantize(per_unit * total_units), outstanding)

                component_holdings.sort(key=lambda h: (-h.quantity, h.inventory_record_id))
                for holding in component_holdings:
                    record = records[holding.inventory_record_id]
                    take = min(remaining, holding.quantity)
                    if take > 0:
                        self._move_stock(
                            order, record, TransactionType.CONSUME, take,
                            performed_by=performed_by, reason=consume_reason,
                        )
                        consumed.append({**holding.to_dict(), "quantity": float(take)})
                        remaining -= take
                    leftover = holding.quantity - take
                    if leftover > 0:
                        self._move_stock(
                            order, record, TransactionType.UNRESERVE, leftover,
                            performed_by=performed_by, reason=release_reason,
                        )
                        released.append({**holding.to_dict(), "quantity": float(leftover)})

        # Stock changes must reach the database before the savepoint below,
        # so a conflict here fails the transition instead of the snapshot.
        self.db.flush()

        warnings = []
        snapshot = None
        try:
            with self.db.begin_nested():
                snapshot = self.costing.snapshot_build(order, total_units, performed_by)
        except Exception as e:
            logger.warning(
                f"Cost snapshot failed for {order.build_number}: {e}",
                exc_info=True,
                extra={"build_number": order.build_number},
            )
            warnings.append(f"Cost snapshot could not be recorded: {e}")
            record_build_event(
                self.db,
                build_order_id=order.id,
                event_type="cost_snapshot_failed",
                title=f"Cost snapshot failed for {order.build_number}",
                description=str(e),
                severity="warning",
                performed_by=performed_by,
                created_at=self.clock(),
            )

        now = self.clock()
        order.qc_passed_count = qc_passed
        order.qc_failed_count = qc_failed
        if order.units_built is None:
            order.units_built = total_units
        if qc_failed == 0:
            order.qc_status = QCStatus.PASSED.value
        elif qc_passed == 0:
            order.qc_status = QCStatus.FAILED.value
        else:
            order.qc_status = QCStatus.PARTIAL.value
        if qc_notes:
            order.qc_notes = f"{order.qc_notes}\n{qc_notes}" if order.qc_notes else qc_notes
        order.completed_at = now
        self._set_status(
            order,
            target,
            performed_by,
            now,
            description=f"QC: {qc_passed} passed, {qc_failed} failed",
        )
        self.db.flush()

        logger.info(
            f"Completed build {order.build_number}",
            extra={
                "build_number": order.build_number,
                "qc_passed": qc_passed,
                "qc_failed": qc_failed,
                "cost_snapshot": snapshot.id if snapshot else None,
            },
        )
        audit_log(
            "BUILD_COMPLETED",
            actor=performed_by,
            resource_type="build_order",
            resource_id=order.id,
            details={
                "build_number": order.build_number,
                "qc_passed": qc_passed,
                "qc_failed": qc_failed,
                "consumed": consumed,
                "released": released,
            },
        )
        return TransitionResult(
            order=order,
            details={
                "total_units": total_units,
                "consumed": consumed,
                "released": released,
                "product_cost_id": snapshot.id if snapshot else None,
                "cost_per_unit": float(snapshot.cost_per_unit) if snapshot else None,
            },
            warnings=warnings,
        )

    # ==========================================================================
    # any non-terminal -> cancelled
    # ==========================================================================

    def cancel_build(
        self,
        build_order_id: int,
        *,
        performed_by: str,
        reason: str,
    ) -> TransitionResult:
        """
        Cancel the build and release every outstanding reservation.

        Stock already consumed is not restored.
        """
        performed_by = self._require_actor(performed_by)
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required", field="reason")
        reason = reason.strip()

        order = self.get_build_order(build_order_id, for_update=True)
        target = self._check_transition(order, "cancel_build")

        holdings = self.audit.outstanding_reservations(order.build_number)
        released = self._release(
            order,
            holdings,
            performed_by=performed_by,
            reason=f"Released - {order.build_number} cancelled: {reason}",
        )

        now = self.clock()
        order.cancelled_at = now
        order.append_note(f"CANCELLED: {reason}")
        self._set_status(order, target, performed_by, now, description=reason)
        self.db.flush()

        logger.info(
            f"Cancelled build {order.build_number}",
            extra={"build_number": order.build_number, "records_released": len(released)},
        )
        audit_log(
            "BUILD_CANCELLED",
            actor=performed_by,
            resource_type="build_order",
            resource_id=order.id,
            details={"build_number": order.build_number, "reason": reason, "released": released},
        )
        return TransitionResult(order=order, details={"released": released, "reason": reason})
