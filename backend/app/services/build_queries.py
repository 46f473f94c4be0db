"""
Build order read models

Queries behind the build order dashboards: order detail with material
availability, pick lists, the active queue, production history and stats.
Nothing here writes.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.status_config import (
    ACTIVE_STATUSES,
    BuildOrderStatus,
    BuildPriority,
    TransactionType,
    get_allowed_build_order_transitions,
    is_terminal_status,
    is_valid_build_order_transition,
)
from app.exceptions import NotFoundError
from app.models.build_order import BuildOrder
from app.models.build_event import BuildOrderEvent
from app.models.component import Component, StorageLocation
from app.services.audit_trail import AuditTrail
from app.services.bom_index import BomIndex, required_quantities
from app.services.inventory_ledger import InventoryLedger, ZERO, to_decimal
from app.services.reservation_allocator import ReservationAllocator

_PRIORITY_RANK = {
    BuildPriority.URGENT.value: 0,
    BuildPriority.HIGH.value: 1,
    BuildPriority.NORMAL.value: 2,
    BuildPriority.LOW.value: 3,
}


def _get_order(db: Session, build_order_id: int) -> BuildOrder:
    order = db.query(BuildOrder).filter(BuildOrder.id == build_order_id).first()
    if not order:
        raise NotFoundError("BuildOrder", build_order_id)
    return order


def _location_label(db: Session, location_id: int) -> Optional[str]:
    location = db.get(StorageLocation, location_id)
    return location.code if location else None


def list_build_orders(
    db: Session,
    *,
    status: Optional[str] = None,
    product: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 100,
) -> List[BuildOrder]:
    """Newest first, optionally filtered"""
    query = db.query(BuildOrder)
    if status:
        query = query.filter(BuildOrder.status == status)
    if product:
        query = query.filter(BuildOrder.product == product)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                BuildOrder.build_number.ilike(pattern),
                BuildOrder.product.ilike(pattern),
                BuildOrder.assigned_to.ilike(pattern),
            )
        )
    return query.order_by(BuildOrder.created_at.desc(), BuildOrder.id.desc()).limit(limit).all()


def list_active(db: Session) -> List[BuildOrder]:
    """Non-terminal orders, most urgent first, then by schedule and age"""
    orders = db.query(BuildOrder).filter(BuildOrder.status.in_(ACTIVE_STATUSES)).all()
    return sorted(
        orders,
        key=lambda o: (
            _PRIORITY_RANK.get(o.priority, 2),
            o.scheduled_start is None,
            o.scheduled_start or o.created_at,
            o.created_at,
            o.id,
        ),
    )


def get_build_detail(db: Session, build_order_id: int) -> Dict[str, Any]:
    """
    Order, BOM requirements with per-location availability, audit entries
    and event timeline.
    """
    order = _get_order(db, build_order_id)
    bom = BomIndex(db)
    ledger = InventoryLedger(db)
    audit = AuditTrail(db)

    bom_version = bom.resolve_version(order.product, order.bom_version)
    reserved = audit.reserved_by_component(order.build_number)
    consumed = audit.consumed_by_component(order.build_number)
    settled = is_terminal_status(order.status)
    outstanding: Dict[int, Decimal] = {}
    for holding in audit.outstanding_reservations(order.build_number):
        outstanding[holding.component_id] = outstanding.get(holding.component_id, ZERO) + holding.quantity

    materials = []
    shortages = []
    for entry in bom.get_bom_entries(order.product, bom_version):
        component = db.get(Component, entry.component_id)
        needed = to_decimal(entry.quantity_per_unit) * order.quantity
        records = ledger.get(entry.component_id)
        available = sum((to_decimal(r.available_quantity) for r in records), ZERO)
        held = outstanding.get(entry.component_id, ZERO)
        used = consumed.get(entry.component_id, ZERO)
        # Stock this order holds or has already consumed counts towards its own requirement
        covered = held + used
        fulfillable = settled or entry.is_optional or available + covered >= needed

        material = {
            "component_id": entry.component_id,
            "part_number": component.part_number if component else None,
            "component_name": component.name if component else None,
            "quantity_per_unit": float(entry.quantity_per_unit),
            "needed": float(needed),
            "available": float(available),
            "reserved_for_build": float(reserved.get(entry.component_id, ZERO)),
            "outstanding_for_build": float(held),
            "consumed_for_build": float(used),
            "is_optional": bool(entry.is_optional),
            "reference_designator": entry.reference_designator,
            "fulfillable": fulfillable,
            "locations": [
                {
                    "inventory_record_id": r.id,
                    "location_id": r.location_id,
                    "location_code": _location_label(db, r.location_id),
                    "quantity": float(r.quantity),
                    "reserved_quantity": float(r.reserved_quantity),
                    "available_quantity": float(r.available_quantity),
                    "status": r.status,
                }
                for r in records
            ],
        }
        materials.append(material)
        if not fulfillable:
            shortages.append({
                "component_id": entry.component_id,
                "part_number": material["part_number"],
                "needed": float(needed),
                "available": float(available + covered),
                "shortfall": float(needed - available - covered),
            })

    events = (
        db.query(BuildOrderEvent)
        .filter(BuildOrderEvent.build_order_id == order.id)
        .order_by(BuildOrderEvent.created_at, BuildOrderEvent.id)
        .all()
    )

    return {
        "order": order,
        "bom_version": bom_version,
        "materials": materials,
        "shortages": shortages,
        "all_materials_fulfillable": not shortages,
        "can_reserve_materials": (
            not shortages
            and bool(materials)
            and is_valid_build_order_transition(order.status, BuildOrderStatus.MATERIALS_RESERVED.value)
        ),
        "allowed_transitions": get_allowed_build_order_transitions(order.status),
        "transactions": audit.for_reference(order.build_number),
        "events": events,
    }


def _pick_item(db: Session, component_id: int, record_id: int, location_id: int, quantity: Decimal) -> Dict[str, Any]:
    component = db.get(Component, component_id)
    return {
        "component_id": component_id,
        "part_number": component.part_number if component else None,
        "component_name": component.name if component else None,
        "inventory_record_id": record_id,
        "location_id": location_id,
        "location_code": _location_label(db, location_id),
        "quantity": float(quantity),
    }


def get_pick_list(db: Session, build_order_id: int) -> Dict[str, Any]:
    """
    Where to pull each component from.

    Planned orders get a dry-run allocation against current availability.
    Reserved orders pick from the records their reservations name, and once
    material has been consumed the list shows what was taken from where.
    Cancelled orders have nothing to pick.
    """
    order = _get_order(db, build_order_id)
    audit = AuditTrail(db)
    items = []
    shortfalls = []

    if order.status == BuildOrderStatus.CANCELLED.value:
        source = "none"
    elif order.status == BuildOrderStatus.PLANNED.value:
        source = "plan"
        ledger = InventoryLedger(db)
        allocator = ReservationAllocator(ledger)
        entries = BomIndex(db).get_bom_entries(order.product, order.bom_version)
        for component_id, required in required_quantities(entries, order.quantity).items():
            allocation = allocator.allocate(component_id, required, lock=False)
            ledger_records = {r.id: r for r in ledger.get(component_id)}
            for record_id, quantity in allocation.takes:
                record = ledger_records[record_id]
                items.append(_pick_item(db, component_id, record_id, record.location_id, quantity))
            if not allocation.is_complete:
                component = db.get(Component, component_id)
                shortfalls.append({
                    "component_id": component_id,
                    "part_number": component.part_number if component else None,
                    "shortfall": float(allocation.shortfall),
                })
    else:
        holdings = audit.outstanding_reservations(order.build_number)
        if holdings or order.status == BuildOrderStatus.MATERIALS_RESERVED.value:
            source = "reservations"
            for holding in holdings:
                items.append(_pick_item(
                    db, holding.component_id, holding.inventory_record_id, holding.location_id, holding.quantity,
                ))
        else:
            source = "consumed"
            taken: Dict[int, Dict[str, Any]] = {}
            for txn in audit.for_reference(order.build_number, [TransactionType.CONSUME]):
                line = taken.setdefault(txn.inventory_record_id, {
                    "component_id": txn.component_id,
                    "location_id": txn.location_id,
                    "quantity": ZERO,
                })
                line["quantity"] += abs(to_decimal(txn.quantity))
            for record_id, line in sorted(taken.items(), key=lambda kv: (kv[1]["component_id"], kv[0])):
                items.append(_pick_item(db, line["component_id"], record_id, line["location_id"], line["quantity"]))

    return {
        "build_order_id": order.id,
        "build_number": order.build_number,
        "status": order.status,
        "source": source,
        "items": items,
        "shortfalls": shortfalls,
    }


def history(db: Session, *, product: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    """Completed builds, newest first, with duration and yield"""
    query = db.query(BuildOrder).filter(BuildOrder.status == BuildOrderStatus.COMPLETE.value)
    if product:
        query = query.filter(BuildOrder.product == product)
    orders = query.order_by(BuildOrder.completed_at.desc(), BuildOrder.id.desc()).limit(limit).all()
    return [
        {
            "id": o.id,
            "build_number": o.build_number,
            "product": o.product,
            "quantity": o.quantity,
            "qc_passed_count": o.qc_passed_count,
            "qc_failed_count": o.qc_failed_count,
            "yield_rate": o.yield_rate,
            "duration_hours": o.duration_hours,
            "actual_start": o.actual_start,
            "completed_at": o.completed_at,
        }
        for o in orders
    ]


def production_stats(db: Session, *, product: Optional[str] = None) -> Dict[str, Any]:
    """Counts by status plus aggregate yield and duration of completed builds"""
    query = db.query(BuildOrder)
    if product:
        query = query.filter(BuildOrder.product == product)
    orders = query.all()

    by_status = {s.value: 0 for s in BuildOrderStatus}
    for order in orders:
        by_status[order.status] = by_status.get(order.status, 0) + 1

    completed = [o for o in orders if o.status == BuildOrderStatus.COMPLETE.value]
    passed = sum(o.qc_passed_count or 0 for o in completed)
    inspected = sum(o.total_units for o in completed)
    durations = [o.duration_hours for o in completed if o.duration_hours is not None]

    return {
        "product": product,
        "total": len(orders),
        "by_status": by_status,
        "active": sum(by_status[s] for s in ACTIVE_STATUSES),
        "units_planned": sum(o.quantity for o in orders),
        "units_passed": passed,
        "units_failed": inspected - passed,
        "overall_yield": round(passed / inspected, 4) if inspected else None,
        "average_duration_hours": round(sum(durations) / len(durations), 2) if durations else None,
    }
