"""
Test data factories for BuildOps.

Provides functions to create test entities with sensible defaults.

Usage:
    from tests.factories import create_test_component, create_test_inventory_record

    def test_something(db_session):
        part = create_test_component(db_session, part_number="PART-A")
        record = create_test_inventory_record(db_session, component=part, quantity=10)
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict
from sqlalchemy.orm import Session

from app.core.status_config import BuildOrderStatus, TransactionType
from app.services.inventory_ledger import status_for, to_decimal


# =============================================================================
# SEQUENCE MANAGEMENT
# =============================================================================

_sequences: Dict[str, int] = {}


def reset_sequences():
    """Reset all sequences. Call between tests for predictable IDs."""
    global _sequences
    _sequences = {}


def _next(name: str) -> int:
    """Get next sequence number for a given entity type."""
    _sequences[name] = _sequences.get(name, 0) + 1
    return _sequences[name]


# =============================================================================
# CATALOG & WAREHOUSE
# =============================================================================

def create_test_component(
    db: Session,
    part_number: Optional[str] = None,
    name: Optional[str] = None,
    **overrides
) -> "Component":
    """Create a component (part) that BOMs can reference."""
    from app.models.component import Component

    seq = _next("component")
    component = Component(
        part_number=part_number or f"PART-{seq:04d}",
        name=name or f"Test Component {seq}",
        unit=overrides.pop("unit", "EA"),
        **overrides
    )
    db.add(component)
    db.flush()
    return component


def create_test_location(
    db: Session,
    code: Optional[str] = None,
    **overrides
) -> "StorageLocation":
    from app.models.component import StorageLocation

    seq = _next("location")
    location = StorageLocation(
        code=code or f"LOC-{seq:03d}",
        name=overrides.pop("name", f"Test Location {seq}"),
        type=overrides.pop("type", "shelf"),
        **overrides
    )
    db.add(location)
    db.flush()
    return location


# =============================================================================
# INVENTORY
# =============================================================================

def create_test_inventory_record(
    db: Session,
    component: "Component",
    location: Optional["StorageLocation"] = None,
    quantity=0,
    cost_per_unit=None,
    **overrides
) -> "InventoryRecord":
    """
    Create a stock record the way the receiving process does: the record
    starts empty and a ``receive`` transaction brings in ``quantity``, so the
    audit trail replays to the record's state.
    """
    from app.models.inventory import InventoryRecord, InventoryTransaction

    location = location or create_test_location(db)
    quantity = to_decimal(quantity)

    record = InventoryRecord(
        component_id=component.id,
        location_id=location.id,
        quantity=quantity,
        reserved_quantity=Decimal("0"),
        available_quantity=quantity,
        cost_per_unit=cost_per_unit,
        minimum_stock=overrides.pop("minimum_stock", None),
        maximum_stock=overrides.pop("maximum_stock", None),
        **overrides
    )
    record.status = status_for(quantity, record.minimum_stock, record.maximum_stock)
    db.add(record)
    db.flush()

    if quantity:
        db.add(InventoryTransaction(
            type=TransactionType.RECEIVE.value,
            component_id=component.id,
            location_id=location.id,
            inventory_record_id=record.id,
            quantity=quantity,
            previous_quantity=Decimal("0"),
            new_quantity=quantity,
            previous_reserved=Decimal("0"),
            new_reserved=Decimal("0"),
            reference_type="receipt",
            reference=f"RCV-{_next('receipt'):04d}",
            reason="Test stock receipt",
            performed_by="receiving",
            timestamp=datetime.utcnow(),
        ))
        db.flush()
    return record


# =============================================================================
# BOM
# =============================================================================

def create_test_bom_entry(
    db: Session,
    product: str,
    component: "Component",
    quantity_per_unit=1,
    bom_version: Optional[str] = None,
    is_optional: bool = False,
    **overrides
) -> "BomEntry":
    from app.models.bom import BomEntry

    entry = BomEntry(
        product=product,
        bom_version=bom_version,
        component_id=component.id,
        quantity_per_unit=to_decimal(quantity_per_unit),
        is_optional=is_optional,
        is_active=overrides.pop("is_active", True),
        **overrides
    )
    db.add(entry)
    db.flush()
    return entry


# =============================================================================
# BUILD ORDERS
# =============================================================================

def create_test_build_order(
    db: Session,
    product: str = "Widget",
    quantity: int = 1,
    status: str = BuildOrderStatus.PLANNED.value,
    consumption_point: str = "start",
    **overrides
) -> "BuildOrder":
    """
    Insert a build order directly, bypassing the lifecycle service.

    Use for tests that need an order in a given status without the stock
    side effects of getting there.
    """
    from app.models.build_order import BuildOrder

    seq = _next("build_order")
    now = datetime.utcnow()
    order = BuildOrder(
        build_number=overrides.pop("build_number", f"BUILD-TS-{now.year}-{seq:03d}"),
        product=product,
        quantity=quantity,
        status=status,
        priority=overrides.pop("priority", "normal"),
        consumption_point=consumption_point,
        created_by=overrides.pop("created_by", "tester"),
        created_at=overrides.pop("created_at", now),
        updated_at=overrides.pop("updated_at", now),
        **overrides
    )
    db.add(order)
    db.flush()
    return order


# =============================================================================
# PURCHASING (pricing inputs)
# =============================================================================

def create_test_supplier(db: Session, code: Optional[str] = None, **overrides) -> "Supplier":
    from app.models.purchasing import Supplier

    seq = _next("supplier")
    supplier = Supplier(
        code=code or f"SUP-{seq:03d}",
        name=overrides.pop("name", f"Test Supplier {seq}"),
        **overrides
    )
    db.add(supplier)
    db.flush()
    return supplier


def create_test_component_supplier(
    db: Session,
    component: "Component",
    unit_price,
    supplier: Optional["Supplier"] = None,
    is_preferred: bool = False,
) -> "ComponentSupplier":
    from app.models.purchasing import ComponentSupplier

    supplier = supplier or create_test_supplier(db)
    link = ComponentSupplier(
        component_id=component.id,
        supplier_id=supplier.id,
        unit_price=to_decimal(unit_price),
        is_preferred=is_preferred,
    )
    db.add(link)
    db.flush()
    return link


def create_test_po_line(
    db: Session,
    component: "Component",
    unit_price,
    quantity=10,
    supplier: Optional["Supplier"] = None,
    created_at: Optional[datetime] = None,
) -> "PurchaseOrderLine":
    """Create a purchase order with a single line for ``component``."""
    from app.models.purchasing import PurchaseOrder, PurchaseOrderLine

    supplier = supplier or create_test_supplier(db)
    seq = _next("purchase_order")
    po = PurchaseOrder(
        po_number=f"PO-TEST-{seq:04d}",
        supplier_id=supplier.id,
        status="received",
    )
    db.add(po)
    db.flush()

    line = PurchaseOrderLine(
        purchase_order_id=po.id,
        component_id=component.id,
        quantity=to_decimal(quantity),
        unit_price=to_decimal(unit_price),
        created_at=created_at or datetime.utcnow(),
    )
    db.add(line)
    db.flush()
    return line
