"""
Inventory models

InventoryRecord is the ledger row for one component at one location.
InventoryTransaction is the write-once audit entry for every change to it.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Text,
    CheckConstraint, UniqueConstraint, event,
)
from sqlalchemy.orm import relationship, object_session
from datetime import datetime

from app.db.base import Base
from app.exceptions import InvariantViolationError


class InventoryRecord(Base):
    """Stock of one component at one storage location"""
    __tablename__ = "inventory_records"
    __table_args__ = (
        UniqueConstraint("component_id", "location_id", name="uq_inventory_component_location"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonnegative"),
        CheckConstraint("reserved_quantity >= 0", name="ck_inventory_reserved_nonnegative"),
        CheckConstraint("available_quantity >= 0", name="ck_inventory_available_nonnegative"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # References
    component_id = Column(Integer, ForeignKey("components.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("storage_locations.id"), nullable=False, index=True)

    # Quantities
    quantity = Column(Numeric(18, 4), default=0, nullable=False)
    reserved_quantity = Column(Numeric(18, 4), default=0, nullable=False)
    # quantity - reserved_quantity; only the inventory ledger writes it
    available_quantity = Column(Numeric(18, 4), default=0, nullable=False)

    # Costing and thresholds
    cost_per_unit = Column(Numeric(18, 4), nullable=True)
    minimum_stock = Column(Numeric(18, 4), nullable=True)
    maximum_stock = Column(Numeric(18, 4), nullable=True)

    # in_stock, low_stock, out_of_stock, overstock (derived from thresholds)
    status = Column(String(20), default="in_stock", nullable=False)

    # Optimistic concurrency counter, bumped on every UPDATE
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    component = relationship("Component", back_populates="inventory_records")
    location = relationship("StorageLocation", back_populates="inventory_records")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (
            f"<InventoryRecord component={self.component_id} location={self.location_id} "
            f"qty={self.quantity} reserved={self.reserved_quantity}>"
        )


class InventoryTransaction(Base):
    """One immutable audit entry for a quantity-affecting event"""
    __tablename__ = "inventory_transactions"

    id = Column(Integer, primary_key=True, index=True)

    # reserve, unreserve, consume (lifecycle); receive, adjust (receiving collaborator)
    type = Column(String(20), nullable=False, index=True)

    # References
    component_id = Column(Integer, ForeignKey("components.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("storage_locations.id"), nullable=False)
    inventory_record_id = Column(Integer, ForeignKey("inventory_records.id"), nullable=False, index=True)

    # Signed delta: negative for reserve/consume, positive for unreserve
    quantity = Column(Numeric(18, 4), nullable=False)

    # Record state around the mutation
    previous_quantity = Column(Numeric(18, 4), nullable=False)
    new_quantity = Column(Numeric(18, 4), nullable=False)
    previous_reserved = Column(Numeric(18, 4), nullable=False)
    new_reserved = Column(Numeric(18, 4), nullable=False)

    # What the entry is attributed to
    reference_type = Column(String(50), nullable=True)  # build_order, purchase_order, adjustment
    reference = Column(String(50), nullable=True, index=True)  # build number
    build_order_id = Column(Integer, ForeignKey("build_orders.id"), nullable=True, index=True)

    reason = Column(Text, nullable=True)
    performed_by = Column(String(100), nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    component = relationship("Component")
    location = relationship("StorageLocation")

    def __repr__(self):
        return f"<InventoryTransaction {self.type}: {self.quantity} ref={self.reference}>"


@event.listens_for(InventoryTransaction, "before_update")
def _reject_transaction_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise InvariantViolationError(
            "Inventory transactions are write-once",
            details={"transaction_id": target.id},
        )


@event.listens_for(InventoryTransaction, "before_delete")
def _reject_transaction_delete(mapper, connection, target):
    raise InvariantViolationError(
        "Inventory transactions cannot be deleted",
        details={"transaction_id": target.id},
    )
