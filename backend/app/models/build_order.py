"""
Build Order Model

A production work order to manufacture N units of a product. Status only
changes through the lifecycle operations in app.services.build_lifecycle:

    planned -> materials_reserved -> in_progress -> qc -> complete
    (any non-terminal status) -> cancelled

Build orders are never deleted; cancellation is a terminal status.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class BuildOrder(Base):
    """Build Order - manufacture a quantity of one product from its BOM"""
    __tablename__ = "build_orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_build_quantity_positive"),
        CheckConstraint(
            "qc_passed_count + qc_failed_count <= quantity",
            name="ck_build_qc_counts_within_quantity",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # BUILD-<PC>-<YYYY>-<NNN>, sequential per product per year
    build_number = Column(String(50), unique=True, nullable=False, index=True)

    # What to build
    product = Column(String(200), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    bom_version = Column(String(50), nullable=True)  # NULL = current version

    # Status: planned, materials_reserved, in_progress, qc, complete, cancelled
    status = Column(String(30), nullable=False, default="planned", index=True)
    priority = Column(String(20), nullable=False, default="normal")  # low, normal, high, urgent

    # Fixed at creation: consume reserved materials at 'start' or 'complete'
    consumption_point = Column(String(20), nullable=False, default="start")

    # Assignment & scheduling
    assigned_to = Column(String(100), nullable=True)
    scheduled_start = Column(DateTime, nullable=True)
    actual_start = Column(DateTime, nullable=True)
    submitted_to_qc_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # QC
    units_built = Column(Integer, nullable=True)  # reported at QC submission
    qc_status = Column(String(20), nullable=True)  # pending, passed, partial, failed
    qc_passed_count = Column(Integer, nullable=True)
    qc_failed_count = Column(Integer, nullable=True)
    qc_notes = Column(Text, nullable=True)

    notes = Column(Text, nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Optimistic concurrency counter, bumped on every UPDATE
    version = Column(Integer, nullable=False, default=1)

    events = relationship(
        "BuildOrderEvent",
        back_populates="build_order",
        order_by="BuildOrderEvent.id",
    )
    costs = relationship("ProductCost", back_populates="build_order")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<BuildOrder {self.build_number}: {self.product} x{self.quantity} [{self.status}]>"

    @property
    def total_units(self) -> int:
        """Units that went through QC (passed + failed)"""
        return (self.qc_passed_count or 0) + (self.qc_failed_count or 0)

    @property
    def yield_rate(self):
        """Share of QC'd units that passed, None before completion"""
        if not self.total_units:
            return None
        return round((self.qc_passed_count or 0) / self.total_units, 4)

    @property
    def duration_hours(self):
        """Hours from actual start to completion, None if either is missing"""
        if not self.actual_start or not self.completed_at:
            return None
        return round((self.completed_at - self.actual_start).total_seconds() / 3600, 2)

    def append_note(self, text: str) -> None:
        self.notes = f"{self.notes}\n{text}" if self.notes else text
