"""
Product cost (COGS) snapshot models

An ``actual`` snapshot is written once per build completion; ``estimate``
snapshots come from pricing tools. Neither is modified after it is written.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, Boolean, event
from sqlalchemy.orm import relationship, object_session
from datetime import datetime

from app.db.base import Base
from app.exceptions import InvariantViolationError


class ProductCost(Base):
    """COGS snapshot for a product (optionally tied to one build order)"""
    __tablename__ = "product_costs"

    id = Column(Integer, primary_key=True, index=True)

    product = Column(String(200), nullable=False, index=True)
    build_order_id = Column(Integer, ForeignKey("build_orders.id"), nullable=True, index=True)
    type = Column(String(20), nullable=False)  # estimate, actual
    bom_version = Column(String(50), nullable=True)

    quantity = Column(Numeric(18, 4), nullable=False)

    material_cost = Column(Numeric(18, 4), nullable=False, default=0)
    labor_cost = Column(Numeric(18, 4), nullable=False, default=0)
    overhead_cost = Column(Numeric(18, 4), nullable=False, default=0)
    total_cost = Column(Numeric(18, 4), nullable=False, default=0)
    cost_per_unit = Column(Numeric(18, 4), nullable=False, default=0)
    has_unknown_costs = Column(Boolean, nullable=False, default=False)

    calculated_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    calculated_by = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    build_order = relationship("BuildOrder", back_populates="costs")
    lines = relationship(
        "ProductCostLine",
        back_populates="product_cost",
        cascade="all, delete-orphan",
        order_by="ProductCostLine.id",
    )

    def __repr__(self):
        return f"<ProductCost {self.type} {self.product}: {self.cost_per_unit}/unit>"


class ProductCostLine(Base):
    """One component's contribution to a cost snapshot"""
    __tablename__ = "product_cost_lines"

    id = Column(Integer, primary_key=True, index=True)
    product_cost_id = Column(
        Integer,
        ForeignKey("product_costs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    component_id = Column(Integer, ForeignKey("components.id"), nullable=False)
    part_number = Column(String(100), nullable=True)
    component_name = Column(String(255), nullable=True)

    quantity_per_unit = Column(Numeric(18, 4), nullable=False)
    quantity = Column(Numeric(18, 4), nullable=False)  # total quantity costed
    unit_cost = Column(Numeric(18, 4), nullable=False)
    line_total = Column(Numeric(18, 4), nullable=False)

    # po_last, inventory_avg, supplier_preferred, supplier_price, unknown
    source = Column(String(30), nullable=False)

    product_cost = relationship("ProductCost", back_populates="lines")

    def __repr__(self):
        return f"<ProductCostLine {self.part_number}: {self.line_total} ({self.source})>"


@event.listens_for(ProductCost, "before_update")
@event.listens_for(ProductCostLine, "before_update")
def _reject_cost_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise InvariantViolationError(
            "Cost snapshots cannot be modified once written",
            details={"table": mapper.local_table.name, "id": target.id},
        )
