"""
Bill of Materials model

Entries are maintained by the BOM-management collaborator (file import,
revision sync). The build lifecycle reads them and never writes them.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class BomEntry(Base):
    """One required component for one unit of a product"""
    __tablename__ = "bom_entries"
    __table_args__ = (
        UniqueConstraint("product", "bom_version", "component_id", name="uq_bom_product_version_component"),
    )

    id = Column(Integer, primary_key=True, index=True)

    product = Column(String(200), nullable=False, index=True)
    bom_version = Column(String(50), nullable=True)  # NULL = unversioned
    component_id = Column(Integer, ForeignKey("components.id"), nullable=False, index=True)

    quantity_per_unit = Column(Numeric(18, 4), nullable=False)
    is_optional = Column(Boolean, default=False, nullable=False)

    # Used by the BOM-sync collaborator for substitution matching
    reference_designator = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    component = relationship("Component")

    def __repr__(self):
        return f"<BomEntry {self.product}@{self.bom_version or '-'}: {self.component_id} x {self.quantity_per_unit}>"
