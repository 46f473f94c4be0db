"""
Component and storage location models

Both are owned by catalog / warehouse management; the build lifecycle
only reads them.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class Component(Base):
    """A purchasable part that appears on bills of materials"""
    __tablename__ = "components"

    id = Column(Integer, primary_key=True, index=True)
    part_number = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    unit = Column(String(20), default="EA", nullable=False)
    status = Column(String(20), default="active", nullable=False)  # active, obsolete

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    inventory_records = relationship("InventoryRecord", back_populates="component")

    def __repr__(self):
        return f"<Component {self.part_number}: {self.name}>"


class StorageLocation(Base):
    """A physical place stock is kept (shelf, bin, cabinet...)"""
    __tablename__ = "storage_locations"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    type = Column(String(50), nullable=True)  # warehouse, shelf, bin, etc.
    active = Column(Boolean, default=True, nullable=False)

    inventory_records = relationship("InventoryRecord", back_populates="location")

    def __repr__(self):
        return f"<StorageLocation {self.code}: {self.name}>"
