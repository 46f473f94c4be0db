"""
Build Order Event Model

Activity timeline for build orders. Events such as ``materials_short`` are
also the hand-off point to the task/alert collaborator, which turns them into
human-facing tasks; nothing here delivers notifications.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class BuildOrderEvent(Base):
    """Build Order Event - activity log entry for a build order"""
    __tablename__ = "build_order_events"

    id = Column(Integer, primary_key=True, index=True)

    build_order_id = Column(
        Integer,
        ForeignKey("build_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Event Type
    # created, status_change, materials_short, cost_snapshot_failed
    event_type = Column(String(50), nullable=False, index=True)
    severity = Column(String(20), nullable=False, default="info")  # info, warning, critical

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # For status changes
    old_value = Column(String(100), nullable=True)
    new_value = Column(String(100), nullable=True)

    performed_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    build_order = relationship("BuildOrder", back_populates="events")

    def __repr__(self):
        return f"<BuildOrderEvent {self.event_type} for build {self.build_order_id}>"
