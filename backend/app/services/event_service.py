"""
Event Service

Helper for recording build order events. Events form the activity timeline
and are what the task/alert collaborator watches (e.g. ``materials_short``).
"""
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from app.models.build_event import BuildOrderEvent


def record_build_event(
    db: Session,
    build_order_id: int,
    event_type: str,
    title: str,
    description: Optional[str] = None,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    severity: str = "info",
    performed_by: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> BuildOrderEvent:
    """
    Record an event for a build order.

    Args:
        db: Database session
        build_order_id: ID of the build order
        event_type: created, status_change, materials_short, cost_snapshot_failed
        title: Short description of the event
        description: Detailed description (optional)
        old_value: Previous value for status changes
        new_value: New value for status changes
        severity: info, warning or critical
        performed_by: Actor who triggered the event
        created_at: Event time (from the caller's clock)

    Returns:
        The created BuildOrderEvent instance
    """
    event = BuildOrderEvent(
        build_order_id=build_order_id,
        event_type=event_type,
        title=title,
        description=description,
        old_value=old_value,
        new_value=new_value,
        severity=severity,
        performed_by=performed_by,
        created_at=created_at or datetime.utcnow(),
    )
    db.add(event)
    # Don't commit - let the calling function handle the transaction
    return event
