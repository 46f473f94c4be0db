"""
Reservation Allocator

Decides which inventory records back a component requirement. Greedy,
largest available quantity first, so each component is drawn from as few
locations as possible. Cost and freshness are not considered.

Planning never mutates anything; the lifecycle decides whether a shortfall
aborts the transition or is accepted.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Tuple

from app.models.inventory import InventoryRecord
from app.services.inventory_ledger import InventoryLedger, ZERO, to_decimal


@dataclass
class Allocation:
    """Result of planning one component requirement"""
    component_id: int
    required: Decimal
    takes: List[Tuple[int, Decimal]] = field(default_factory=list)  # (record_id, quantity)
    shortfall: Decimal = ZERO

    @property
    def allocated(self) -> Decimal:
        return sum((qty for _, qty in self.takes), ZERO)

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component_id": self.component_id,
            "required": float(self.required),
            "allocated": float(self.allocated),
            "shortfall": float(self.shortfall),
            "takes": [
                {"inventory_record_id": record_id, "quantity": float(qty)}
                for record_id, qty in self.takes
            ],
        }


def plan_allocation(
    component_id: int,
    records: Sequence[InventoryRecord],
    required,
) -> Allocation:
    """
    Walk records by descending available quantity, taking
    min(remaining, available) from each until the requirement is met.

    Ties are broken by record id so the plan is deterministic.
    """
    required = to_decimal(required)
    allocation = Allocation(component_id=component_id, required=required)
    remaining = required

    candidates = [r for r in records if to_decimal(r.available_quantity) > 0]
    candidates.sort(key=lambda r: (-to_decimal(r.available_quantity), r.id))

    for record in candidates:
        if remaining <= 0:
            break
        take = min(remaining, to_decimal(record.available_quantity))
        allocation.takes.append((record.id, take))
        remaining -= take

    allocation.shortfall = max(remaining, ZERO)
    return allocation


class ReservationAllocator:
    """Plans allocations against the ledger's current records"""

    def __init__(self, ledger: InventoryLedger):
        self.ledger = ledger

    def plan(self, component_id: int, records: Sequence[InventoryRecord], required) -> Allocation:
        return plan_allocation(component_id, records, required)

    def allocate(self, component_id: int, required, *, lock: bool = True) -> Allocation:
        """
        Fetch the component's records (locked unless ``lock`` is False) and
        plan the requirement against them.
        """
        records = self.ledger.get(component_id, for_update=lock)
        return plan_allocation(component_id, records, required)
