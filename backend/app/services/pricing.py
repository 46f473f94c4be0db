"""
Pricing source for cost snapshots

Reads unit prices owned by the purchasing and receiving collaborators.
``find_best_cost`` applies the lookup priority:

    1. latest purchase-order line price
    2. cost_per_unit on any of the component's inventory records
    3. preferred supplier price
    4. any supplier price
    5. zero, tagged "unknown"

Only positive prices count at each step.
"""
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from app.core.status_config import CostSource
from app.models.inventory import InventoryRecord
from app.models.purchasing import ComponentSupplier, PurchaseOrderLine
from app.services.inventory_ledger import ZERO, to_decimal


def _positive(value) -> Optional[Decimal]:
    if value is None:
        return None
    value = to_decimal(value)
    return value if value > 0 else None


class PricingSource:
    """Database-backed price lookups for one component at a time"""

    def __init__(self, db: Session):
        self.db = db

    def latest_po_price(self, component_id: int) -> Optional[Decimal]:
        line = (
            self.db.query(PurchaseOrderLine)
            .filter(PurchaseOrderLine.component_id == component_id)
            .order_by(PurchaseOrderLine.created_at.desc(), PurchaseOrderLine.id.desc())
            .first()
        )
        return _positive(line.unit_price) if line else None

    def inventory_cost(self, component_id: int) -> Optional[Decimal]:
        records = (
            self.db.query(InventoryRecord)
            .filter(InventoryRecord.component_id == component_id)
            .order_by(InventoryRecord.id)
            .all()
        )
        for record in records:
            cost = _positive(record.cost_per_unit)
            if cost is not None:
                return cost
        return None

    def _supplier_links(self, component_id: int):
        return (
            self.db.query(ComponentSupplier)
            .filter(ComponentSupplier.component_id == component_id)
            .order_by(ComponentSupplier.id)
            .all()
        )

    def preferred_supplier_price(self, component_id: int) -> Optional[Decimal]:
        for link in self._supplier_links(component_id):
            price = _positive(link.unit_price)
            if link.is_preferred and price is not None:
                return price
        return None

    def any_supplier_price(self, component_id: int) -> Optional[Decimal]:
        for link in self._supplier_links(component_id):
            price = _positive(link.unit_price)
            if price is not None:
                return price
        return None

    def find_best_cost(self, component_id: int) -> Tuple[Decimal, str]:
        """Unit cost and the source tag it came from"""
        lookups = (
            (self.latest_po_price, CostSource.PO_LAST),
            (self.inventory_cost, CostSource.INVENTORY_AVG),
            (self.preferred_supplier_price, CostSource.SUPPLIER_PREFERRED),
            (self.any_supplier_price, CostSource.SUPPLIER_PRICE),
        )
        for lookup, source in lookups:
            price = lookup(component_id)
            if price is not None:
                return price, source.value
        return ZERO, CostSource.UNKNOWN.value
