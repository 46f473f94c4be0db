"""
Inventory Ledger

Per (component, location) stock: quantity on hand, reserved quantity and the
derived available quantity. Every mutation goes through ``mutate`` so that

    available_quantity == quantity - reserved_quantity
    quantity >= 0, reserved_quantity >= 0, available_quantity >= 0

holds after each call. The ledger never commits and never coordinates across
records; callers run it inside a unit of work (app.db.unit_of_work).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.status_config import StockStatus
from app.exceptions import InvariantViolationError, NotFoundError
from app.logging_config import get_logger
from app.models.inventory import InventoryRecord

logger = get_logger(__name__)

ZERO = Decimal("0")
FOUR_PLACES = Decimal("0.0001")


def to_decimal(value) -> Decimal:
    """Coerce ints, floats and None coming from the DB driver to Decimal"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value) -> Decimal:
    """Round to the 4 decimal places stored in Numeric(18, 4) columns"""
    return to_decimal(value).quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


def status_for(
    quantity: Decimal,
    minimum_stock: Optional[Decimal] = None,
    maximum_stock: Optional[Decimal] = None,
) -> str:
    """Derive the stock status tag from quantity and thresholds"""
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK.value
    if minimum_stock is not None and quantity <= to_decimal(minimum_stock):
        return StockStatus.LOW_STOCK.value
    if maximum_stock is not None and quantity > to_decimal(maximum_stock):
        return StockStatus.OVERSTOCK.value
    return StockStatus.IN_STOCK.value


class InventoryLedger:
    """Reads and mutates InventoryRecords"""

    def __init__(self, db: Session, *, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def get(self, component_id: int, *, for_update: bool = False) -> List[InventoryRecord]:
        """All records for a component, ordered by record id"""
        query = (
            self.db.query(InventoryRecord)
            .filter(InventoryRecord.component_id == component_id)
            .order_by(InventoryRecord.id)
        )
        if for_update:
            query = query.with_for_update()
        return query.all()

    def get_record(self, record_id: int, *, for_update: bool = False) -> InventoryRecord:
        query = self.db.query(InventoryRecord).filter(InventoryRecord.id == record_id)
        if for_update:
            query = query.with_for_update()
        record = query.first()
        if not record:
            raise NotFoundError("InventoryRecord", record_id)
        return record

    def lock_components(self, component_ids: Iterable[int]) -> Dict[int, List[InventoryRecord]]:
        """
        Lock every record of the given components.

        Rows are locked in (component_id, id) order, the same order
        ``lock_records`` uses, so concurrent transitions cannot deadlock.
        """
        ids = sorted(set(component_ids))
        result: Dict[int, List[InventoryRecord]] = {cid: [] for cid in ids}
        if not ids:
            return result
        records = (
            self.db.query(InventoryRecord)
            .filter(InventoryRecord.component_id.in_(ids))
            .order_by(InventoryRecord.component_id, InventoryRecord.id)
            .with_for_update()
            .all()
        )
        for record in records:
            result[record.component_id].append(record)
        return result

    def lock_records(self, record_ids: Iterable[int]) -> Dict[int, InventoryRecord]:
        """Lock specific records in (component_id, id) order, keyed by id"""
        ids = sorted(set(record_ids))
        if not ids:
            return {}
        records = (
            self.db.query(InventoryRecord)
            .filter(InventoryRecord.id.in_(ids))
            .order_by(InventoryRecord.component_id, InventoryRecord.id)
            .with_for_update()
            .all()
        )
        found = {r.id: r for r in records}
        missing = [rid for rid in ids if rid not in found]
        if missing:
            raise NotFoundError("InventoryRecord", missing[0])
        return found

    def mutate(
        self,
        record: Union[InventoryRecord, int],
        *,
        quantity_delta=ZERO,
        reserved_delta=ZERO,
    ) -> InventoryRecord:
        """
        Apply deltas to one record and recompute available quantity and status.

        Raises:
            InvariantViolationError: quantity, reserved or available would go
                negative. The record is left untouched.
        """
        if not isinstance(record, InventoryRecord):
            record = self.get_record(record)

        quantity = to_decimal(record.quantity) + to_decimal(quantity_delta)
        reserved = to_decimal(record.reserved_quantity) + to_decimal(reserved_delta)
        available = quantity - reserved

        if quantity < 0 or reserved < 0 or available < 0:
            logger.error(
                "Rejected inventory mutation that would break the ledger invariant",
                extra={
                    "inventory_record_id": record.id,
                    "quantity": str(quantity),
                    "reserved_quantity": str(reserved),
                    "available_quantity": str(available),
                },
            )
            raise InvariantViolationError(
                f"Inventory record {record.id} would end with quantity={quantity}, "
                f"reserved={reserved}, available={available}",
                details={
                    "inventory_record_id": record.id,
                    "component_id": record.component_id,
                    "location_id": record.location_id,
                    "quantity_delta": str(quantity_delta),
                    "reserved_delta": str(reserved_delta),
                },
            )

        record.quantity = quantity
        record.reserved_quantity = reserved
        record.available_quantity = available
        record.status = status_for(quantity, record.minimum_stock, record.maximum_stock)
        record.updated_at = self.clock()
        return record

    def totals(self, component_id: int) -> Dict[str, Decimal]:
        """On-hand, reserved and available totals across all locations"""
        records = self.get(component_id)
        return {
            "quantity": sum((to_decimal(r.quantity) for r in records), ZERO),
            "reserved_quantity": sum((to_decimal(r.reserved_quantity) for r in records), ZERO),
            "available_quantity": sum((to_decimal(r.available_quantity) for r in records), ZERO),
        }
