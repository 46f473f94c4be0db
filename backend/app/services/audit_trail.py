"""
Audit Trail

Append-only log of every quantity-affecting event. One InventoryTransaction
is written per inventory record touched, in the same unit of work as the
ledger mutation it documents.

The trail is also how the lifecycle finds what a build order holds:
consume-on-start, release-on-cancel and completion all look up the order's
outstanding reservations here instead of re-deriving them from the BOM, which
may have changed since the reservation was made.

Replaying a (component, location) pair's transactions from zero must give the
record's current quantity and reserved quantity:

    reserve    reserved += |q|
    unreserve  reserved -= |q|
    consume    quantity -= |q|, reserved -= |q|
    receive    quantity += q
    adjust     quantity += q
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.status_config import TransactionType
from app.logging_config import get_logger
from app.models.inventory import InventoryRecord, InventoryTransaction
from app.services.inventory_ledger import ZERO, to_decimal

logger = get_logger(__name__)

LIFECYCLE_TYPES = (
    TransactionType.RESERVE.value,
    TransactionType.UNRESERVE.value,
    TransactionType.CONSUME.value,
)


@dataclass
class OutstandingReservation:
    """Reserved stock a build order still holds on one record"""
    inventory_record_id: int
    component_id: int
    location_id: int
    quantity: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inventory_record_id": self.inventory_record_id,
            "component_id": self.component_id,
            "location_id": self.location_id,
            "quantity": float(self.quantity),
        }


@dataclass
class ReplayState:
    quantity: Decimal = ZERO
    reserved_quantity: Decimal = ZERO
    transaction_count: int = 0


@dataclass
class LedgerMismatch:
    """A record whose stored values differ from its replayed history"""
    inventory_record_id: int
    component_id: int
    location_id: int
    recorded_quantity: Decimal
    replayed_quantity: Decimal
    recorded_reserved: Decimal
    replayed_reserved: Decimal
    recorded_available: Decimal
    details: str


@dataclass
class ReconcileResult:
    """Results of replaying the audit trail against the ledger"""
    checked_at: datetime
    records_checked: int
    transactions_replayed: int
    mismatches: List[LedgerMismatch] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checked_at": self.checked_at.isoformat(),
            "records_checked": self.records_checked,
            "transactions_replayed": self.transactions_replayed,
            "is_consistent": self.is_consistent,
            "mismatches": [
                {
                    "inventory_record_id": m.inventory_record_id,
                    "component_id": m.component_id,
                    "location_id": m.location_id,
                    "recorded_quantity": float(m.recorded_quantity),
                    "replayed_quantity": float(m.replayed_quantity),
                    "recorded_reserved": float(m.recorded_reserved),
                    "replayed_reserved": float(m.replayed_reserved),
                    "recorded_available": float(m.recorded_available),
                    "details": m.details,
                }
                for m in self.mismatches
            ],
        }


def apply_transaction(state: ReplayState, txn: InventoryTransaction) -> None:
    """Advance a replay state by one transaction"""
    amount = abs(to_decimal(txn.quantity))
    if txn.type == TransactionType.RESERVE.value:
        state.reserved_quantity += amount
    elif txn.type == TransactionType.UNRESERVE.value:
        state.reserved_quantity -= amount
    elif txn.type == TransactionType.CONSUME.value:
        state.quantity -= amount
        state.reserved_quantity -= amount
    else:
        # receive / adjust carry their own sign
        state.quantity += to_decimal(txn.quantity)
    state.transaction_count += 1


class AuditTrail:
    """Writes and queries InventoryTransactions"""

    def __init__(self, db: Session, *, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(
        self,
        txn_type: TransactionType,
        record: InventoryRecord,
        quantity: Decimal,
        *,
        previous_quantity: Decimal,
        previous_reserved: Decimal,
        reference: Optional[str],
        performed_by: Optional[str],
        reason: Optional[str] = None,
        build_order_id: Optional[int] = None,
        reference_type: Optional[str] = "build_order",
    ) -> InventoryTransaction:
        """
        Record one mutation of ``record``. Call after the ledger mutation so
        the entry captures the post-mutation values.

        Does not commit.
        """
        txn = InventoryTransaction(
            type=TransactionType(txn_type).value,
            component_id=record.component_id,
            location_id=record.location_id,
            inventory_record_id=record.id,
            quantity=quantity,
            previous_quantity=previous_quantity,
            new_quantity=record.quantity,
            previous_reserved=previous_reserved,
            new_reserved=record.reserved_quantity,
            reference_type=reference_type,
            reference=reference,
            build_order_id=build_order_id,
            reason=reason,
            performed_by=performed_by,
            timestamp=self.clock(),
        )
        self.db.add(txn)
        return txn

    # ------------------------------------------------------------------
    # Queries by build order
    # ------------------------------------------------------------------

    def for_reference(
        self,
        reference: str,
        types: Optional[Iterable[str]] = None,
    ) -> List[InventoryTransaction]:
        """All entries attributed to a build number, oldest first"""
        query = self.db.query(InventoryTransaction).filter(
            InventoryTransaction.reference == reference
        )
        if types:
            query = query.filter(InventoryTransaction.type.in_([getattr(t, "value", t) for t in types]))
        return query.order_by(InventoryTransaction.timestamp, InventoryTransaction.id).all()

    def outstanding_reservations(self, reference: str) -> List[OutstandingReservation]:
        """
        Per record, reserved quantity not yet matched by a consume or
        unreserve for the same build number. Ordered by (component, record).
        """
        holdings: Dict[int, OutstandingReservation] = OrderedDict()
        for txn in self.for_reference(reference, LIFECYCLE_TYPES):
            holding = holdings.get(txn.inventory_record_id)
            if holding is None:
                holding = OutstandingReservation(
                    inventory_record_id=txn.inventory_record_id,
                    component_id=txn.component_id,
                    location_id=txn.location_id,
                    quantity=ZERO,
                )
                holdings[txn.inventory_record_id] = holding
            amount = abs(to_decimal(txn.quantity))
            if txn.type == TransactionType.RESERVE.value:
                holding.quantity += amount
            else:
                holding.quantity -= amount

        outstanding = [h for h in holdings.values() if h.quantity > 0]
        outstanding.sort(key=lambda h: (h.component_id, h.inventory_record_id))
        return outstanding

    def _totals_by_component(self, reference: str, txn_type: TransactionType) -> Dict[int, Decimal]:
        totals: Dict[int, Decimal] = {}
        for txn in self.for_reference(reference, [txn_type.value]):
            totals[txn.component_id] = totals.get(txn.component_id, ZERO) + abs(to_decimal(txn.quantity))
        return totals

    def reserved_by_component(self, reference: str) -> Dict[int, Decimal]:
        """Total ever reserved per component for a build number"""
        return self._totals_by_component(reference, TransactionType.RESERVE)

    def consumed_by_component(self, reference: str) -> Dict[int, Decimal]:
        """Total consumed per component for a build number"""
        return self._totals_by_component(reference, TransactionType.CONSUME)

    # ------------------------------------------------------------------
    # History, replay & reconciliation
    # ------------------------------------------------------------------

    def history(
        self,
        *,
        component_id: Optional[int] = None,
        location_id: Optional[int] = None,
        txn_type: Optional[str] = None,
        reference: Optional[str] = None,
        limit: int = 100,
    ) -> List[InventoryTransaction]:
        """Most recent entries first"""
        query = self.db.query(InventoryTransaction)
        if component_id is not None:
            query = query.filter(InventoryTransaction.component_id == component_id)
        if location_id is not None:
            query = query.filter(InventoryTransaction.location_id == location_id)
        if txn_type:
            query = query.filter(InventoryTransaction.type == txn_type)
        if reference:
            query = query.filter(InventoryTransaction.reference == reference)
        return (
            query.order_by(InventoryTransaction.timestamp.desc(), InventoryTransaction.id.desc())
            .limit(limit)
            .all()
        )

    def replay(
        self,
        *,
        component_id: Optional[int] = None,
        location_id: Optional[int] = None,
    ) -> Dict[Tuple[int, int], ReplayState]:
        """Rebuild (quantity, reserved) per (component, location) from zero"""
        query = self.db.query(InventoryTransaction)
        if component_id is not None:
            query = query.filter(InventoryTransaction.component_id == component_id)
        if location_id is not None:
            query = query.filter(InventoryTransaction.location_id == location_id)

        states: Dict[Tuple[int, int], ReplayState] = {}
        for txn in query.order_by(InventoryTransaction.timestamp, InventoryTransaction.id):
            key = (txn.component_id, txn.location_id)
            apply_transaction(states.setdefault(key, ReplayState()), txn)
        return states

    def reconcile(self, *, component_id: Optional[int] = None) -> ReconcileResult:
        """Compare every record against its replayed history"""
        states = self.replay(component_id=component_id)

        query = self.db.query(InventoryRecord)
        if component_id is not None:
            query = query.filter(InventoryRecord.component_id == component_id)
        records = query.order_by(InventoryRecord.id).all()

        result = ReconcileResult(
            checked_at=self.clock(),
            records_checked=len(records),
            transactions_replayed=sum(s.transaction_count for s in states.values()),
        )

        for record in records:
            state = states.get((record.component_id, record.location_id), ReplayState())
            quantity = to_decimal(record.quantity)
            reserved = to_decimal(record.reserved_quantity)
            available = to_decimal(record.available_quantity)

            problems = []
            if quantity != state.quantity:
                problems.append(f"quantity {quantity} != replayed {state.quantity}")
            if reserved != state.reserved_quantity:
                problems.append(f"reserved {reserved} != replayed {state.reserved_quantity}")
            if available != quantity - reserved:
                problems.append(f"available {available} != quantity - reserved {quantity - reserved}")

            if problems:
                result.mismatches.append(
                    LedgerMismatch(
                        inventory_record_id=record.id,
                        component_id=record.component_id,
                        location_id=record.location_id,
                        recorded_quantity=quantity,
                        replayed_quantity=state.quantity,
                        recorded_reserved=reserved,
                        replayed_reserved=state.reserved_quantity,
                        recorded_available=available,
                        details="; ".join(problems),
                    )
                )

        if result.mismatches:
            logger.warning(
                f"Ledger reconciliation found {len(result.mismatches)} mismatched records",
                extra={"records_checked": result.records_checked},
            )
        return result
