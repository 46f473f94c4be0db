"""
Unit tests for the audit trail: appends, outstanding reservations, replay
and the write-once guarantee.
"""
import pytest
from decimal import Decimal

from app.core.status_config import TransactionType
from app.exceptions import InvariantViolationError
from app.models.inventory import InventoryTransaction
from app.services.audit_trail import AuditTrail
from app.services.inventory_ledger import InventoryLedger
from tests.factories import create_test_component, create_test_inventory_record


def _reserve(db, record, amount, reference="BUILD-XX-2026-001"):
    ledger = InventoryLedger(db)
    audit = AuditTrail(db)
    prev_q, prev_r = record.quantity, record.reserved_quantity
    ledger.mutate(record, reserved_delta=Decimal(amount))
    return audit.append(
        TransactionType.RESERVE, record, -Decimal(amount),
        previous_quantity=prev_q, previous_reserved=prev_r,
        reference=reference, performed_by="tester",
    )


def _consume(db, record, amount, reference="BUILD-XX-2026-001"):
    ledger = InventoryLedger(db)
    audit = AuditTrail(db)
    prev_q, prev_r = record.quantity, record.reserved_quantity
    ledger.mutate(record, quantity_delta=-Decimal(amount), reserved_delta=-Decimal(amount))
    return audit.append(
        TransactionType.CONSUME, record, -Decimal(amount),
        previous_quantity=prev_q, previous_reserved=prev_r,
        reference=reference, performed_by="tester",
    )


def _unreserve(db, record, amount, reference="BUILD-XX-2026-001"):
    ledger = InventoryLedger(db)
    audit = AuditTrail(db)
    prev_q, prev_r = record.quantity, record.reserved_quantity
    ledger.mutate(record, reserved_delta=-Decimal(amount))
    return audit.append(
        TransactionType.UNRESERVE, record, Decimal(amount),
        previous_quantity=prev_q, previous_reserved=prev_r,
        reference=reference, performed_by="tester",
    )


class TestAppend:

    def test_captures_before_and_after(self, db_session):
        part = create_test_component(db_session)
        record = create_test_inventory_record(db_session, component=part, quantity=10)

        txn = _reserve(db_session, record, "4")

        assert txn.type == "reserve"
        assert txn.quantity == Decimal("-4")
        assert txn.previous_reserved == Decimal("0")
        assert txn.new_reserved == Decimal("4")
        assert txn.previous_quantity == txn.new_quantity == Decimal("10")
        assert txn.inventory_record_id == record.id
        assert txn.reference == "BUILD-XX-2026-001"


class TestOutstandingReservations:

    def test_reserved_minus_consumed_and_released(self, db_session):
        part = create_test_component(db_session)
        r1 = create_test_inventory_record(db_session, component=part, quantity=10)
        r2 = create_test_inventory_record(db_session, component=part, quantity=10)
        _reserve(db_session, r1, "5")
        _reserve(db_session, r2, "3")
        _consume(db_session, r1, "2")
        _unreserve(db_session, r2, "3")
        db_session.flush()

        outstanding = AuditTrail(db_session).outstanding_reservations("BUILD-XX-2026-001")

        assert len(outstanding) == 1
        assert outstanding[0].inventory_record_id == r1.id
        assert outstanding[0].quantity == Decimal("3")

    def test_other_references_ignored(self, db_session):
        part = create_test_component(db_session)
        record = create_test_inventory_record(db_session, component=part, quantity=10)
        _reserve(db_session, record, "5", reference="BUILD-XX-2026-002")
        db_session.flush()

        assert AuditTrail(db_session).outstanding_reservations("BUILD-XX-2026-001") == []

    def test_totals_by_component(self, db_session):
        part = create_test_component(db_session)
        record = create_test_inventory_record(db_session, component=part, quantity=10)
        _reserve(db_session, record, "6")
        _consume(db_session, record, "4")
        db_session.flush()

        audit = AuditTrail(db_session)
        assert audit.reserved_by_component("BUILD-XX-2026-001") == {part.id: Decimal("6")}
        assert audit.consumed_by_component("BUILD-XX-2026-001") == {part.id: Decimal("4")}


class TestReplay:

    def test_replay_matches_record(self, db_session):
        part = create_test_component(db_session)
        record = create_test_inventory_record(db_session, component=part, quantity=10)
        _reserve(db_session, record, "6")
        _consume(db_session, record, "4")
        _unreserve(db_session, record, "2")
        db_session.commit()

        states = AuditTrail(db_session).replay(component_id=part.id)
        state = states[(part.id, record.location_id)]

        assert state.quantity == Decimal("6")
        assert state.reserved_quantity == Decimal("0")
        assert state.transaction_count == 4  # receive + 3

    def test_reconcile_consistent(self, db_session):
        part = create_test_component(db_session)
        record = create_test_inventory_record(db_session, component=part, quantity=10)
        _reserve(db_session, record, "3")
        db_session.commit()

        result = AuditTrail(db_session).reconcile()

        assert result.is_consistent
        assert result.records_checked == 1

    def test_reconcile_detects_untracked_write(self, db_session):
        part = create_test_component(db_session)
        record = create_test_inventory_record(db_session, component=part, quantity=10)
        db_session.commit()

        # Bypass the ledger and the trail
        record.quantity = Decimal("12")
        record.available_quantity = Decimal("12")
        db_session.commit()

        result = AuditTrail(db_session).reconcile()

        assert not result.is_consistent
        mismatch = result.mismatches[0]
        assert mismatch.recorded_quantity == Decimal("12")
        assert mismatch.replayed_quantity == Decimal("10")
        assert result.to_dict()["is_consistent"] is False


class TestWriteOnce:

    def test_update_rejected(self, db_session):
        part = create_test_component(db_session)
        record = create_test_inventory_record(db_session, component=part, quantity=10)
        txn = _reserve(db_session, record, "1")
        db_session.commit()

        txn.reason = "rewritten"
        with pytest.raises(InvariantViolationError):
            db_session.flush()
        db_session.rollback()

    def test_delete_rejected(self, db_session):
        part = create_test_component(db_session)
        record = create_test_inventory_record(db_session, component=part, quantity=10)
        db_session.commit()

        txn = db_session.query(InventoryTransaction).first()
        db_session.delete(txn)
        with pytest.raises(InvariantViolationError):
            db_session.flush()
        db_session.rollback()
