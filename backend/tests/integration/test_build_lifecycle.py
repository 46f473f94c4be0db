"""
Integration tests for the build order lifecycle.

Stock scenario (``widget_stock`` fixture): Widget needs 2 x PART-A per unit;
PART-A has 6 at LOC-1 and 8 at LOC-2.
"""
import pytest
from datetime import datetime
from decimal import Decimal

from app.core.settings import Settings
from app.db.unit_of_work import run_in_transaction
from app.exceptions import (
    ConcurrencyError,
    ConflictError,
    IllegalTransitionError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from app.models.build_event import BuildOrderEvent
from app.models.build_order import BuildOrder
from app.models.inventory import InventoryRecord, InventoryTransaction
from app.models.product_cost import ProductCost
from app.services.audit_trail import AuditTrail
from app.services.build_lifecycle import BuildLifecycleService
from tests.factories import (
    create_test_bom_entry,
    create_test_component,
    create_test_component_supplier,
    create_test_inventory_record,
)

ACTOR = "jdoe"


def _settings(consumption_point="start"):
    return Settings(MATERIAL_CONSUMPTION_POINT=consumption_point)


def _service(db, consumption_point="start", **kwargs):
    return BuildLifecycleService(db, settings=_settings(consumption_point), **kwargs)


def _create(service, quantity=5, product="Widget"):
    result = run_in_transaction(
        service.db,
        lambda: service.create_build_order(product=product, quantity=quantity, performed_by=ACTOR),
    )
    return result.order


def _stock(db, record):
    db.refresh(record)
    return (record.quantity, record.reserved_quantity, record.available_quantity)


def _events(db, order, event_type):
    return (
        db.query(BuildOrderEvent)
        .filter(BuildOrderEvent.build_order_id == order.id, BuildOrderEvent.event_type == event_type)
        .all()
    )


@pytest.mark.integration
class TestHappyPath:

    def test_reserve_start_qc_complete(self, db_session, widget_stock):
        """Reserve 10 PART-A (8 from LOC-2, 2 from LOC-1), consume at start"""
        rec1, rec2 = widget_stock["rec1"], widget_stock["rec2"]
        create_test_component_supplier(db_session, widget_stock["part_a"], "1.50")
        db_session.commit()
        service = _service(db_session)
        order = _create(service)

        reserved = run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        assert reserved.order.status == "materials_reserved"
        assert reserved.warnings == []
        assert [(r["inventory_record_id"], r["quantity"]) for r in reserved.details["reservations"]] == [
            (rec2.id, 8.0),
            (rec1.id, 2.0),
        ]
        assert _stock(db_session, rec2) == (Decimal("8"), Decimal("8"), Decimal("0"))
        assert _stock(db_session, rec1) == (Decimal("6"), Decimal("2"), Decimal("4"))

        started = run_in_transaction(db_session, lambda: service.start_build(order.id, performed_by=ACTOR))

        assert started.order.status == "in_progress"
        assert started.order.actual_start is not None
        assert _stock(db_session, rec2) == (Decimal("0"), Decimal("0"), Decimal("0"))
        assert _stock(db_session, rec1) == (Decimal("4"), Decimal("0"), Decimal("4"))
        assert AuditTrail(db_session).outstanding_reservations(order.build_number) == []

        run_in_transaction(db_session, lambda: service.submit_to_qc(order.id, performed_by=ACTOR, units_built=5))
        completed = run_in_transaction(
            db_session,
            lambda: service.complete_build(order.id, performed_by=ACTOR, qc_passed=5),
        )

        order = completed.order
        assert order.status == "complete"
        assert order.qc_status == "passed"
        assert order.completed_at is not None
        assert completed.warnings == []

        snapshot = db_session.query(ProductCost).filter(ProductCost.build_order_id == order.id).one()
        assert snapshot.type == "actual"
        assert snapshot.material_cost == Decimal("15.0000")
        assert snapshot.cost_per_unit == Decimal("3.0000")
        assert snapshot.lines[0].source == "supplier_price"

        status_changes = [e.new_value for e in _events(db_session, order, "status_change")]
        assert status_changes == ["materials_reserved", "in_progress", "qc", "complete"]

    def test_audit_trail_replays_to_ledger(self, db_session, widget_stock):
        service = _service(db_session)
        order = _create(service)
        run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))
        run_in_transaction(db_session, lambda: service.start_build(order.id, performed_by=ACTOR))

        result = AuditTrail(db_session).reconcile()

        assert result.is_consistent
        assert result.records_checked == 2

    def test_audit_entries_per_record(self, db_session, widget_stock):
        service = _service(db_session)
        order = _create(service)
        run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        entries = AuditTrail(db_session).for_reference(order.build_number)

        assert [(e.type, e.quantity) for e in entries] == [
            ("reserve", Decimal("-8")),
            ("reserve", Decimal("-2")),
        ]
        assert all(e.performed_by == ACTOR and e.build_order_id == order.id for e in entries)


@pytest.mark.integration
class TestReservation:

    def test_shortage_rejects_without_changes(self, db_session, widget_stock):
        """Needing 16 against 14 available fails and leaves stock untouched"""
        rec1, rec2 = widget_stock["rec1"], widget_stock["rec2"]
        service = _service(db_session)
        order = _create(service, quantity=8)

        with pytest.raises(InsufficientStockError) as exc_info:
            run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        shortages = exc_info.value.shortages
        assert len(shortages) == 1
        assert shortages[0]["part_number"] == "PART-A"
        assert shortages[0]["needed"] == 16.0
        assert shortages[0]["available"] == 14.0
        assert shortages[0]["shortfall"] == 2.0

        db_session.refresh(order)
        assert order.status == "planned"
        assert _stock(db_session, rec1) == (Decimal("6"), Decimal("0"), Decimal("6"))
        assert _stock(db_session, rec2) == (Decimal("8"), Decimal("0"), Decimal("8"))
        assert db_session.query(InventoryTransaction).filter(
            InventoryTransaction.reference == order.build_number
        ).count() == 0

    def test_every_short_component_reported(self, db_session, widget_stock):
        part_b = create_test_component(db_session, part_number="PART-B")
        create_test_bom_entry(db_session, "Widget", part_b, 1)
        db_session.commit()
        service = _service(db_session)
        order = _create(service, quantity=8)

        with pytest.raises(InsufficientStockError) as exc_info:
            service.reserve_materials(order.id, performed_by=ACTOR)

        assert sorted(s["part_number"] for s in exc_info.value.shortages) == ["PART-A", "PART-B"]
        db_session.rollback()

    def test_materials_short_event(self, db_session, widget_stock):
        service = _service(db_session)
        order = _create(service, quantity=8)
        with pytest.raises(InsufficientStockError) as exc_info:
            run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        run_in_transaction(
            db_session,
            lambda: service.record_materials_short(order.id, exc_info.value.shortages, performed_by=ACTOR),
        )

        events = _events(db_session, order, "materials_short")
        assert len(events) == 1
        assert events[0].severity == "warning"
        assert "PART-A" in events[0].description

    def test_forced_partial_reservation(self, db_session, widget_stock):
        rec1, rec2 = widget_stock["rec1"], widget_stock["rec2"]
        service = _service(db_session)
        order = _create(service, quantity=8)

        result = run_in_transaction(
            db_session,
            lambda: service.reserve_materials(order.id, performed_by=ACTOR, force=True),
        )

        assert result.order.status == "materials_reserved"
        assert result.details["forced"] is True
        assert result.details["shortages"][0]["shortfall"] == 2.0
        assert len(result.warnings) == 1
        assert _stock(db_session, rec1)[2] == Decimal("0")
        assert _stock(db_session, rec2)[2] == Decimal("0")
        assert len(_events(db_session, result.order, "materials_short")) == 1

    def test_optional_components_not_reserved(self, db_session, widget_stock):
        extra = create_test_component(db_session, part_number="PART-OPT")
        create_test_bom_entry(db_session, "Widget", extra, 1, is_optional=True)
        db_session.commit()
        service = _service(db_session)
        order = _create(service)

        result = run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        assert {r["component_id"] for r in result.details["reservations"]} == {widget_stock["part_a"].id}

    def test_missing_bom(self, db_session):
        service = _service(db_session)
        order = _create(service, product="Mystery")

        with pytest.raises(NotFoundError):
            service.reserve_materials(order.id, performed_by=ACTOR)
        db_session.rollback()

    def test_reserve_twice_is_illegal(self, db_session, widget_stock):
        service = _service(db_session)
        order = _create(service)
        run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        with pytest.raises(IllegalTransitionError):
            service.reserve_materials(order.id, performed_by=ACTOR)
        db_session.rollback()


@pytest.mark.integration
class TestCancellation:

    def test_reserve_then_cancel_restores_ledger(self, db_session, widget_stock):
        rec1, rec2 = widget_stock["rec1"], widget_stock["rec2"]
        before = [_stock(db_session, rec1), _stock(db_session, rec2)]
        service = _service(db_session)
        order = _create(service)
        run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        result = run_in_transaction(
            db_session,
            lambda: service.cancel_build(order.id, performed_by=ACTOR, reason="customer withdrew"),
        )

        assert result.order.status == "cancelled"
        assert result.order.cancelled_at is not None
        assert "CANCELLED: customer withdrew" in result.order.notes
        assert len(result.details["released"]) == 2
        assert [_stock(db_session, rec1), _stock(db_session, rec2)] == before

        unreserves = AuditTrail(db_session).for_reference(order.build_number, ["unreserve"])
        assert sorted(e.quantity for e in unreserves) == [Decimal("2"), Decimal("8")]

    def test_cancel_after_start_keeps_consumption(self, db_session, widget_stock):
        rec2 = widget_stock["rec2"]
        service = _service(db_session)
        order = _create(service)
        run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))
        run_in_transaction(db_session, lambda: service.start_build(order.id, performed_by=ACTOR))

        result = run_in_transaction(
            db_session,
            lambda: service.cancel_build(order.id, performed_by=ACTOR, reason="scrapped"),
        )

        assert result.details["released"] == []
        assert _stock(db_session, rec2) == (Decimal("0"), Decimal("0"), Decimal("0"))

    def test_cancel_planned_order(self, db_session):
        service = _service(db_session)
        order = _create(service, product="Anything")

        result = run_in_transaction(
            db_session,
            lambda: service.cancel_build(order.id, performed_by=ACTOR, reason="duplicate"),
        )

        assert result.order.status == "cancelled"

    def test_cancel_requires_reason(self, db_session):
        service = _service(db_session)
        order = _create(service, product="Anything")

        with pytest.raises(ValidationError):
            service.cancel_build(order.id, performed_by=ACTOR, reason="  ")

    def test_terminal_orders_cannot_cancel(self, db_session):
        service = _service(db_session)
        order = _create(service, product="Anything")
        run_in_transaction(db_session, lambda: service.cancel_build(order.id, performed_by=ACTOR, reason="x"))

        with pytest.raises(IllegalTransitionError) as exc_info:
            service.cancel_build(order.id, performed_by=ACTOR, reason="again")

        assert exc_info.value.allowed_states == []
        db_session.rollback()


@pytest.mark.integration
class TestCompletion:

    def test_partial_yield_consumes_built_units_only(self, db_session, widget_stock):
        """Consumption at complete: 3 passed + 1 failed uses 8, releases 2"""
        rec1, rec2 = widget_stock["rec1"], widget_stock["rec2"]
        service = _service(db_session, consumption_point="complete")
        order = _create(service)
        assert order.consumption_point == "complete"
        run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        run_in_transaction(db_session, lambda: service.start_build(order.id, performed_by=ACTOR))
        # Nothing consumed at start under this policy
        assert _stock(db_session, rec2) == (Decimal("8"), Decimal("8"), Decimal("0"))

        run_in_transaction(db_session, lambda: service.submit_to_qc(order.id, performed_by=ACTOR))
        result = run_in_transaction(
            db_session,
            lambda: service.complete_build(order.id, performed_by=ACTOR, qc_passed=3, qc_failed=1),
        )

        assert result.order.qc_status == "partial"
        assert result.order.units_built == 4
        assert result.details["total_units"] == 4
        assert sum(c["quantity"] for c in result.details["consumed"]) == 8.0
        assert sum(r["quantity"] for r in result.details["released"]) == 2.0
        assert _stock(db_session, rec2) == (Decimal("0"), Decimal("0"), Decimal("0"))
        assert _stock(db_session, rec1) == (Decimal("6"), Decimal("0"), Decimal("6"))
        assert AuditTrail(db_session).outstanding_reservations(order.build_number) == []
        assert AuditTrail(db_session).reconcile().is_consistent

    def test_consumed_at_start_nothing_left_to_release(self, db_session, widget_stock):
        create_test_component_supplier(db_session, widget_stock["part_a"], "2")
        db_session.commit()
        service = _service(db_session)
        order = _create(service)
        for step in (service.reserve_materials, service.start_build, service.submit_to_qc):
            run_in_transaction(db_session, lambda: step(order.id, performed_by=ACTOR))

        result = run_in_transaction(
            db_session,
            lambda: service.complete_build(order.id, performed_by=ACTOR, qc_passed=4, qc_failed=1),
        )

        assert result.details["released"] == []
        assert result.details["consumed"] == []
        snapshots = db_session.query(ProductCost).all()
        assert len(snapshots) == 1
        assert snapshots[0].material_cost == Decimal("20.0000")
        assert snapshots[0].cost_per_unit == snapshots[0].material_cost / 5

    def test_forced_partial_reservation_consumes_at_bom_rate(self, db_session):
        """7 of 10 reserved, 4 units built: 8 needed at the BOM rate, all 7 consumed"""
        part = create_test_component(db_session, part_number="PART-S")
        record = create_test_inventory_record(db_session, part, quantity=7)
        create_test_bom_entry(db_session, "Sprocket", part, quantity_per_unit=2)
        db_session.commit()
        service = _service(db_session, consumption_point="complete")
        order = _create(service, product="Sprocket")
        run_in_transaction(
            db_session,
            lambda: service.reserve_materials(order.id, performed_by=ACTOR, force=True),
        )
        run_in_transaction(db_session, lambda: service.start_build(order.id, performed_by=ACTOR))
        run_in_transaction(db_session, lambda: service.submit_to_qc(order.id, performed_by=ACTOR))

        result = run_in_transaction(
            db_session,
            lambda: service.complete_build(order.id, performed_by=ACTOR, qc_passed=3, qc_failed=1),
        )

        assert [c["quantity"] for c in result.details["consumed"]] == [7.0]
        assert result.details["released"] == []
        assert _stock(db_session, record) == (Decimal("0"), Decimal("0"), Decimal("0"))

    def test_forced_partial_reservation_releases_surplus(self, db_session):
        """7 of 10 reserved, 2 units built: 4 consumed, 3 released"""
        part = create_test_component(db_session, part_number="PART-S")
        record = create_test_inventory_record(db_session, part, quantity=7)
        create_test_bom_entry(db_session, "Sprocket", part, quantity_per_unit=2)
        db_session.commit()
        service = _service(db_session, consumption_point="complete")
        order = _create(service, product="Sprocket")
        run_in_transaction(
            db_session,
            lambda: service.reserve_materials(order.id, performed_by=ACTOR, force=True),
        )
        run_in_transaction(db_session, lambda: service.start_build(order.id, performed_by=ACTOR))
        run_in_transaction(db_session, lambda: service.submit_to_qc(order.id, performed_by=ACTOR))

        result = run_in_transaction(
            db_session,
            lambda: service.complete_build(order.id, performed_by=ACTOR, qc_passed=2, qc_failed=0),
        )

        assert [c["quantity"] for c in result.details["consumed"]] == [4.0]
        assert [r["quantity"] for r in result.details["released"]] == [3.0]
        assert _stock(db_session, record) == (Decimal("3"), Decimal("0"), Decimal("3"))

    def test_all_failed(self, db_session, widget_stock):
        service = _service(db_session)
        order = _create(service)
        for step in (service.reserve_materials, service.start_build, service.submit_to_qc):
            run_in_transaction(db_session, lambda: step(order.id, performed_by=ACTOR))

        result = run_in_transaction(
            db_session,
            lambda: service.complete_build(order.id, performed_by=ACTOR, qc_passed=0, qc_failed=5),
        )

        assert result.order.qc_status == "failed"
        assert result.order.yield_rate == 0

    def test_counts_cannot_exceed_quantity(self, db_session, widget_stock):
        service = _service(db_session)
        order = _create(service)
        for step in (service.reserve_materials, service.start_build, service.submit_to_qc):
            run_in_transaction(db_session, lambda: step(order.id, performed_by=ACTOR))

        with pytest.raises(ValidationError):
            service.complete_build(order.id, performed_by=ACTOR, qc_passed=4, qc_failed=2)
        db_session.rollback()

    def test_complete_requires_qc(self, db_session, widget_stock):
        service = _service(db_session)
        order = _create(service)
        run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))

        with pytest.raises(IllegalTransitionError) as exc_info:
            service.complete_build(order.id, performed_by=ACTOR, qc_passed=5)

        err = exc_info.value
        assert err.current_state == "materials_reserved"
        assert err.accepted_from == ["qc"]
        assert err.allowed_states == ["in_progress", "cancelled"]
        db_session.rollback()

    def test_cost_snapshot_failure_is_a_warning(self, db_session, widget_stock):
        class BrokenPricing:
            def find_best_cost(self, component_id):
                raise RuntimeError("pricing offline")

        service = _service(db_session, pricing=BrokenPricing())
        order = _create(service)
        for step in (service.reserve_materials, service.start_build, service.submit_to_qc):
            run_in_transaction(db_session, lambda: step(order.id, performed_by=ACTOR))

        result = run_in_transaction(
            db_session,
            lambda: service.complete_build(order.id, performed_by=ACTOR, qc_passed=5),
        )

        assert result.order.status == "complete"
        assert result.details["product_cost_id"] is None
        assert any("pricing offline" in w for w in result.warnings)
        assert db_session.query(ProductCost).count() == 0
        assert len(_events(db_session, result.order, "cost_snapshot_failed")) == 1


@pytest.mark.integration
class TestCreation:

    def test_build_numbers_are_sequential_per_product_code(self, db_session):
        service = BuildLifecycleService(
            db_session, settings=_settings(), clock=lambda: datetime(2026, 1, 15, 9, 0),
        )

        first = _create(service, product="Widget")
        second = _create(service, product="Widget")
        other = _create(service, product="gear box")

        assert first.build_number == "BUILD-WI-2026-001"
        assert second.build_number == "BUILD-WI-2026-002"
        assert other.build_number == "BUILD-GE-2026-001"

    def test_created_event(self, db_session):
        service = _service(db_session)
        order = _create(service)

        events = _events(db_session, order, "created")

        assert order.status == "planned"
        assert order.created_by == ACTOR
        assert len(events) == 1

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_must_be_positive(self, db_session, quantity):
        with pytest.raises(ValidationError):
            _service(db_session).create_build_order(product="Widget", quantity=quantity, performed_by=ACTOR)

    def test_unknown_priority(self, db_session):
        with pytest.raises(ValidationError):
            _service(db_session).create_build_order(
                product="Widget", quantity=1, performed_by=ACTOR, priority="asap",
            )

    def test_actor_required(self, db_session):
        with pytest.raises(ValidationError):
            _service(db_session).create_build_order(product="Widget", quantity=1, performed_by=" ")

    def test_duplicate_build_number(self, db_session):
        service = _service(db_session)
        order = _create(service)

        with pytest.raises(ConflictError):
            service.create_build_order(
                product="Widget", quantity=1, performed_by=ACTOR, build_number=order.build_number,
            )

    def test_build_number_taken_concurrently_is_regenerated(self, db_session):
        clock = lambda: datetime(2026, 1, 15, 9, 0)
        existing = _create(BuildLifecycleService(db_session, settings=_settings(), clock=clock))

        class RacingService(BuildLifecycleService):
            """Generates the number another session just committed, once"""
            stale = [existing.build_number]

            def generate_build_number(self, product, year=None):
                if self.stale:
                    return self.stale.pop()
                return super().generate_build_number(product, year)

        order = _create(RacingService(db_session, settings=_settings(), clock=clock))

        assert existing.build_number == "BUILD-WI-2026-001"
        assert order.build_number == "BUILD-WI-2026-002"
        assert len(_events(db_session, order, "created")) == 1

    def test_build_number_collisions_exhausted(self, db_session):
        existing = _create(_service(db_session))

        class StuckService(BuildLifecycleService):
            def generate_build_number(self, product, year=None):
                return existing.build_number

        with pytest.raises(ConcurrencyError) as exc_info:
            _create(StuckService(db_session, settings=_settings()))

        assert exc_info.value.retryable
        assert db_session.query(BuildOrder).count() == 1

    def test_start_on_planned_is_illegal(self, db_session):
        service = _service(db_session)
        order = _create(service)

        with pytest.raises(IllegalTransitionError) as exc_info:
            service.start_build(order.id, performed_by=ACTOR)

        assert "materials_reserved" in exc_info.value.message
        db_session.rollback()

    def test_submit_units_out_of_range(self, db_session, widget_stock):
        service = _service(db_session)
        order = _create(service)
        run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))
        run_in_transaction(db_session, lambda: service.start_build(order.id, performed_by=ACTOR))

        with pytest.raises(ValidationError):
            service.submit_to_qc(order.id, performed_by=ACTOR, units_built=6)
        db_session.rollback()


def test_records_never_go_negative(db_session, widget_stock):
    """Every record keeps available == quantity - reserved through a full cycle"""
    service = _service(db_session, consumption_point="complete")
    order = _create(service)
    run_in_transaction(db_session, lambda: service.reserve_materials(order.id, performed_by=ACTOR))
    run_in_transaction(db_session, lambda: service.start_build(order.id, performed_by=ACTOR))
    run_in_transaction(db_session, lambda: service.submit_to_qc(order.id, performed_by=ACTOR))
    run_in_transaction(db_session, lambda: service.complete_build(order.id, performed_by=ACTOR, qc_passed=2))

    for record in db_session.query(InventoryRecord).all():
        assert record.quantity >= 0
        assert record.reserved_quantity >= 0
        assert record.available_quantity == record.quantity - record.reserved_quantity
