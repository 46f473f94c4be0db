"""
Unit tests for unit-cost lookup priority and cost snapshots.
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from app.exceptions import InvariantViolationError, ValidationError
from app.models.product_cost import ProductCost
from app.services.costing_service import CostingService, CostLine, per_unit
from app.services.pricing import PricingSource
from tests.factories import (
    create_test_bom_entry,
    create_test_component,
    create_test_component_supplier,
    create_test_inventory_record,
    create_test_po_line,
)


class TestFindBestCost:

    def test_latest_po_price_wins(self, db_session):
        part = create_test_component(db_session)
        create_test_inventory_record(db_session, component=part, quantity=1, cost_per_unit=Decimal("9"))
        create_test_component_supplier(db_session, part, "8", is_preferred=True)
        create_test_po_line(db_session, part, "3.00", created_at=datetime(2026, 1, 1))
        create_test_po_line(db_session, part, "4.50", created_at=datetime(2026, 2, 1))

        assert PricingSource(db_session).find_best_cost(part.id) == (Decimal("4.5"), "po_last")

    def test_inventory_cost_next(self, db_session):
        part = create_test_component(db_session)
        create_test_inventory_record(db_session, component=part, quantity=1, cost_per_unit=Decimal("2.25"))
        create_test_component_supplier(db_session, part, "8", is_preferred=True)

        assert PricingSource(db_session).find_best_cost(part.id) == (Decimal("2.25"), "inventory_avg")

    def test_preferred_supplier_before_any_supplier(self, db_session):
        part = create_test_component(db_session)
        create_test_component_supplier(db_session, part, "5")
        create_test_component_supplier(db_session, part, "6", is_preferred=True)

        assert PricingSource(db_session).find_best_cost(part.id) == (Decimal("6"), "supplier_preferred")

    def test_any_supplier_price(self, db_session):
        part = create_test_component(db_session)
        create_test_component_supplier(db_session, part, "5")

        assert PricingSource(db_session).find_best_cost(part.id) == (Decimal("5"), "supplier_price")

    def test_zero_prices_are_skipped(self, db_session):
        part = create_test_component(db_session)
        create_test_po_line(db_session, part, "0")
        create_test_component_supplier(db_session, part, "7")

        assert PricingSource(db_session).find_best_cost(part.id) == (Decimal("7"), "supplier_price")

    def test_unknown(self, db_session):
        part = create_test_component(db_session)
        assert PricingSource(db_session).find_best_cost(part.id) == (Decimal("0"), "unknown")


def test_per_unit_handles_zero_units():
    assert per_unit(Decimal("10"), 0) == Decimal("0")
    assert per_unit(Decimal("10"), 3) == Decimal("3.3333")


class TestCalculateProductCogs:

    def test_estimate_from_bom(self, db_session):
        a = create_test_component(db_session, part_number="PART-A")
        b = create_test_component(db_session, part_number="PART-B")
        create_test_bom_entry(db_session, "Widget", a, 2)
        create_test_bom_entry(db_session, "Widget", b, "0.5")
        create_test_component_supplier(db_session, a, "1.25")

        estimate = CostingService(db_session).calculate_product_cogs("Widget", 4)

        assert estimate.material_cost == Decimal("10.0000")
        assert estimate.cost_per_unit == Decimal("2.5000")
        assert estimate.has_unknown_costs
        sources = {line.part_number: line.source for line in estimate.lines}
        assert sources == {"PART-A": "supplier_price", "PART-B": "unknown"}

    def test_rejects_non_positive_quantity(self, db_session):
        with pytest.raises(ValidationError):
            CostingService(db_session).calculate_product_cogs("Widget", 0)


class TestSaveCostSnapshot:

    def _line(self, total):
        return CostLine(
            component_id=1, part_number="PART-A", component_name="Part A",
            quantity_per_unit=Decimal("1"), quantity=Decimal("1"),
            unit_cost=Decimal(total), line_total=Decimal(total), source="po_last",
        )

    def test_totals(self, db_session):
        create_test_component(db_session)
        snapshot = CostingService(db_session).save_cost_snapshot(
            product="Widget", cost_type="estimate", quantity=4,
            lines=[self._line("10")], labor_cost=Decimal("4"), overhead_cost=Decimal("2"),
        )
        db_session.flush()

        assert snapshot.material_cost == Decimal("10.0000")
        assert snapshot.total_cost == Decimal("16.0000")
        assert snapshot.cost_per_unit == Decimal("4.0000")
        assert not snapshot.has_unknown_costs
        assert len(snapshot.lines) == 1

    def test_snapshots_are_immutable(self, db_session):
        create_test_component(db_session)
        snapshot = CostingService(db_session).save_cost_snapshot(
            product="Widget", cost_type="estimate", quantity=1, lines=[self._line("3")],
        )
        db_session.commit()

        snapshot.total_cost = Decimal("1")
        with pytest.raises(InvariantViolationError):
            db_session.flush()
        db_session.rollback()

    def test_history_newest_first(self, db_session):
        create_test_component(db_session)
        now = datetime(2026, 3, 1)
        older = CostingService(db_session, clock=lambda: now - timedelta(days=1)).save_cost_snapshot(
            product="Widget", cost_type="estimate", quantity=1, lines=[self._line("3")],
        )
        newer = CostingService(db_session, clock=lambda: now).save_cost_snapshot(
            product="Widget", cost_type="estimate", quantity=1, lines=[self._line("5")],
        )
        db_session.commit()

        service = CostingService(db_session)
        assert [c.id for c in service.cost_history("Widget")] == [newer.id, older.id]
        assert [c.id for c in service.latest_cost_per_product()] == [newer.id]
        assert db_session.query(ProductCost).count() == 2
