"""
Unit tests for the greedy reservation allocator.

Uses plain objects in place of InventoryRecord rows; planning only reads
``id`` and ``available_quantity``.
"""
from decimal import Decimal
from types import SimpleNamespace

from app.services.reservation_allocator import plan_allocation


def rec(record_id, available):
    return SimpleNamespace(id=record_id, available_quantity=Decimal(str(available)))


class TestPlanAllocation:

    def test_largest_available_first(self):
        plan = plan_allocation(1, [rec(1, 6), rec(2, 8)], 10)
        assert plan.takes == [(2, Decimal("8")), (1, Decimal("2"))]
        assert plan.shortfall == 0
        assert plan.is_complete

    def test_single_record_covers_requirement(self):
        plan = plan_allocation(1, [rec(1, 6), rec(2, 8)], 5)
        assert plan.takes == [(2, Decimal("5"))]

    def test_ties_broken_by_record_id(self):
        plan = plan_allocation(1, [rec(7, 5), rec(3, 5)], 6)
        assert plan.takes == [(3, Decimal("5")), (7, Decimal("1"))]

    def test_shortfall_reported(self):
        plan = plan_allocation(1, [rec(1, 3), rec(2, 4)], 10)
        assert plan.allocated == Decimal("7")
        assert plan.shortfall == Decimal("3")
        assert not plan.is_complete

    def test_empty_records_skip(self):
        plan = plan_allocation(1, [rec(1, 0), rec(2, 2)], 2)
        assert plan.takes == [(2, Decimal("2"))]

    def test_no_records(self):
        plan = plan_allocation(1, [], 4)
        assert plan.takes == []
        assert plan.shortfall == Decimal("4")

    def test_fractional_quantities(self):
        plan = plan_allocation(1, [rec(1, "0.75"), rec(2, "1.5")], "2")
        assert plan.takes == [(2, Decimal("1.5")), (1, Decimal("0.5"))]

    def test_to_dict(self):
        data = plan_allocation(9, [rec(1, 6)], 4).to_dict()
        assert data["component_id"] == 9
        assert data["allocated"] == 4.0
        assert data["takes"] == [{"inventory_record_id": 1, "quantity": 4.0}]
