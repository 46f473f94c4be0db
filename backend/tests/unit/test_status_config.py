"""
Tests for the build order transition table.
"""
import pytest

from app.core.status_config import (
    ACTIVE_STATUSES,
    BUILD_ORDER_OPERATIONS,
    BUILD_ORDER_TRANSITIONS,
    BuildOrderStatus,
    get_accepted_source_statuses,
    get_allowed_build_order_transitions,
    is_terminal_status,
    is_valid_build_order_transition,
)

S = BuildOrderStatus

EXPECTED_EDGES = {
    (S.PLANNED, S.MATERIALS_RESERVED),
    (S.MATERIALS_RESERVED, S.IN_PROGRESS),
    (S.IN_PROGRESS, S.QC),
    (S.QC, S.COMPLETE),
    (S.PLANNED, S.CANCELLED),
    (S.MATERIALS_RESERVED, S.CANCELLED),
    (S.IN_PROGRESS, S.CANCELLED),
    (S.QC, S.CANCELLED),
}


class TestTransitionTable:

    def test_every_status_has_an_entry(self):
        assert set(BUILD_ORDER_TRANSITIONS) == set(BuildOrderStatus)

    @pytest.mark.parametrize("current", list(BuildOrderStatus))
    @pytest.mark.parametrize("target", list(BuildOrderStatus))
    def test_only_listed_edges_are_valid(self, current, target):
        expected = (current, target) in EXPECTED_EDGES
        assert is_valid_build_order_transition(current.value, target.value) is expected

    def test_terminal_statuses(self):
        assert is_terminal_status("complete")
        assert is_terminal_status("cancelled")
        assert not is_terminal_status("qc")
        assert ACTIVE_STATUSES == ["planned", "materials_reserved", "in_progress", "qc"]

    def test_allowed_transitions_are_in_status_order(self):
        assert get_allowed_build_order_transitions("planned") == ["materials_reserved", "cancelled"]
        assert get_allowed_build_order_transitions("complete") == []

    def test_accepted_sources(self):
        assert get_accepted_source_statuses("in_progress") == ["materials_reserved"]
        assert get_accepted_source_statuses("cancelled") == [
            "planned", "materials_reserved", "in_progress", "qc",
        ]

    def test_operations_target_reachable_statuses(self):
        targets = {t for _, t in EXPECTED_EDGES}
        assert set(BUILD_ORDER_OPERATIONS.values()) == targets

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            is_valid_build_order_transition("shipped", "complete")
