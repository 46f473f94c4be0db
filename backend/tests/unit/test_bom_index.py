"""
Unit tests for BOM lookups and requirement totals.
"""
from decimal import Decimal

from app.services.bom_index import BomIndex, required_quantities, version_sort_key
from tests.factories import create_test_bom_entry, create_test_component


def test_version_sort_is_numeric_aware():
    versions = ["v10", "v2", "v9", "v1"]
    assert sorted(versions, key=version_sort_key) == ["v1", "v2", "v9", "v10"]


class TestBomIndex:

    def test_current_version_is_highest_active(self, db_session):
        a = create_test_component(db_session)
        b = create_test_component(db_session)
        create_test_bom_entry(db_session, "Widget", a, 1, bom_version="v2")
        create_test_bom_entry(db_session, "Widget", b, 1, bom_version="v10")
        create_test_bom_entry(db_session, "Widget", a, 1, bom_version="v11", is_active=False)

        bom = BomIndex(db_session)

        assert bom.versions("Widget") == ["v2", "v10"]
        assert bom.current_version("Widget") == "v10"
        assert [e.component_id for e in bom.get_bom_entries("Widget")] == [b.id]

    def test_explicit_version(self, db_session):
        a = create_test_component(db_session)
        b = create_test_component(db_session)
        create_test_bom_entry(db_session, "Widget", a, 1, bom_version="v1")
        create_test_bom_entry(db_session, "Widget", b, 1, bom_version="v2")

        entries = BomIndex(db_session).get_bom_entries("Widget", "v1")

        assert [e.component_id for e in entries] == [a.id]

    def test_unversioned_fallback(self, db_session):
        a = create_test_component(db_session)
        create_test_bom_entry(db_session, "Gadget", a, 3)

        bom = BomIndex(db_session)

        assert bom.current_version("Gadget") is None
        assert len(bom.get_bom_entries("Gadget")) == 1

    def test_unknown_product(self, db_session):
        assert BomIndex(db_session).get_bom_entries("Nothing") == []


class TestRequiredQuantities:

    def test_scales_and_skips_optional(self, db_session):
        a = create_test_component(db_session)
        b = create_test_component(db_session)
        entries = [
            create_test_bom_entry(db_session, "Widget", a, "2.5"),
            create_test_bom_entry(db_session, "Widget", b, 1, is_optional=True),
        ]

        assert required_quantities(entries, 4) == {a.id: Decimal("10.0")}

    def test_duplicate_lines_are_summed(self, db_session):
        a = create_test_component(db_session)
        entries = [
            create_test_bom_entry(db_session, "Widget", a, 1, bom_version="v1"),
            create_test_bom_entry(db_session, "Widget", a, 2, bom_version="v2"),
        ]

        assert required_quantities(entries, 3) == {a.id: Decimal("9")}
