"""
Tests for the inventory ledger and costing endpoints.
"""
import pytest
from decimal import Decimal

from tests.factories import create_test_component_supplier


class TestInventoryEndpoints:

    @pytest.mark.api
    def test_component_records(self, client, db, widget_stock):
        part = widget_stock["part_a"]

        response = client.get(f"/api/v1/inventory/components/{part.id}/records")

        assert response.status_code == 200
        data = response.json()
        assert data["part_number"] == "PART-A"
        assert data["quantity"] == 14.0
        assert data["available_quantity"] == 14.0
        assert len(data["records"]) == 2

    @pytest.mark.api
    def test_unknown_component(self, client, db):
        response = client.get("/api/v1/inventory/components/999/records")

        assert response.status_code == 404
        assert response.json()["details"]["resource"] == "Component"

    @pytest.mark.api
    def test_transactions_filtered_by_type(self, client, db, widget_stock):
        response = client.get("/api/v1/inventory/transactions", params={"type": "receive"})

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 2
        assert {t["quantity"] for t in data} == {6.0, 8.0}

    @pytest.mark.api
    def test_reconcile(self, client, db, widget_stock):
        response = client.get("/api/v1/inventory/reconcile")

        assert response.status_code == 200
        data = response.json()
        assert data["is_consistent"] is True
        assert data["records_checked"] == 2
        assert data["mismatches"] == []

    @pytest.mark.api
    def test_reconcile_reports_drift(self, client, db, widget_stock):
        record = widget_stock["rec1"]
        record.quantity = Decimal("7")
        record.available_quantity = Decimal("7")
        db.commit()

        data = client.get("/api/v1/inventory/reconcile").json()

        assert data["is_consistent"] is False
        assert data["mismatches"][0]["inventory_record_id"] == record.id


class TestCostingEndpoints:

    @pytest.mark.api
    def test_estimate(self, client, db, widget_stock):
        create_test_component_supplier(db, widget_stock["part_a"], "1.50")
        db.commit()

        response = client.get("/api/v1/costing/products/Widget/estimate", params={"quantity": 4})

        assert response.status_code == 200
        data = response.json()
        assert data["material_cost"] == 12.0
        assert data["cost_per_unit"] == 3.0
        assert data["has_unknown_costs"] is False
        assert data["lines"][0]["source"] == "supplier_price"

    @pytest.mark.api
    def test_estimate_unknown_product(self, client, db):
        response = client.get("/api/v1/costing/products/Nothing/estimate")

        assert response.status_code == 404

    @pytest.mark.api
    def test_snapshot_history(self, client, db, widget_stock):
        create_test_component_supplier(db, widget_stock["part_a"], "2")
        db.commit()

        created = client.post(
            "/api/v1/costing/snapshots",
            json={"product": "Widget", "quantity": 2, "labor_cost": 6, "calculated_by": "jdoe"},
        )

        assert created.status_code == 201
        snapshot = created.json()
        assert snapshot["type"] == "estimate"
        assert snapshot["material_cost"] == 8.0
        assert snapshot["total_cost"] == 14.0
        assert snapshot["cost_per_unit"] == 7.0
        assert len(snapshot["lines"]) == 1

        history = client.get("/api/v1/costing/history", params={"product": "Widget"}).json()
        latest = client.get("/api/v1/costing/latest").json()
        assert [s["id"] for s in history] == [snapshot["id"]]
        assert [s["id"] for s in latest] == [snapshot["id"]]
