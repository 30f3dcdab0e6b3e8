"""API endpoint tests."""

import pytest
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from catering_stock.db.session import build_engine
from catering_stock.services import movement_ledger

API = "/api/v1"


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_correlation_id_echoed(self, client, project_headers, party_menu):
        headers = {**project_headers, "X-Correlation-ID": "abc-123"}
        response = client.post(f"{API}/consumption/calculate", json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                               headers=headers)
        assert response.headers["X-Correlation-ID"] == "abc-123"

    def test_correlation_id_generated(self, client, project_headers):
        response = client.get(f"{API}/bulk-movements/reversible", headers=project_headers)
        assert response.headers.get("X-Correlation-ID")


class TestDatabaseEngine:
    def test_sqlite_engine_enforces_foreign_keys(self):
        engine = build_engine("sqlite:///:memory:")
        try:
            with engine.connect() as conn:
                assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
        finally:
            engine.dispose()


class TestProjectScope:
    def test_missing_project_header(self, client, party_menu):
        response = client.post(f"{API}/consumption/calculate", json={"menu_id": party_menu["menu"].id, "guest_count": 8})
        assert response.status_code == 400

    def test_non_numeric_project_header(self, client, party_menu):
        response = client.post(f"{API}/consumption/calculate", json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                               headers={"X-Project-ID": "abc"})
        assert response.status_code == 400

    def test_menu_of_other_project_not_found(self, client, other_project, party_menu):
        response = client.post(f"{API}/consumption/calculate", json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                               headers={"X-Project-ID": str(other_project.id)})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestConsumptionAPI:
    def test_calculate(self, client, project_headers, party_menu):
        response = client.post(f"{API}/consumption/calculate",
                               json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                               headers=project_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["menu_name"] == "Party"
        assert data["all_sufficient"] is True
        assert Decimal(data["total_cost"]) == Decimal("25.20")
        needs = {item["product_name"]: Decimal(item["total_needed"]) for item in data["items"]}
        assert needs == {"Flour": Decimal("560"), "Sugar": Decimal("200"), "Butter": Decimal("80")}

    def test_calculate_does_not_touch_stock(self, client, project_headers, party_menu, stock_of):
        client.post(f"{API}/consumption/calculate", json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                    headers=project_headers)
        assert stock_of(party_menu["flour"]) == Decimal("1000")

    @pytest.mark.parametrize("guests", [0, -1])
    def test_calculate_invalid_guest_count(self, client, project_headers, party_menu, guests):
        response = client.post(f"{API}/consumption/calculate",
                               json={"menu_id": party_menu["menu"].id, "guest_count": guests},
                               headers=project_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_recipe"

    def test_calculate_empty_menu(self, client, project_headers, empty_menu):
        response = client.post(f"{API}/consumption/calculate", json={"menu_id": empty_menu.id, "guest_count": 8},
                               headers=project_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "empty_menu"

    def test_calculate_unknown_menu(self, client, project_headers):
        response = client.post(f"{API}/consumption/calculate", json={"menu_id": 9999, "guest_count": 8},
                               headers=project_headers)
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["entity"] == "Menu"

    def test_commit(self, client, project_headers, party_menu, stock_of):
        response = client.post(f"{API}/consumption/commit",
                               json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                               headers=project_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["bulk_id"] > 0
        assert len(data["items"]) == 3
        assert stock_of(party_menu["flour"]) == Decimal("440")

    def test_commit_insufficient(self, client, project_headers, party_menu, stock_of):
        response = client.post(f"{API}/consumption/commit",
                               json={"menu_id": party_menu["menu"].id, "guest_count": 9},
                               headers=project_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "insufficient_stock"
        assert [p["product_name"] for p in body["products"]] == ["Butter"]
        assert stock_of(party_menu["flour"]) == Decimal("1000")

    def test_commit_with_reused_bulk_id(self, client, project_headers, party_menu):
        payload = {"menu_id": party_menu["menu"].id, "guest_count": 1, "bulk_id": 31337}
        first = client.post(f"{API}/consumption/commit", json=payload, headers=project_headers)
        second = client.post(f"{API}/consumption/commit", json=payload, headers=project_headers)

        assert first.status_code == 201
        assert first.json()["bulk_id"] == 31337
        assert second.status_code == 409
        assert second.json()["error"] == "duplicate_bulk_movement"

    @pytest.mark.parametrize("bulk_id", [0, 2**62, 2**63])
    def test_commit_with_out_of_range_bulk_id(self, client, project_headers, party_menu, stock_of, bulk_id):
        payload = {"menu_id": party_menu["menu"].id, "guest_count": 8, "bulk_id": bulk_id}
        response = client.post(f"{API}/consumption/commit", json=payload, headers=project_headers)

        assert response.status_code == 422
        assert stock_of(party_menu["flour"]) == Decimal("1000")

    def test_commit_store_failure(self, client, project_headers, party_menu, stock_of, monkeypatch):
        def broken_apply(db, product, delta):
            raise OperationalError("UPDATE products", {}, Exception("disk I/O error"))

        monkeypatch.setattr(movement_ledger, "apply_stock_delta", broken_apply)
        response = client.post(f"{API}/consumption/commit",
                               json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                               headers=project_headers)

        assert response.status_code == 503
        assert response.json()["error"] == "persistence_error"
        assert stock_of(party_menu["flour"]) == Decimal("1000")


class TestBulkMovementsAPI:
    def _commit(self, client, headers, menu_id, guests=8):
        response = client.post(f"{API}/consumption/commit", json={"menu_id": menu_id, "guest_count": guests},
                               headers=headers)
        assert response.status_code == 201
        return response.json()["bulk_id"]

    def test_reverse(self, client, project_headers, party_menu, stock_of):
        bulk_id = self._commit(client, project_headers, party_menu["menu"].id)

        response = client.post(f"{API}/bulk-movements/{bulk_id}/reverse", json={"reason": "Event cancelled"},
                               headers=project_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["original_bulk_id"] == bulk_id
        assert data["reversal_bulk_id"] == -bulk_id
        assert data["reversed_by"] == "chef"
        assert data["reason"] == "Event cancelled"
        assert len(data["lines"]) == 3
        assert stock_of(party_menu["flour"]) == Decimal("1000")

    def test_reverse_twice(self, client, project_headers, party_menu):
        bulk_id = self._commit(client, project_headers, party_menu["menu"].id)
        client.post(f"{API}/bulk-movements/{bulk_id}/reverse", headers=project_headers)

        response = client.post(f"{API}/bulk-movements/{bulk_id}/reverse", headers=project_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "not_reversible"
        assert response.json()["bulk_id"] == bulk_id

    def test_reverse_unknown(self, client, project_headers, project):
        response = client.post(f"{API}/bulk-movements/4242/reverse", headers=project_headers)
        assert response.status_code == 404

    @pytest.mark.parametrize("method,suffix", [("post", "/reverse"), ("get", "")])
    def test_bulk_id_beyond_storage_range(self, client, project_headers, project, method, suffix):
        url = f"{API}/bulk-movements/{2**63}{suffix}"
        response = getattr(client, method)(url, headers=project_headers)
        assert response.status_code == 422

    def test_largest_storable_bulk_id_is_not_found(self, client, project_headers, project):
        response = client.post(f"{API}/bulk-movements/{2**63 - 1}/reverse", headers=project_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_bulk_stock_out_with_out_of_range_bulk_id(self, client, project_headers, products, stock_of):
        response = client.post(f"{API}/bulk-movements/stock-out",
                               json={"lines": [{"product_id": products["eggs"].id, "quantity": "1"}],
                                     "bulk_id": 2**63},
                               headers=project_headers)
        assert response.status_code == 422
        assert stock_of(products["eggs"]) == Decimal("30")

    def test_reversible_list_and_details(self, client, project_headers, party_menu):
        bulk_id = self._commit(client, project_headers, party_menu["menu"].id)

        listing = client.get(f"{API}/bulk-movements/reversible", headers=project_headers)
        assert listing.status_code == 200
        body = listing.json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == bulk_id
        assert body["items"][0]["total_items"] == 3
        assert Decimal(body["items"][0]["estimated_cost"]) == Decimal("25.20")

        details = client.get(f"{API}/bulk-movements/{bulk_id}", headers=project_headers)
        assert details.status_code == 200
        assert details.json()["can_be_reversed"] is True
        assert len(details.json()["movements"]) == 3

    def test_bulk_stock_out(self, client, project_headers, products, stock_of):
        response = client.post(
            f"{API}/bulk-movements/stock-out",
            json={"lines": [
                {"product_id": products["eggs"].id, "quantity": "6"},
                {"product_id": products["flour"].id, "quantity": "250"},
            ], "note": "Staff lunch"},
            headers=project_headers,
        )

        assert response.status_code == 201
        assert response.json()["bulk_id"] > 0
        assert stock_of(products["eggs"]) == Decimal("24")
        assert stock_of(products["flour"]) == Decimal("750")

    def test_bulk_stock_out_unknown_product(self, client, project_headers, products):
        response = client.post(f"{API}/bulk-movements/stock-out",
                               json={"lines": [{"product_id": 999, "quantity": "1"}]},
                               headers=project_headers)
        assert response.status_code == 404

    def test_bulk_stock_out_negative_quantity(self, client, project_headers, products):
        response = client.post(f"{API}/bulk-movements/stock-out",
                               json={"lines": [{"product_id": products["eggs"].id, "quantity": "-1"}]},
                               headers=project_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_recipe"


class TestStockMovementsAPI:
    def test_record_single_movement(self, client, project_headers, products, stock_of):
        response = client.post(f"{API}/stock-movements",
                               json={"product_id": products["eggs"].id, "type": "in", "quantity": "10"},
                               headers=project_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["is_bulk"] is False
        assert data["type"] == "in"
        assert data["user_id"] == "chef"
        assert stock_of(products["eggs"]) == Decimal("40")

    def test_single_movement_below_zero(self, client, project_headers, products):
        response = client.post(f"{API}/stock-movements",
                               json={"product_id": products["eggs"].id, "type": "out", "quantity": "100"},
                               headers=project_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "insufficient_stock"

    def test_single_movement_bad_type(self, client, project_headers, products):
        response = client.post(f"{API}/stock-movements",
                               json={"product_id": products["eggs"].id, "type": "sideways", "quantity": "1"},
                               headers=project_headers)
        assert response.status_code == 422

    def test_grouped_listing(self, client, project_headers, party_menu):
        client.post(f"{API}/consumption/commit", json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                    headers=project_headers)
        client.post(f"{API}/stock-movements",
                    json={"product_id": party_menu["eggs"].id, "type": "in", "quantity": "5"},
                    headers=project_headers)

        response = client.get(f"{API}/stock-movements", headers=project_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["partial_groups"] == 0
        bulk = next(item for item in body["items"] if item["is_bulk"])
        assert bulk["member_count"] == 3
        assert bulk["is_partial"] is False
        assert Decimal(bulk["total_cost"]) == Decimal("25.20")
        single = next(item for item in body["items"] if not item["is_bulk"])
        assert single["movement"]["product_name"] == "Eggs"

    def test_grouped_listing_flags_partial_groups(self, client, project_headers, party_menu):
        client.post(f"{API}/consumption/commit", json={"menu_id": party_menu["menu"].id, "guest_count": 8},
                    headers=project_headers)

        response = client.get(f"{API}/stock-movements", params={"product_id": party_menu["flour"].id},
                              headers=project_headers)

        body = response.json()
        assert body["partial_groups"] == 1
        assert body["items"][0]["is_partial"] is True
        assert body["items"][0]["expected_member_count"] == 3

    def test_grouped_listing_date_and_type_filters(self, client, project_headers, products):
        client.post(f"{API}/stock-movements",
                    json={"product_id": products["eggs"].id, "type": "in", "quantity": "5"},
                    headers=project_headers)

        response = client.get(f"{API}/stock-movements",
                              params={"date_from": "2000-01-01", "date_to": "2000-01-02"},
                              headers=project_headers)
        assert response.json()["total"] == 0

        response = client.get(f"{API}/stock-movements", params={"type": "out"}, headers=project_headers)
        assert response.json()["total"] == 0

        response = client.get(f"{API}/stock-movements", params={"type": "in"}, headers=project_headers)
        assert response.json()["total"] == 1
