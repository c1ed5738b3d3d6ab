"""HTTP-level tests for the pricing and sync routers"""

import uuid
from decimal import Decimal

from fastapi.testclient import TestClient

from models.org import Org

PRICE_LISTS = "/api/v1/price-lists"


def _create_list(client: TestClient, code: str = "STD", **kwargs) -> dict:
    body = {"code": code, "name": f"{code} list", "currency": "eur", "effective_from": "2024-01-01"}
    body.update(kwargs)
    response = client.post(PRICE_LISTS, json=body)
    assert response.status_code == 201, response.text
    return response.json()


def _add_item(client: TestClient, price_list_id: str, sku: str, price: str, **kwargs) -> dict:
    body = {"sku": sku, "base_price": price}
    body.update(kwargs)
    response = client.post(f"{PRICE_LISTS}/{price_list_id}/items", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestTenantHeader:

    def test_missing_header(self, client: TestClient):
        response = client.get(PRICE_LISTS, headers={"X-Org-ID": ""})
        assert response.status_code == 400

    def test_malformed_header(self, client: TestClient):
        response = client.get(PRICE_LISTS, headers={"X-Org-ID": "not-a-uuid"})
        assert response.status_code == 400

    def test_unknown_org_cannot_create(self, client: TestClient):
        response = client.post(
            PRICE_LISTS,
            json={"code": "STD", "name": "Standard", "currency": "EUR"},
            headers={"X-Org-ID": str(uuid.uuid4())},
        )
        assert response.status_code == 404

    def test_lists_are_tenant_scoped(self, client: TestClient, other_org: Org):
        _create_list(client)
        response = client.get(PRICE_LISTS, headers={"X-Org-ID": str(other_org.id)})
        assert response.json()["total"] == 0


class TestPriceListEndpoints:

    def test_crud_flow(self, client: TestClient):
        created = _create_list(client, is_default=True)
        assert created["currency"] == "EUR"
        _add_item(client, created["id"], "SKU-1", "10")

        detail = client.get(f"{PRICE_LISTS}/{created['id']}").json()
        assert [i["sku"] for i in detail["items"]] == ["SKU-1"]

        patched = client.patch(f"{PRICE_LISTS}/{created['id']}", json={"name": "Renamed"})
        assert patched.json()["name"] == "Renamed"

        assert client.delete(f"{PRICE_LISTS}/{created['id']}").status_code == 204
        assert client.get(f"{PRICE_LISTS}/{created['id']}").status_code == 404

    def test_not_found_body(self, client: TestClient):
        response = client.get(f"{PRICE_LISTS}/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_duplicate_code_conflict(self, client: TestClient):
        _create_list(client)
        response = client.post(PRICE_LISTS, json={"code": "STD", "name": "Again", "currency": "EUR"})
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_validation_error(self, client: TestClient):
        response = client.post(PRICE_LISTS, json={"code": "STD", "name": "Bad", "currency": "EURO"})
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_bulk_upsert(self, client: TestClient):
        price_list = _create_list(client)
        response = client.post(f"{PRICE_LISTS}/{price_list['id']}/items/bulk", json={"items": [
            {"sku": "A", "base_price": "1"},
            {"sku": "", "base_price": "1"},
        ]})

        body = response.json()
        assert response.status_code == 200
        assert body["created"] == 1
        assert body["errors"][0]["index"] == 1

    def test_csv_import(self, client: TestClient):
        price_list = _create_list(client)
        response = client.post(
            f"{PRICE_LISTS}/{price_list['id']}/items/import",
            files={"file": ("items.csv", b"sku,base_price\nA,1\nB,2\n", "text/csv")},
        )
        assert response.status_code == 200
        assert response.json()["created"] == 2

    def test_csv_import_rejects_other_files(self, client: TestClient):
        price_list = _create_list(client)
        response = client.post(
            f"{PRICE_LISTS}/{price_list['id']}/items/import",
            files={"file": ("items.xlsx", b"...", "application/octet-stream")},
        )
        assert response.status_code == 400

    def test_assignments(self, client: TestClient):
        price_list = _create_list(client)
        body = {"price_list_id": price_list["id"], "assignment_type": "CUSTOMER", "assignment_id": "C-1"}

        assert client.post(f"{PRICE_LISTS}/assignments", json=body).status_code == 201
        assert client.post(f"{PRICE_LISTS}/assignments", json=body).status_code == 409
        listed = client.get(f"{PRICE_LISTS}/assignments", params={"assignment_id": "C-1"}).json()
        assert len(listed) == 1


class TestOverrideAndResolutionEndpoints:

    def test_override_and_resolve(self, client: TestClient):
        price_list = _create_list(client, is_default=True)
        item = _add_item(client, price_list["id"], "SKU-1", "50")

        response = client.post("/api/v1/price-overrides", json={
            "price_list_item_id": item["id"],
            "override_type": "FIXED_PRICE",
            "override_value": "42",
            "scope_type": "CUSTOMER",
            "scope_id": "C-1",
            "effective_from": "2024-01-01",
            "status": "PENDING_APPROVAL",
        })
        assert response.status_code == 201
        override_id = response.json()["id"]

        before = client.post("/api/v1/prices/resolve", json={"sku": "SKU-1", "customer_id": "C-1"}).json()
        assert Decimal(before["unit_price"]) == Decimal("50")

        approved = client.post(f"/api/v1/price-overrides/{override_id}/approve", json={"approver_id": "mgr"})
        assert approved.json()["status"] == "ACTIVE"

        after = client.post("/api/v1/prices/resolve", json={"sku": "SKU-1", "customer_id": "C-1"}).json()
        assert Decimal(after["unit_price"]) == Decimal("42")
        assert after["price_source"] == "override"

        revoked = client.post(f"/api/v1/price-overrides/{override_id}/revoke", params={"reason": "ended"})
        assert revoked.json()["status"] == "REVOKED"
        again = client.post(f"/api/v1/price-overrides/{override_id}/revoke")
        assert again.status_code == 409

    def test_resolve_not_found(self, client: TestClient):
        response = client.post("/api/v1/prices/resolve", json={"sku": "NOPE"})
        assert response.status_code == 404

    def test_resolve_many(self, client: TestClient):
        price_list = _create_list(client, is_default=True)
        _add_item(client, price_list["id"], "A", "10")

        response = client.post("/api/v1/prices/resolve-many", json={"skus": ["A", "B"]})

        results = response.json()["results"]
        assert Decimal(results["A"]["unit_price"]) == Decimal("10")
        assert results["B"] is None


class TestSyncEndpoints:

    def _import_body(self, items):
        return {
            "price_list": {"code": "ERP", "name": "ERP list", "currency": "EUR", "effective_from": "2024-01-01"},
            "items": items,
        }

    def test_import_and_history(self, client: TestClient):
        response = client.post("/api/v1/price-sync/import", json=self._import_body([
            {"sku": "A", "base_price": "1"},
            {"sku": "", "base_price": "1"},
        ]))
        result = response.json()
        assert response.status_code == 200
        assert result["status"] == "COMPLETED"
        assert result["error_count"] == 1
        assert result["delta_token"].startswith("dt_")

        history = client.get(f"/api/v1/price-sync/price-lists/{result['price_list_id']}/history").json()
        assert [j["id"] for j in history] == [result["job_id"]]

        token = client.get(f"/api/v1/price-sync/price-lists/{result['price_list_id']}/delta-token").json()
        assert token["delta_token"] == result["delta_token"]

    def test_job_lifecycle(self, client: TestClient):
        _create_list(client, code="ERP")

        created = client.post("/api/v1/price-sync/jobs", json={"price_list_code": "ERP", "full_sync": True})
        assert created.status_code == 201
        job_id = created.json()["id"]

        pending = client.get("/api/v1/price-sync/jobs").json()
        assert [j["id"] for j in pending] == [job_id]

        cancelled = client.post(f"/api/v1/price-sync/jobs/{job_id}/cancel")
        assert cancelled.json()["status"] == "CANCELLED"
        assert client.post(f"/api/v1/price-sync/jobs/{job_id}/cancel").status_code == 409

    def test_delta_updates(self, client: TestClient):
        price_list = _create_list(client)
        response = client.post(f"/api/v1/price-sync/price-lists/{price_list['id']}/delta", json={"updates": [
            {"action": "create", "sku": "A", "data": {"base_price": "3"}},
            {"action": "delete", "sku": "B"},
        ]})

        body = response.json()
        assert body["processed"] == 2
        assert body["new_delta_token"].startswith("dt_")

    def test_schedule_without_dispatch(self, client: TestClient):
        _create_list(client, code="ERP", external_id="E-1")
        response = client.post("/api/v1/price-sync/schedule", json={})
        assert len(response.json()["job_ids"]) == 1


class TestObservability:

    def test_health_reports_components(self, client: TestClient):
        response = client.get("/health")
        body = response.json()

        assert response.status_code == 200
        assert body["components"]["database"]["status"] == "healthy"
        assert body["status"] in ("healthy", "degraded")

    def test_metrics(self, client: TestClient):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "pricing_resolutions_total" in response.text

    def test_request_id_echoed(self, client: TestClient):
        response = client.get("/api/v1", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
