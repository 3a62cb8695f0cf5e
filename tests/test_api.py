"""HTTP surface: status codes, owner scoping and error payloads."""
import pytest

from utils.deps import get_store


@pytest.fixture
def tube(client):
    r = client.post("/products", json={
        "name": "Steel tube", "sku": "TUB-1", "cost_price": 3, "current_stock": 10,
        "min_stock": 2, "max_stock": 50,
    })
    assert r.status_code == 201
    return r.json()


@pytest.fixture
def stool(client, tube):
    r = client.post("/products", json={
        "name": "Stool", "type": "FINAL", "sale_price": 80,
        "bom": [{"component_id": tube["id"], "quantity_per_unit": 2}],
    })
    assert r.status_code == 201
    return r.json()


class TestProductsApi:

    def test_root(self, client):
        assert client.get("/").json() == {"message": "Stock Ledger API is running"}

    def test_owner_header_is_required(self, client):
        r = client.get("/products", headers={"X-Owner-Id": ""})
        assert r.status_code == 401

    def test_create_and_read(self, client, tube, stool):
        r = client.get(f"/products/{stool['id']}")
        assert r.status_code == 200
        body = r.json()
        assert body["virtual_stock"] == 5
        assert body["status"] == "CRITICAL"
        assert body["current_stock"] == 0
        assert client.get(f"/products/{tube['id']}").json()["status"] == "OK"

    def test_list_is_owner_scoped(self, client, tube):
        assert client.get("/products").json()["total"] == 1
        other = client.get("/products", headers={"X-Owner-Id": "someone-else"}).json()
        assert other == {"items": [], "total": 0}
        r = client.get(f"/products/{tube['id']}", headers={"X-Owner-Id": "someone-else"})
        assert r.status_code == 404

    def test_stock_is_not_editable(self, client, tube):
        r = client.patch(f"/products/{tube['id']}", json={"current_stock": 99})
        assert r.status_code == 422
        assert client.get(f"/products/{tube['id']}").json()["current_stock"] == 10

    def test_edit_null_name_is_rejected(self, client, tube):
        r = client.patch(f"/products/{tube['id']}", json={"name": None, "cost_price": None})
        assert r.status_code == 422
        assert r.json()["detail"] == "Fields cannot be null: cost_price, name"
        assert client.get(f"/products/{tube['id']}").json()["name"] == "Steel tube"

    def test_edit(self, client, tube):
        r = client.patch(f"/products/{tube['id']}", json={"name": "Steel tube 1m", "min_stock": 10})
        assert r.status_code == 200
        assert r.json()["name"] == "Steel tube 1m"
        assert r.json()["status"] == "ALERT"

    def test_component_in_use_cannot_be_deleted(self, client, tube, stool):
        r = client.delete(f"/products/{tube['id']}")
        assert r.status_code == 422
        assert "Stool" in r.json()["detail"]
        assert client.delete(f"/products/{stool['id']}").status_code == 200
        assert client.delete(f"/products/{tube['id']}").status_code == 200


class TestLedgerApi:

    def test_sale_and_detail(self, client, tube, stool):
        r = client.post("/sales", json={"items": [{"product_id": stool["id"], "quantity": 3, "unit_price": 80}]})
        assert r.status_code == 201
        txn_id = r.json()["transaction_id"]

        assert client.get(f"/products/{tube['id']}").json()["current_stock"] == 4
        detail = client.get(f"/transactions/{txn_id}").json()
        assert detail["type"] == "IN"
        assert detail["net_total"] == 240
        assert [i["role"] for i in detail["items"]] == ["LINE", "CONSUMPTION"]

    def test_insufficient_component(self, client, tube, stool):
        r = client.post("/sales", json={"items": [{"product_id": stool["id"], "quantity": 6, "unit_price": 80}]})
        assert r.status_code == 409
        assert "Steel tube" in r.json()["detail"]
        assert client.get(f"/products/{tube['id']}").json()["current_stock"] == 10

    def test_purchase(self, client, tube):
        r = client.post("/purchases", json={"items": [{"product_id": tube["id"], "quantity": 5, "unit_cost": 20}]})
        assert r.status_code == 201
        body = client.get(f"/products/{tube['id']}").json()
        assert body["current_stock"] == 15
        assert body["cost_price"] == 20
        assert client.get(f"/transactions/{r.json()['transaction_id']}").json()["type"] == "OUT"

    def test_assembly(self, client, tube, stool):
        r = client.post("/assemblies", json={"product_id": stool["id"], "quantity": 2})
        assert r.status_code == 201
        assert client.get(f"/products/{stool['id']}").json()["current_stock"] == 2
        assert client.get(f"/products/{tube['id']}").json()["current_stock"] == 6

    def test_assembly_without_bom(self, client, tube):
        r = client.post("/assemblies", json={"product_id": tube["id"], "quantity": 1})
        assert r.status_code == 422

    def test_invalid_payload(self, client, tube):
        r = client.post("/sales", json={"items": [{"product_id": tube["id"], "quantity": 0, "unit_price": 1}]})
        assert r.status_code == 422
        r = client.post("/sales", json={"items": []})
        assert r.status_code == 422

    def test_list_filters(self, client, tube):
        client.post("/purchases", json={"items": [{"product_id": tube["id"], "quantity": 1, "unit_cost": 3}]})
        client.post("/sales", json={"items": [{"product_id": tube["id"], "quantity": 1, "unit_price": 5}]})
        assert client.get("/transactions").json()["total"] == 2
        sales = client.get("/transactions", params={"type": "IN"}).json()
        assert sales["total"] == 1
        assert sales["items"][0]["type"] == "IN"


class TestRevertApi:

    def test_revert_then_reject_second(self, client, tube):
        txn_id = client.post("/sales", json={
            "items": [{"product_id": tube["id"], "quantity": 4, "unit_price": 5}],
        }).json()["transaction_id"]

        r = client.post(f"/transactions/{txn_id}/revert")
        assert r.status_code == 200
        assert r.json()["mode"] == "atomic"
        assert client.get(f"/products/{tube['id']}").json()["current_stock"] == 10
        assert client.get(f"/transactions/{txn_id}").json()["status"] == "CANCELLED"

        r = client.post(f"/transactions/{txn_id}/revert")
        assert r.status_code == 409

    def test_unknown_transaction(self, client):
        assert client.post("/transactions/missing/revert").status_code == 404

    def test_degraded_mode_is_reported(self, client, flaky, tube):
        from main import app
        app.dependency_overrides[get_store] = lambda: flaky
        txn_id = client.post("/sales", json={
            "items": [{"product_id": tube["id"], "quantity": 4, "unit_price": 5}],
        }).json()["transaction_id"]
        flaky.fail_atomic = True

        r = client.post(f"/transactions/{txn_id}/revert")

        assert r.status_code == 200
        assert r.json()["mode"] == "degraded"
        assert client.get(f"/products/{tube['id']}").json()["current_stock"] == 10


class TestPartnersAndLogs:

    def test_supplier_lifecycle(self, client):
        r = client.post("/suppliers", json={"name": "Metal Works", "email": "sales@metal.example", "lead_time": 4})
        assert r.status_code == 201
        supplier_id = r.json()["id"]
        assert [s["name"] for s in client.get("/suppliers").json()] == ["Metal Works"]
        assert client.delete(f"/suppliers/{supplier_id}").status_code == 200
        assert client.delete(f"/suppliers/{supplier_id}").status_code == 404

    def test_client_name_on_sale(self, client, tube):
        client_id = client.post("/clients", json={"name": "Corner Cafe"}).json()["id"]
        txn_id = client.post("/sales", json={
            "client_id": client_id,
            "items": [{"product_id": tube["id"], "quantity": 1, "unit_price": 5}],
        }).json()["transaction_id"]
        assert client.get(f"/transactions/{txn_id}").json()["client_name"] == "Corner Cafe"

    def test_mutations_are_logged(self, client, tube):
        client.post("/sales", json={"items": [{"product_id": tube["id"], "quantity": 1, "unit_price": 5}]})
        actions = {entry["action"] for entry in client.get("/logs").json()["items"]}
        assert {"PRODUCT_CREATE", "SALE_CREATE"} <= actions

    def test_delete_is_logged_with_client_address(self, client, tube):
        client.delete(f"/products/{tube['id']}")
        entries = client.get("/logs", params={"action": "PRODUCT_DELETE"}).json()["items"]
        assert len(entries) == 1
        assert entries[0]["ip"] == "testclient"
        assert entries[0]["meta"] == {"id": tube["id"]}
