"""
Catalog, operator, settings and history routes, plus the bootstrap/health
endpoints and the `system init` command.
"""

from venuepos.models import MenuItem, Setting, User


def _items_by_name(client, **params):
    response = client.get("/api/menu-items", query_string=params)
    assert response.status_code == 200
    return {item["name"]: item for item in response.json["items"]}


class TestMenuItems:
    def test_create_with_stock_books_correction(self, client, db_session):
        response = client.post("/api/menu-items", json={"name": "Cola", "price": 2.5, "stock": 12})

        assert response.status_code == 201
        assert response.json["price_cents"] == 250
        assert response.json["stock"] == 12
        history = client.get(f"/api/stock/movements/{response.json['id']}").json
        assert [m["type"] for m in history["movements"]] == ["correction"]

    def test_joining_group_adopts_counter_and_threshold(self, client, db_session):
        first = client.post(
            "/api/menu-items",
            json={"name": "Espresso", "price_cents": 150, "stock": 10, "stockGroupId": "beans", "stockThreshold": 3},
        ).json
        second = client.post(
            "/api/menu-items",
            json={"name": "Double Espresso", "price_cents": 250, "stockGroupId": "beans"},
        ).json

        assert second["stock"] == 10
        assert second["stockThreshold"] == 3

        # Threshold and counter edits land on every member
        client.put(f"/api/menu-items/{first['id']}", json={"stockThreshold": 5})
        client.put(f"/api/menu-items/{second['id']}", json={"stock": 4})

        items = _items_by_name(client)
        assert items["Espresso"]["stock"] == items["Double Espresso"]["stock"] == 4
        assert items["Espresso"]["stockThreshold"] == items["Double Espresso"]["stockThreshold"] == 5

    def test_update_missing_item_is_404(self, client, db_session):
        response = client.put("/api/menu-items/999", json={"name": "Ghost"})

        assert response.status_code == 404
        assert response.json["error"] == "Menu item not found"

    def test_invalid_price_is_rejected(self, client, db_session):
        response = client.post("/api/menu-items", json={"name": "Cola", "price": "free"})

        assert response.status_code == 400
        assert db_session.query(MenuItem).count() == 0

    def test_delete_is_idempotent_soft_delete(self, client, db_session, make_item):
        item = make_item(name="Tea")

        first = client.delete(f"/api/menu-items/{item.id}")
        second = client.delete(f"/api/menu-items/{item.id}")

        assert first.json == {"id": item.id, "deleted": True}
        assert second.json == {"id": item.id, "deleted": False}
        assert "Tea" not in _items_by_name(client)
        assert _items_by_name(client, include_inactive="true")["Tea"]["is_active"] is False


class TestCategories:
    def test_rename_carries_over_to_items(self, client, db_session):
        category = client.post("/api/menu-categories", json={"name": "Drinks"}).json
        client.post("/api/menu-items", json={"name": "Juice", "price": 2, "category": "Drinks"})

        response = client.put(f"/api/menu-categories/{category['id']}", json={"name": "Beverages"})

        assert response.status_code == 200
        assert _items_by_name(client)["Juice"]["category"] == "Beverages"

    def test_delete_uncategorizes_items(self, client, db_session):
        category = client.post("/api/menu-categories", json={"name": "Food"}).json
        client.post("/api/menu-items", json={"name": "Toast", "price": 3, "category": "Food"})

        assert client.delete(f"/api/menu-categories/{category['id']}").json["deleted"] is True
        assert client.delete(f"/api/menu-categories/{category['id']}").json["deleted"] is False
        assert _items_by_name(client)["Toast"]["category"] is None

    def test_duplicate_name_conflicts(self, client, db_session):
        client.post("/api/menu-categories", json={"name": "Drinks"})

        response = client.post("/api/menu-categories", json={"name": "Drinks"})

        assert response.status_code == 409


class TestUsers:
    def test_duplicate_username_conflicts(self, client, db_session):
        assert client.post("/api/users", json={"username": "Ana", "pin": "4321"}).status_code == 201

        response = client.post("/api/users", json={"username": "Ana", "pin": "9999"})

        assert response.status_code == 409

    def test_non_numeric_pin_is_rejected(self, client, db_session):
        response = client.post("/api/users", json={"username": "Ana", "pin": "abcd"})

        assert response.status_code == 400

    def test_deactivated_user_is_reactivated_on_re_add(self, client, db_session):
        created = client.post("/api/users", json={"username": "Ana", "pin": "4321", "role": "admin"}).json
        assert created["role"] == "ADMIN"

        assert client.delete(f"/api/users/{created['id']}").json["deleted"] is True
        assert client.delete(f"/api/users/{created['id']}").json["deleted"] is False
        assert client.get("/api/users").json["count"] == 0

        again = client.post("/api/users", json={"username": "Ana", "pin": "1111"})

        assert again.status_code == 201
        assert again.json["id"] == created["id"]
        assert again.json["role"] == "CASHIER"


class TestSettings:
    def test_defaults_come_from_config(self, app, client, db_session):
        settings = client.get("/api/settings").json

        assert settings["taxRate"] == str(app.config["DEFAULT_TAX_RATE"])
        assert settings["tableCount"] == int(app.config["DEFAULT_TABLE_COUNT"])

    def test_tax_rate_is_stored_normalized(self, client, db_session):
        response = client.post("/api/settings/tax", json={"rate": "0.090"})

        assert response.json == {"taxRate": "0.09"}
        db_session.expire_all()
        assert db_session.get(Setting, "taxRate").value == "0.09"

    def test_out_of_range_values_are_rejected(self, client, db_session):
        assert client.post("/api/settings/tax", json={"rate": 1.5}).status_code == 400
        assert client.post("/api/settings/tax", json={}).status_code == 400
        assert client.post("/api/settings/table-count", json={"count": 0}).status_code == 400

        response = client.post("/api/settings/table-count", json={"count": 30})
        assert response.json == {"tableCount": 30}


class TestHistory:
    def test_entries_are_filtered_by_table(self, client, db_session, cashier):
        client.post("/api/history", json={"tableId": "1", "details": "Order sent", "userId": cashier.id})
        client.post("/api/history", json={"tableId": "2", "details": "Invoice finalized"})

        response = client.get("/api/history", query_string={"tableId": "1"})

        assert response.json["count"] == 1
        assert response.json["history"][0]["details"] == "Order sent"

    def test_unknown_user_is_404(self, client, db_session):
        response = client.post("/api/history", json={"tableId": "1", "details": "x", "userId": 999})

        assert response.status_code == 404

    def test_blank_details_rejected(self, client, db_session):
        assert client.post("/api/history", json={"tableId": "1", "details": "  "}).status_code == 400


def test_bootstrap_bundles_device_state(client, db_session, make_item, cashier):
    make_item(name="Beer")

    body = client.get("/api/bootstrap").json

    assert [u["username"] for u in body["users"]] == ["Kamarier"]
    assert [i["name"] for i in body["menuItems"]] == ["Beer"]
    assert body["menuCategories"] == []
    assert body["activeOrders"] == []
    assert "taxRate" in body["settings"]


def test_health_reports_database_and_replication(client, db_session):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json["status"] == "healthy"
    assert response.json["checks"]["replication"] == {"leader_connected": False, "leader_since": None}


def test_system_init_seeds_operators_once(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0, first.output
    assert "Created 2 default operators" in first.output
    assert "Users already exist" in second.output
    db_session.expire_all()
    assert {u.username for u in db_session.query(User).all()} == {"Admin", "Kamarier"}
    assert db_session.get(Setting, "tableCount") is not None
