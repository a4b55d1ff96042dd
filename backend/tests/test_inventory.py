from decimal import Decimal


def add_item(client, auth_headers, **overrides):
    body = {"name": "Copper pipe", "category": "Parts", "price": "12.50", "stock_quantity": 20, "reorder_point": 5, **overrides}
    response = client.post("/api/inventory/items", json=body, headers=auth_headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestInventoryItems:

    def test_add_creates_category(self, client, auth_headers):
        item = add_item(client, auth_headers)
        assert item["category_name"] == "Parts"
        assert item["is_low_stock"] is False

        categories = client.get("/api/inventory/categories", headers=auth_headers).json()
        assert [c["name"] for c in categories] == ["Parts"]

    def test_existing_category_is_reused(self, client, auth_headers):
        first = add_item(client, auth_headers)
        second = add_item(client, auth_headers, name="Elbow joint")
        assert first["category_id"] == second["category_id"]

    def test_low_stock_filter(self, client, auth_headers):
        add_item(client, auth_headers)
        add_item(client, auth_headers, name="Washer", stock_quantity=5)

        low = client.get("/api/inventory/items?low_stock=true", headers=auth_headers).json()
        assert [item["name"] for item in low] == ["Washer"]
        assert low[0]["is_low_stock"] is True

    def test_update_keeps_required_fields(self, client, auth_headers):
        item = add_item(client, auth_headers)
        response = client.put(
            f"/api/inventory/items/{item['id']}",
            json={"name": None, "stock_quantity": 2},
            headers=auth_headers,
        )
        assert response.status_code == 200
        updated = response.json()
        assert updated["name"] == "Copper pipe"
        assert updated["stock_quantity"] == 2
        assert updated["is_low_stock"] is True

    def test_delete(self, client, auth_headers):
        item = add_item(client, auth_headers)
        assert client.delete(f"/api/inventory/items/{item['id']}", headers=auth_headers).status_code == 204
        assert client.put(f"/api/inventory/items/{item['id']}", json={}, headers=auth_headers).status_code == 404

    def test_negative_price_is_rejected(self, client, auth_headers):
        response = client.post("/api/inventory/items", json={"name": "x", "price": "-1"}, headers=auth_headers)
        assert response.status_code == 422


class TestInventorySummary:

    def test_summary(self, client, auth_headers):
        add_item(client, auth_headers)
        add_item(client, auth_headers, name="Washer", price="0.25", stock_quantity=4)

        summary = client.get("/api/inventory/summary", headers=auth_headers).json()
        assert summary["total_items"] == 2
        assert summary["low_stock_count"] == 1
        assert Decimal(summary["total_value"]) == Decimal("251.00")
        assert summary["low_stock_items"][0]["name"] == "Washer"


class TestCategories:

    def test_duplicate_name(self, client, auth_headers):
        assert client.post("/api/inventory/categories", json={"name": "Tools"}, headers=auth_headers).status_code == 201
        response = client.post("/api/inventory/categories", json={"name": "Tools"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "A category with this name already exists"

    def test_rename(self, client, auth_headers):
        category = client.post("/api/inventory/categories", json={"name": "Tools"}, headers=auth_headers).json()
        response = client.put(f"/api/inventory/categories/{category['id']}", json={"name": "Hand tools"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Hand tools"
