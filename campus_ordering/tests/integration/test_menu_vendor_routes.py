"""
Integration tests for the public catalog, vendor menu management and the
vendor shop endpoints.
"""


def _new_item(**overrides):
    payload = {
        "name": "Mango Lassi",
        "description": "Chilled yogurt drink blended with ripe mango",
        "price": 60,
        "category": "beverages",
        "preparation_time": 5,
    }
    payload.update(overrides)
    return payload


def test_public_menu_browse(client, seed_minimal_data):
    response = client.get("/api/menu")
    assert response.status_code == 200
    names = {item["name"] for item in response.get_json()["data"]["menu_items"]}
    assert "Beef Burger" not in names
    assert {"Chicken Biryani", "Cappuccino"} <= names

    filtered = client.get("/api/menu?category=beverages&max_price=50").get_json()["data"]
    assert [item["name"] for item in filtered["menu_items"]] == ["Lassi"]

    assert client.get("/api/menu?min_price=abc").status_code == 422


def test_categories(client, seed_minimal_data):
    categories = client.get("/api/menu/categories").get_json()["data"]["categories"]
    assert {"category": "lunch", "count": 2} in categories


def test_vendor_creates_updates_and_toggles_item(vendor_client, seed_minimal_data):
    created = vendor_client.post("/api/menu", json=_new_item())
    assert created.status_code == 201
    item = created.get_json()["data"]["menu_item"]

    duplicate = vendor_client.post("/api/menu", json=_new_item(name="MANGO lassi"))
    assert duplicate.status_code == 400

    invalid = vendor_client.post("/api/menu", json=_new_item(price=20000, category="brunch"))
    assert invalid.status_code == 422
    assert len(invalid.get_json()["errors"]) == 2

    updated = vendor_client.put(f"/api/menu/{item['id']}", json={"price": 65})
    assert updated.get_json()["data"]["menu_item"]["price"] == 65

    toggled = vendor_client.patch(f"/api/menu/{item['id']}/toggle-availability")
    assert toggled.get_json()["data"]["menu_item"]["is_available"] is False

    mine = vendor_client.get("/api/menu/my-items?available=false").get_json()["data"]
    assert [i["name"] for i in mine["menu_items"]] == ["Mango Lassi"]

    deleted = vendor_client.delete(f"/api/menu/{item['id']}")
    assert deleted.status_code == 200
    assert vendor_client.delete(f"/api/menu/{item['id']}").status_code == 404


def test_vendor_cannot_edit_other_vendors_item(vendor_client, seed_minimal_data):
    response = vendor_client.put(f"/api/menu/{seed_minimal_data['cappuccino_id']}", json={"price": 1})
    assert response.status_code == 404


def test_my_items_grouped_by_category(vendor_client):
    data = vendor_client.get("/api/menu/my-items").get_json()["data"]
    assert data["count"] == 3
    assert set(data["menu_by_category"]) == {"lunch", "beverages"}


def test_vendor_list_and_detail(client, seed_minimal_data):
    vendors = client.get("/api/vendors").get_json()["data"]
    assert vendors["count"] == 3

    open_only = client.get("/api/vendors?is_open=true").get_json()["data"]["vendors"]
    assert "Quick Bites" not in [v["shop_name"] for v in open_only]

    detail = client.get(f"/api/vendors/{seed_minimal_data['vendor_id']}")
    assert detail.status_code == 200
    assert detail.get_json()["data"]["vendor"]["shop_name"] == "Deshi Kitchen"

    assert client.get(f"/api/vendors/{seed_minimal_data['student_id']}").status_code == 404


def test_vendor_menu_listing(client, seed_minimal_data):
    data = client.get(f"/api/vendors/{seed_minimal_data['vendor_id']}/menu?category=lunch").get_json()["data"]
    assert [i["name"] for i in data["menu_items"]] == ["Beef Curry", "Chicken Biryani"]
    assert client.get("/api/vendors/999999/menu").status_code == 404


def test_vendor_closes_shop(vendor_client, client, seed_minimal_data):
    response = vendor_client.put("/api/vendors/profile", json={"is_open": False})
    assert response.status_code == 200
    assert response.get_json()["data"]["vendor_info"]["is_open"] is False

    names = {item["name"] for item in client.get("/api/menu").get_json()["data"]["menu_items"]}
    assert names == {"Cappuccino"}


def test_vendor_dashboard(vendor_client):
    response = vendor_client.get("/api/vendors/dashboard/stats")
    assert response.status_code == 200
    stats = response.get_json()["data"]["stats"]
    assert stats["menu"] == {"total": 3, "active": 3, "inactive": 0}
    assert stats["orders"]["total"] == 0


def test_vendor_profile_numeric_time_is_422(vendor_client):
    response = vendor_client.put("/api/vendors/profile", json={"schedule": {"open_time": 900}})
    assert response.status_code == 422
    assert response.get_json()["errors"] == ["Open time must be in HH:MM format"]
