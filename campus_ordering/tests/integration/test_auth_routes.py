"""
Integration tests for registration, login, sessions and the response envelope.
"""
import pytest

from sqlQueries import create_connection, close_connection, execute_query


def _assert_envelope(body, success):
    assert body["success"] is success
    assert isinstance(body["message"], str)
    assert "timestamp" in body


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    _assert_envelope(response.get_json(), True)


def test_register_student_logs_in(client):
    response = client.post("/api/auth/register", json={
        "name": "Rafiq Islam",
        "email": "rafiq.islam@cuet.ac.bd",
        "password": "secret123",
        "role": "student",
        "phone": "01912345678",
        "student_id": "1904099",
    })
    assert response.status_code == 201
    body = response.get_json()
    _assert_envelope(body, True)
    assert body["data"]["user"]["role"] == "student"

    profile = client.get("/api/auth/profile")
    assert profile.status_code == 200
    assert profile.get_json()["data"]["user"]["email"] == "rafiq.islam@cuet.ac.bd"


def test_register_validation_errors_are_422_list(client):
    response = client.post("/api/auth/register", json={
        "name": "Rafiq",
        "email": "rafiq@gmail.com",
        "password": "secret123",
        "role": "student",
        "phone": "01912345678",
        "student_id": "1904099",
    })
    assert response.status_code == 422
    body = response.get_json()
    _assert_envelope(body, False)
    assert body["message"] == "Validation failed"
    assert isinstance(body["errors"], list) and body["errors"]


def test_register_duplicate_email_is_400(client, seed_minimal_data):
    response = client.post("/api/auth/register", json={
        "name": "Someone",
        "email": seed_minimal_data["vendor_email"],
        "password": "secret123",
        "role": "vendor",
        "phone": "01712340000",
        "vendor_info": {"shop_name": "Another Shop"},
    })
    assert response.status_code == 400
    assert response.get_json()["message"] == "User already exists with this email address"


def test_login_and_logout(client, seed_minimal_data):
    response = client.post("/api/auth/login", json={
        "email": seed_minimal_data["student_email"], "password": "secret123",
    })
    assert response.status_code == 200
    assert response.get_json()["data"]["user"]["id"] == seed_minimal_data["student_id"]

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/profile").status_code == 401


def test_login_wrong_password_is_401(client, seed_minimal_data):
    response = client.post("/api/auth/login", json={
        "email": seed_minimal_data["student_email"], "password": "nope",
    })
    assert response.status_code == 401
    _assert_envelope(response.get_json(), False)


def test_protected_route_without_session_is_401(client):
    response = client.get("/api/cart")
    assert response.status_code == 401
    assert response.get_json()["message"] == "Access denied. Please log in."


def test_deactivated_account_loses_session(login_session, seed_minimal_data, temp_db_path):
    conn = create_connection(temp_db_path)
    try:
        execute_query(conn, 'UPDATE "User" SET is_active = 0 WHERE usr_id = ?', (seed_minimal_data["student_id"],))
    finally:
        close_connection(conn)
    assert login_session.get("/api/cart").status_code == 401


@pytest.mark.parametrize("method,path", [
    ("get", "/api/cart"),
    ("post", "/api/cart/checkout"),
    ("post", "/api/orders"),
    ("get", "/api/orders/my-orders"),
])
def test_vendor_cannot_use_student_routes(vendor_client, method, path):
    response = getattr(vendor_client, method)(path, json={})
    assert response.status_code == 403
    assert response.get_json()["message"] == "Access denied. Students only."


@pytest.mark.parametrize("method,path", [
    ("get", "/api/menu/my-items"),
    ("post", "/api/menu"),
    ("get", "/api/orders/vendor/incoming"),
    ("get", "/api/vendors/dashboard/stats"),
])
def test_student_cannot_use_vendor_routes(student_client, method, path):
    response = getattr(student_client, method)(path, json={})
    assert response.status_code == 403


def test_update_profile(login_session):
    response = login_session.put("/api/auth/profile", json={"name": "Mohammad R."})
    assert response.status_code == 200
    assert response.get_json()["data"]["user"]["name"] == "Mohammad R."


def test_unknown_route_and_wrong_method_use_envelope(client):
    missing = client.get("/api/nowhere")
    assert missing.status_code == 404
    _assert_envelope(missing.get_json(), False)

    wrong = client.delete("/api/health")
    assert wrong.status_code == 405
    _assert_envelope(wrong.get_json(), False)


def test_non_object_body_is_validation_error(login_session):
    response = login_session.post("/api/cart/add", json=[1, 2, 3])
    assert response.status_code == 422


def test_unexpected_error_is_sanitized(client, monkeypatch):
    import catalog

    def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(catalog, "list_categories", boom)
    response = client.get("/api/menu/categories")
    assert response.status_code == 500
    body = response.get_json()
    assert body["message"] == "Something went wrong. Please try again."
    assert "disk on fire" not in response.get_data(as_text=True)


@pytest.mark.parametrize("vendor_info", [
    {"shop_name": "Tea Stall", "schedule": "9 to 5"},
    {"shop_name": "Tea Stall", "schedule": {"close_time": 2200}},
    {"shop_name": "Tea Stall", "is_open": "false"},
])
def test_register_vendor_malformed_shop_fields_is_422(client, vendor_info):
    response = client.post("/api/auth/register", json={
        "name": "Nusrat Jahan",
        "email": "nusrat.tea@example.com",
        "password": "secret123",
        "role": "vendor",
        "phone": "01512345678",
        "vendor_info": vendor_info,
    })
    assert response.status_code == 422
    _assert_envelope(response.get_json(), False)
