# campus_ordering/tests/conftest.py

import pytest

from Flask_app import app as flask_app
from accounts import register_user
from catalog import create_menu_item
from orders import order_settings, place_order
from sqlQueries import close_connection, create_connection, execute_query, init_db

PASSWORD = "secret123"
DOMAIN = "cuet.ac.bd"


def _vendor(conn, name, email, shop_name, phone, is_open=True):
    return register_user(conn, {
        "name": name,
        "email": email,
        "password": PASSWORD,
        "role": "vendor",
        "phone": phone,
        "vendor_info": {"shop_name": shop_name, "description": f"{shop_name} on campus", "is_open": is_open},
    }, DOMAIN)


def _student(conn, name, email, student_id, phone):
    return register_user(conn, {
        "name": name,
        "email": email,
        "password": PASSWORD,
        "role": "student",
        "phone": phone,
        "student_id": student_id,
    }, DOMAIN)


def _item(conn, vendor_id, name, price, category="lunch", prep=15):
    return create_menu_item(conn, vendor_id, {
        "name": name,
        "description": f"{name} freshly made to order",
        "price": price,
        "category": category,
        "preparation_time": prep,
    })


@pytest.fixture
def temp_db_path(tmp_path):
    """Fresh SQLite file with the schema applied."""
    db_file = str(tmp_path / "campus_ordering_test.db")
    init_db(db_file)
    return db_file


@pytest.fixture
def conn(temp_db_path):
    connection = create_connection(temp_db_path)
    yield connection
    close_connection(connection)


@pytest.fixture
def settings():
    return order_settings({"TAX_RATE": "0.05", "MIN_ESTIMATED_MINUTES": 15,
                           "MAX_ESTIMATED_MINUTES": 120, "DELIVERY_CODE_LENGTH": 8})


@pytest.fixture
def seed_minimal_data(conn):
    """
    Two open vendors, one closed vendor, two students and a few menu items.

    Deshi Kitchen: Chicken Biryani (120, 20 min), Lassi (40, 5 min), Beef Curry (250, 25 min)
    Campus Cafe:   Cappuccino (80, 7 min)
    Quick Bites:   Beef Burger (160), vendor closed
    """
    kitchen = _vendor(conn, "Fatima Rahman", "fatima.kitchen@example.com", "Deshi Kitchen", "01712345679")
    cafe = _vendor(conn, "Ahmed Hassan", "ahmed.cafe@example.com", "Campus Cafe", "01712345678")
    closed = _vendor(conn, "Karim Uddin", "karim.fastfood@example.com", "Quick Bites", "01712345680", is_open=False)
    student = _student(conn, "Mohammad Rahman", "mohammad.rahman@cuet.ac.bd", "1904001", "01812345678")
    other_student = _student(conn, "Ayesha Khatun", "ayesha.khatun@cuet.ac.bd", "1904002", "01812345679")

    biryani = _item(conn, kitchen["id"], "Chicken Biryani", 120, prep=20)
    lassi = _item(conn, kitchen["id"], "Lassi", 40, category="beverages", prep=5)
    curry = _item(conn, kitchen["id"], "Beef Curry", 250, prep=25)
    cappuccino = _item(conn, cafe["id"], "Cappuccino", 80, category="beverages", prep=7)
    burger = _item(conn, closed["id"], "Beef Burger", 160, category="snacks", prep=12)

    return {
        "vendor_id": kitchen["id"],
        "vendor_email": kitchen["email"],
        "other_vendor_id": cafe["id"],
        "other_vendor_email": cafe["email"],
        "closed_vendor_id": closed["id"],
        "student_id": student["id"],
        "student_email": student["email"],
        "other_student_id": other_student["id"],
        "other_student_email": other_student["email"],
        "biryani_id": biryani["id"],
        "lassi_id": lassi["id"],
        "curry_id": curry["id"],
        "cappuccino_id": cappuccino["id"],
        "burger_id": burger["id"],
    }


@pytest.fixture
def make_order(conn, seed_minimal_data, settings):
    """Place a direct order for the seeded student and optionally force its status."""
    def _make(items=None, status=None, student_id=None, vendor_id=None):
        order = place_order(conn, student_id or seed_minimal_data["student_id"], {
            "vendor_id": vendor_id or seed_minimal_data["vendor_id"],
            "items": items or [{"menu_item_id": seed_minimal_data["biryani_id"], "quantity": 1}],
        }, settings)
        if status:
            execute_query(conn, 'UPDATE "Order" SET status = ? WHERE ord_id = ?', (status, order["id"]))
            order["status"] = status
        return order
    return _make


@pytest.fixture
def app(temp_db_path):
    flask_app.config.update(TESTING=True, DATABASE=temp_db_path)
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email, password=PASSWORD):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture
def login_session(client, seed_minimal_data):
    """The default client, logged in as the seeded student."""
    return login(client, seed_minimal_data["student_email"])


@pytest.fixture
def student_client(app, seed_minimal_data):
    return login(app.test_client(), seed_minimal_data["student_email"])


@pytest.fixture
def vendor_client(app, seed_minimal_data):
    return login(app.test_client(), seed_minimal_data["vendor_email"])


@pytest.fixture
def login_as(app):
    """Factory for a fresh client logged in as any seeded account."""
    def _login_as(email):
        return login(app.test_client(), email)
    return _login_as
