"""
Script to load demo data into the campus ordering database.

Creates:
- 3 vendors (Quick Bites is closed)
- 2 students on the institutional domain
- A menu for each vendor

Existing rows are removed first. Every account uses the password
``password123``.
"""

import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from accounts import register_user
from catalog import create_menu_item
from config import Config
from sqlQueries import close_connection, create_connection, execute_query, init_db

PASSWORD = "password123"

VENDORS = [
    {
        "name": "Ahmed Hassan",
        "email": "ahmed.cafe@example.com",
        "phone": "01712345678",
        "vendor_info": {
            "shop_name": "Campus Cafe",
            "description": "Best coffee and snacks on campus. Serving freshly brewed coffee and delicious snacks.",
            "is_open": True,
            "schedule": {"open_time": "08:00", "close_time": "22:00"},
        },
        "menu": [
            ("Espresso Coffee", "Strong and aromatic espresso shot made from premium coffee beans", 60, "beverages", 5),
            ("Cappuccino", "Classic cappuccino with steamed milk and foam art", 80, "beverages", 7),
            ("Chicken Sandwich", "Grilled chicken breast with fresh vegetables in toasted bread", 120, "snacks", 10),
            ("Chocolate Muffin", "Freshly baked chocolate chip muffin", 45, "desserts", 5),
            ("Club Sandwich", "Triple layer sandwich with chicken, lettuce and tomato", 180, "lunch", 12),
        ],
    },
    {
        "name": "Fatima Rahman",
        "email": "fatima.kitchen@example.com",
        "phone": "01712345679",
        "vendor_info": {
            "shop_name": "Deshi Kitchen",
            "description": "Authentic Bengali cuisine made with love and traditional recipes.",
            "is_open": True,
            "schedule": {"open_time": "11:00", "close_time": "23:00"},
        },
        "menu": [
            ("Chicken Biryani", "Aromatic basmati rice cooked with tender chicken and traditional spices", 200, "lunch", 20),
            ("Beef Curry", "Slow cooked beef curry with authentic Bengali spices", 250, "lunch", 25),
            ("Fish Fry", "Crispy fried fish with special masala coating", 150, "lunch", 15),
            ("Dal & Rice", "Traditional lentil curry served with steamed basmati rice", 80, "lunch", 10),
            ("Paratha", "Flaky layered flatbread served hot", 25, "breakfast", 8),
            ("Lassi", "Traditional yogurt drink, sweet or salty", 40, "beverages", 5),
        ],
    },
    {
        "name": "Karim Uddin",
        "email": "karim.fastfood@example.com",
        "phone": "01712345680",
        "vendor_info": {
            "shop_name": "Quick Bites",
            "description": "Fast food and quick snacks for busy students.",
            "is_open": False,
            "schedule": {"open_time": "09:00", "close_time": "21:00"},
        },
        "menu": [
            ("Beef Burger", "Juicy beef patty with cheese, lettuce and house sauce", 160, "snacks", 12),
            ("French Fries", "Crispy golden fries with a sprinkle of sea salt", 70, "snacks", 8),
        ],
    },
]

STUDENTS = [
    {"name": "Mohammad Rahman", "email": "mohammad.rahman@cuet.ac.bd", "phone": "01812345678", "student_id": "1904001"},
    {"name": "Ayesha Khatun", "email": "ayesha.khatun@cuet.ac.bd", "phone": "01812345679", "student_id": "1904002"},
]


def clear_data(conn):
    """Remove all existing rows (orders first, they reference users)."""
    for table in ('"Order"', '"MenuItem"', '"User"'):
        execute_query(conn, f'DELETE FROM {table}')
    print("✓ Cleared existing data")


def create_vendors(conn):
    """Create the demo vendors and their menus."""
    for shop in VENDORS:
        vendor = register_user(conn, {
            "name": shop["name"],
            "email": shop["email"],
            "password": PASSWORD,
            "role": "vendor",
            "phone": shop["phone"],
            "vendor_info": shop["vendor_info"],
        }, Config.STUDENT_EMAIL_DOMAIN)
        for name, description, price, category, prep in shop["menu"]:
            create_menu_item(conn, vendor["id"], {
                "name": name,
                "description": description,
                "price": price,
                "category": category,
                "preparation_time": prep,
            })
        state = "open" if shop["vendor_info"]["is_open"] else "closed"
        print(f"✓ Vendor {shop['vendor_info']['shop_name']} ({state}) with {len(shop['menu'])} items")


def create_students(conn):
    """Create the demo students."""
    for student in STUDENTS:
        register_user(conn, dict(student, password=PASSWORD, role="student"), Config.STUDENT_EMAIL_DOMAIN)
        print(f"✓ Student {student['email']}")


def seed(db_file=None):
    db_file = db_file or Config.DATABASE
    print(f"Seeding database: {db_file}")
    print("=" * 60)

    init_db(db_file)
    conn = create_connection(db_file)
    try:
        clear_data(conn)
        create_vendors(conn)
        create_students(conn)
    finally:
        close_connection(conn)

    print("=" * 60)
    print(f"Seeding completed! ✓  All accounts use the password: {PASSWORD}")


if __name__ == '__main__':
    seed(sys.argv[1] if len(sys.argv) > 1 else None)
