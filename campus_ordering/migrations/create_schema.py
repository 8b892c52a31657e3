"""
Migration script to create the campus ordering schema.

Creates, if missing:
- "User" table (students with an embedded cart, vendors with shop info)
- "MenuItem" table
- "Order" table with its unique delivery codes
- Supporting indexes

Safe to run repeatedly.
"""

import os
import sqlite3
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config import Config
from sqlQueries import close_connection, create_connection, fetch_all, init_db


def verify_migration(db_file):
    """Print the tables and indexes now present."""
    conn = create_connection(db_file)
    try:
        rows = fetch_all(
            conn,
            "SELECT type, name FROM sqlite_master WHERE type IN ('table', 'index') AND name NOT LIKE 'sqlite_%' ORDER BY type, name",
        )
    finally:
        close_connection(conn)
    for row in rows:
        print(f"  {row['type']}: {row['name']}")


def migrate(db_file=None):
    """Run the complete migration."""
    db_file = db_file or Config.DATABASE

    print(f"Creating schema in database: {db_file}")
    print("=" * 60)

    try:
        init_db(db_file)
        print("✓ Schema ready")
        verify_migration(db_file)
    except sqlite3.Error as e:
        print(f"\n✗ Database error: {e}")
        sys.exit(1)

    print("=" * 60)
    print("Migration completed successfully! ✓")


if __name__ == '__main__':
    migrate(sys.argv[1] if len(sys.argv) > 1 else None)
