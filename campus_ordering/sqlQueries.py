import json
import logging
import sqlite3
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS "User" (
        usr_id        INTEGER PRIMARY KEY AUTOINCREMENT,
        name          TEXT NOT NULL,
        email         TEXT NOT NULL UNIQUE,
        password_HS   TEXT NOT NULL,
        role          TEXT NOT NULL CHECK (role IN ('student', 'vendor')),
        phone         TEXT NOT NULL,
        student_id    TEXT UNIQUE,
        vendor_info   TEXT,
        cart          TEXT,
        cart_version  INTEGER NOT NULL DEFAULT 0,
        is_active     INTEGER NOT NULL DEFAULT 1,
        created_at    TEXT NOT NULL,
        updated_at    TEXT NOT NULL,
        CHECK ((role = 'student' AND student_id IS NOT NULL AND vendor_info IS NULL)
            OR (role = 'vendor' AND student_id IS NULL AND vendor_info IS NOT NULL))
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS "MenuItem" (
        itm_id            INTEGER PRIMARY KEY AUTOINCREMENT,
        vendor_id         INTEGER NOT NULL REFERENCES "User"(usr_id),
        name              TEXT NOT NULL,
        description       TEXT NOT NULL,
        price             REAL NOT NULL,
        category          TEXT NOT NULL,
        image             TEXT NOT NULL DEFAULT '',
        is_available      INTEGER NOT NULL DEFAULT 1,
        preparation_time  INTEGER NOT NULL DEFAULT 15,
        created_at        TEXT NOT NULL,
        updated_at        TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS "Order" (
        ord_id          INTEGER PRIMARY KEY AUTOINCREMENT,
        student_id      INTEGER NOT NULL REFERENCES "User"(usr_id),
        vendor_id       INTEGER NOT NULL REFERENCES "User"(usr_id),
        items           TEXT NOT NULL,
        subtotal        REAL NOT NULL,
        tax             REAL NOT NULL,
        delivery_fee    REAL NOT NULL DEFAULT 0,
        total_amount    REAL NOT NULL,
        status          TEXT NOT NULL DEFAULT 'pending',
        payment_status  TEXT NOT NULL DEFAULT 'pending',
        payment_id      TEXT NOT NULL DEFAULT '',
        estimated_time  INTEGER NOT NULL DEFAULT 30,
        notes           TEXT NOT NULL DEFAULT '',
        cancel_reason   TEXT,
        delivery_code   TEXT NOT NULL UNIQUE,
        version         INTEGER NOT NULL DEFAULT 0,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL,
        completed_at    TEXT
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_user_role_active ON "User"(role, is_active)',
    'CREATE INDEX IF NOT EXISTS idx_menuitem_vendor_category ON "MenuItem"(vendor_id, category)',
    'CREATE INDEX IF NOT EXISTS idx_order_student_created ON "Order"(student_id, created_at)',
    'CREATE INDEX IF NOT EXISTS idx_order_vendor_status ON "Order"(vendor_id, status, created_at)',
]


def to_iso(moment) -> str:
    """
    Normalise a datetime to the stored timestamp format.
    Stored timestamps are UTC with fixed microsecond precision so string
    comparison is chronological.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utcnow_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def dump_json(value) -> str:
    return json.dumps(value, separators=(",", ":"))


def load_json(raw, default=None):
    if not raw:
        return default
    return json.loads(raw)


def create_connection(db_file: str):
    """
    Create and return a connection to the specified SQLite database.
    Args:
        db_file (str): Path to the SQLite database file.
    Returns:
        sqlite3.Connection: Connection with name-addressable rows and foreign keys on.
    """
    conn = sqlite3.connect(db_file, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def close_connection(conn):
    """
    Close an existing SQLite database connection.
    Args:
        conn (sqlite3.Connection): Connection object to close.
    Returns:
        None
    """
    if conn:
        conn.close()


def init_db(db_file: str):
    """
    Create all tables and indexes if they do not exist yet.
    Args:
        db_file (str): Path to the SQLite database file.
    Returns:
        None
    """
    conn = create_connection(db_file)
    try:
        with conn:
            for statement in SCHEMA:
                conn.execute(statement)
    finally:
        close_connection(conn)
    logger.info("Database schema ready at %s", db_file)


def execute_query(conn, query: str, params=(), commit: bool = True):
    """
    Execute a single SQL query with optional parameters.
    Args:
        conn (sqlite3.Connection): Active database connection.
        query (str): SQL query string to execute.
        params (tuple, optional): Parameters to safely substitute into the query.
        commit (bool): Commit immediately. Pass False inside a ``with conn:`` transaction.
    Returns:
        sqlite3.Cursor: Cursor of the executed statement.
    Raises:
        sqlite3.Error: Propagated to the caller after logging.
    """
    try:
        cur = conn.cursor()
        cur.execute(query, params)
        if commit:
            conn.commit()
        return cur
    except sqlite3.IntegrityError:
        # Unique-constraint violations are part of normal control flow
        raise
    except sqlite3.Error:
        logger.exception("Query failed: %s", " ".join(query.split())[:200])
        raise


def fetch_all(conn, query: str, params=()):
    """
    Execute a query and return all fetched rows.
    Args:
        conn (sqlite3.Connection): Active database connection.
        query (str): SQL query string to execute.
        params (tuple, optional): Parameters to safely substitute into the query.
    Returns:
        list[sqlite3.Row]: Result rows, empty when nothing matched.
    """
    cur = execute_query(conn, query, params, commit=False)
    return cur.fetchall()


def fetch_one(conn, query: str, params=()):
    """
    Execute a query and return the first result row.
    Args:
        conn (sqlite3.Connection): Active database connection.
        query (str): SQL query string to execute.
        params (tuple, optional): Parameters to safely substitute into the query.
    Returns:
        sqlite3.Row | None: The first row, or None if no result.
    """
    cur = execute_query(conn, query, params, commit=False)
    return cur.fetchone()


# ============================================================================
# Shared lookups
# ============================================================================

def get_user(conn, usr_id: int):
    return fetch_one(conn, 'SELECT * FROM "User" WHERE usr_id = ?', (usr_id,))


def get_user_by_email(conn, email: str):
    return fetch_one(conn, 'SELECT * FROM "User" WHERE email = ?', (email,))


def get_active_vendor(conn, vendor_id: int):
    """
    Fetch a vendor account that is still active.
    Args:
        conn (sqlite3.Connection): Active database connection.
        vendor_id (int): usr_id of the vendor.
    Returns:
        sqlite3.Row | None: The vendor row, or None if missing, inactive or not a vendor.
    """
    return fetch_one(
        conn,
        '''
        SELECT * FROM "User"
        WHERE usr_id = ? AND role = 'vendor' AND is_active = 1
        ''',
        (vendor_id,),
    )


def get_menu_items_by_ids(conn, ids):
    """
    Load menu items together with their vendor's account row fields.
    Args:
        conn (sqlite3.Connection): Active database connection.
        ids (Iterable[int]): Menu item ids.
    Returns:
        dict: Mapping itm_id -> sqlite3.Row with item columns plus the
            vendor's name, vendor_info and is_active.
    """
    ids = list(ids)
    if not ids:
        return {}
    qmarks = ",".join(["?"] * len(ids))
    rows = fetch_all(
        conn,
        f'''
        SELECT m.*, u.name AS vendor_name, u.vendor_info AS vendor_info, u.is_active AS is_active
        FROM "MenuItem" m
        JOIN "User" u ON u.usr_id = m.vendor_id
        WHERE m.itm_id IN ({qmarks})
        ''',
        tuple(ids),
    )
    return {row["itm_id"]: row for row in rows}
