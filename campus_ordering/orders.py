"""
Order lifecycle manager.

Direct order placement and cart checkout both funnel into ``create_order``,
which re-reads every menu item at its live price, freezes the line snapshot
and assigns a globally unique delivery code. Vendors then move the order
through ``OrderStatus.TRANSITIONS``; students may cancel while it is still
pending or confirmed.

Callers own the transaction: ``create_order`` never commits, so checkout can
insert the order and clear the cart atomically inside one ``with conn:`` block.
"""
import logging
import math
import secrets
import sqlite3
import string
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from config import Config
from errors import (
    AuthorizationError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from models import (
    MAX_PREPARATION_TIME,
    MIN_PREPARATION_TIME,
    OrderStatus,
    PaymentStatus,
    Role,
    as_int,
    compute_tax,
    line_total,
    money,
    validate_instructions,
    validate_notes,
    validate_quantity,
)
from catalog import is_vendor_open, vendor_info_of
from sqlQueries import (
    dump_json,
    execute_query,
    fetch_all,
    fetch_one,
    get_active_vendor,
    load_json,
    to_iso,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

DELIVERY_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 5
DEFAULT_CANCEL_REASON = 'Cancelled by student'
# Extra minutes for each unit beyond the first
MINUTES_PER_EXTRA_UNIT = 2

ORDER_SELECT = '''
    SELECT o.*,
           s.name AS student_name, s.email AS student_email,
           s.student_id AS student_number, s.phone AS student_phone,
           v.name AS vendor_name, v.vendor_info AS vendor_info
    FROM "Order" o
    JOIN "User" s ON s.usr_id = o.student_id
    JOIN "User" v ON v.usr_id = o.vendor_id
'''


def order_settings(config=None) -> dict:
    """
    Business settings for order creation, read from a Flask config mapping.
    Args:
        config (Mapping | None): Usually ``app.config``; falls back to ``Config``.
    Returns:
        dict: tax_rate, min_eta, max_eta and code_length.
    """
    config = config or {}
    return {
        "tax_rate": config.get("TAX_RATE", Config.TAX_RATE),
        "min_eta": int(config.get("MIN_ESTIMATED_MINUTES", Config.MIN_ESTIMATED_MINUTES)),
        "max_eta": int(config.get("MAX_ESTIMATED_MINUTES", Config.MAX_ESTIMATED_MINUTES)),
        "code_length": int(config.get("DELIVERY_CODE_LENGTH", Config.DELIVERY_CODE_LENGTH)),
    }


def generate_delivery_code(length: int = 8) -> str:
    return "".join(secrets.choice(DELIVERY_CODE_ALPHABET) for _ in range(length))


def estimate_preparation_time(lines, min_eta, max_eta) -> int:
    """
    Estimated minutes until the order is ready.

    The slowest item sets the base and every unit beyond the first adds
    MINUTES_PER_EXTRA_UNIT; the result is clamped to [min_eta, max_eta].

    Args:
        lines (list[dict]): Each with 'preparation_time' and 'quantity'.
        min_eta (int): Configured floor.
        max_eta (int): Configured ceiling.
    Returns:
        int: Minutes.

    Example:
        >>> estimate_preparation_time([{"preparation_time": 20, "quantity": 3}], 15, 120)
        24
    """
    if not lines:
        return min_eta
    slowest = max(int(line["preparation_time"]) for line in lines)
    units = sum(int(line["quantity"]) for line in lines)
    estimate = slowest + MINUTES_PER_EXTRA_UNIT * (units - 1)
    return max(min_eta, min(max_eta, estimate))


def serialize_order(row) -> dict:
    """
    JSON view of an order row selected with ORDER_SELECT.
    Args:
        row (sqlite3.Row): Order row joined with its student and vendor.
    Returns:
        dict: Order fields with nested 'student' and 'vendor' summaries.
    """
    vendor_info = vendor_info_of(row)
    return {
        "id": row["ord_id"],
        "student_id": row["student_id"],
        "vendor_id": row["vendor_id"],
        "student": {
            "id": row["student_id"],
            "name": row["student_name"],
            "email": row["student_email"],
            "student_id": row["student_number"],
            "phone": row["student_phone"],
        },
        "vendor": {
            "id": row["vendor_id"],
            "name": row["vendor_name"],
            "shop_name": vendor_info.get("shop_name", ""),
        },
        "items": load_json(row["items"], []),
        "subtotal": row["subtotal"],
        "tax": row["tax"],
        "delivery_fee": row["delivery_fee"],
        "total_amount": row["total_amount"],
        "status": row["status"],
        "payment_status": row["payment_status"],
        "payment_id": row["payment_id"],
        "estimated_time": row["estimated_time"],
        "notes": row["notes"],
        "cancel_reason": row["cancel_reason"],
        "delivery_code": row["delivery_code"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "completed_at": row["completed_at"],
    }


def load_order(conn, ord_id) -> dict:
    row = fetch_one(conn, ORDER_SELECT + ' WHERE o.ord_id = ?', (ord_id,))
    if not row:
        raise NotFoundError("Order not found")
    return serialize_order(row)


def _normalise_requested_items(items):
    if not isinstance(items, list) or not items:
        raise ValidationError("Order items are required")
    normalised = []
    for raw in items:
        if not isinstance(raw, dict) or raw.get("menu_item_id") is None:
            raise ValidationError("Invalid item data: menu_item_id and quantity are required")
        normalised.append({
            "menu_item_id": as_int(raw["menu_item_id"], "menu_item_id"),
            "quantity": validate_quantity(raw.get("quantity")),
            "special_instructions": validate_instructions(raw.get("special_instructions")),
        })
    return normalised


def create_order(conn, student_id, vendor_id, items, notes="", settings=None) -> dict:
    """
    Create a pending order from a list of requested lines.

    Every line is re-fetched by id scoped to the vendor and priced at the
    item's current price. Does not commit; wrap the call in ``with conn:``.

    Args:
        conn (sqlite3.Connection): Active database connection.
        student_id (int): Ordering student's usr_id.
        vendor_id (int): Vendor the lines belong to.
        items (list[dict]): menu_item_id, quantity, optional special_instructions.
        notes (str): Optional order notes.
        settings (dict | None): From ``order_settings``.
    Returns:
        dict: The serialized order.
    Raises:
        ValidationError: Malformed lines or notes.
        NotFoundError: Vendor missing or inactive, or an item not on its menu.
        ConflictError: Vendor closed or an item unavailable.
        InternalError: No unique delivery code could be allocated.
    """
    settings = settings or order_settings()
    if vendor_id is None:
        raise ValidationError("Vendor ID is required")
    vendor_id = as_int(vendor_id, "vendor_id")
    requested = _normalise_requested_items(items)
    notes = validate_notes(notes)

    vendor = get_active_vendor(conn, vendor_id)
    if not vendor:
        raise NotFoundError("Vendor not found or inactive")
    if not is_vendor_open(vendor):
        raise ConflictError("Vendor is currently closed")

    frozen = []
    workload = []
    subtotal = Decimal("0")
    for line in requested:
        item = fetch_one(
            conn,
            'SELECT * FROM "MenuItem" WHERE itm_id = ? AND vendor_id = ?',
            (line["menu_item_id"], vendor_id),
        )
        if not item:
            raise NotFoundError(f"Menu item {line['menu_item_id']} not found for this vendor")
        if not item["is_available"]:
            raise ConflictError(f"Menu item {item['name']} is not available")

        amount = line_total(item["price"], line["quantity"])
        subtotal += amount
        frozen.append({
            "menu_item_id": item["itm_id"],
            "name": item["name"],
            "price": item["price"],
            "quantity": line["quantity"],
            "special_instructions": line["special_instructions"],
            "subtotal": money(amount),
        })
        workload.append({"preparation_time": item["preparation_time"], "quantity": line["quantity"]})

    tax = compute_tax(subtotal, settings["tax_rate"])
    delivery_fee = 0  # pickup only
    total = subtotal + tax + delivery_fee
    estimated = estimate_preparation_time(workload, settings["min_eta"], settings["max_eta"])

    now = utcnow_iso()
    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        code = generate_delivery_code(settings["code_length"])
        try:
            cur = execute_query(
                conn,
                '''
                INSERT INTO "Order"
                    (student_id, vendor_id, items, subtotal, tax, delivery_fee, total_amount,
                     status, payment_status, estimated_time, notes, delivery_code, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''',
                (student_id, vendor_id, dump_json(frozen), money(subtotal), tax, delivery_fee,
                 money(total), OrderStatus.PENDING, PaymentStatus.PENDING, estimated, notes,
                 code, now, now),
                commit=False,
            )
            break
        except sqlite3.IntegrityError as e:
            if "delivery_code" not in str(e):
                raise
            logger.warning("Delivery code collision on attempt %d, regenerating", attempt)
    else:
        raise InternalError("Could not allocate a delivery code. Please try again.")

    logger.info(
        "Order %s created for student %s at vendor %s (total=%s, code=%s)",
        cur.lastrowid, student_id, vendor_id, money(total), code,
    )
    return load_order(conn, cur.lastrowid)


def place_order(conn, student_id, payload, settings=None) -> dict:
    """Direct order placement: vendor_id, items[], notes."""
    with conn:
        return create_order(
            conn,
            student_id,
            payload.get("vendor_id"),
            payload.get("items"),
            payload.get("notes") or "",
            settings,
        )


def _write_order(conn, row, **changes):
    """
    Version-checked order update.
    Raises:
        ConflictError: The order changed since ``row`` was read.
    """
    changes["updated_at"] = utcnow_iso()
    assignments = ", ".join(f"{column} = ?" for column in changes)
    cur = execute_query(
        conn,
        f'UPDATE "Order" SET {assignments}, version = version + 1 WHERE ord_id = ? AND version = ?',
        tuple(changes.values()) + (row["ord_id"], row["version"]),
    )
    if cur.rowcount == 0:
        logger.warning("Concurrent update detected on order %s", row["ord_id"])
        raise ConflictError("Order was updated by another request. Please refresh and try again.")


def update_order_status(conn, vendor_id, ord_id, new_status, estimated_time=None) -> dict:
    """
    Advance an order along the fulfilment path.
    Args:
        conn (sqlite3.Connection): Active database connection.
        vendor_id (int): Vendor performing the update; must own the order.
        ord_id (int): Order id.
        new_status (str): Requested status.
        estimated_time (int | None): Optional new estimate in minutes.
    Returns:
        dict: The serialized order.
    """
    if not new_status:
        raise ValidationError("Status is required")
    if not OrderStatus.is_valid_status(new_status):
        raise ValidationError(
            "Invalid status. Valid statuses: " + ", ".join(OrderStatus.VENDOR_SETTABLE)
        )
    if estimated_time is not None:
        estimated_time = as_int(estimated_time, "Estimated time")
        if estimated_time < MIN_PREPARATION_TIME or estimated_time > MAX_PREPARATION_TIME:
            raise ValidationError(
                f"Estimated time must be between {MIN_PREPARATION_TIME} and {MAX_PREPARATION_TIME} minutes"
            )

    order = fetch_one(
        conn,
        'SELECT * FROM "Order" WHERE ord_id = ? AND vendor_id = ?',
        (ord_id, vendor_id),
    )
    if not order:
        raise NotFoundError("Order not found")

    current = order["status"]
    if current == OrderStatus.CANCELLED:
        raise ConflictError("Cannot update cancelled order")
    if new_status not in OrderStatus.VENDOR_SETTABLE or not OrderStatus.is_valid_transition(current, new_status):
        raise ConflictError(f"Invalid status progression from {current} to {new_status}")

    changes = {"status": new_status}
    if estimated_time is not None:
        changes["estimated_time"] = estimated_time
    if new_status == OrderStatus.COMPLETED:
        changes["completed_at"] = utcnow_iso()
    _write_order(conn, order, **changes)

    logger.info("Order %s status changed from %s to %s", ord_id, current, new_status)
    return load_order(conn, ord_id)


def cancel_order(conn, student_id, ord_id, reason=None) -> dict:
    """
    Student cancellation, allowed only while pending or confirmed.
    Raises:
        NotFoundError: Order missing or owned by another student.
        ConflictError: Order already past the cancellable stages.
    """
    reason = validate_notes(reason, "Cancel reason") or DEFAULT_CANCEL_REASON
    order = fetch_one(
        conn,
        'SELECT * FROM "Order" WHERE ord_id = ? AND student_id = ?',
        (ord_id, student_id),
    )
    if not order:
        raise NotFoundError("Order not found")
    if order["status"] not in OrderStatus.CANCELLABLE:
        raise ConflictError("Order cannot be cancelled at this stage")

    _write_order(conn, order, status=OrderStatus.CANCELLED, cancel_reason=reason)
    logger.info("Order %s cancelled by student %s: %s", ord_id, student_id, reason)
    return load_order(conn, ord_id)


def update_payment_status(conn, vendor_id, ord_id, payment_status, payment_id=None) -> dict:
    """Move the payment track along ``PaymentStatus.TRANSITIONS``."""
    if not PaymentStatus.is_valid_status(payment_status):
        raise ValidationError(
            "Invalid payment status. Valid statuses: " + ", ".join(PaymentStatus.VALID_STATUSES)
        )
    order = fetch_one(
        conn,
        'SELECT * FROM "Order" WHERE ord_id = ? AND vendor_id = ?',
        (ord_id, vendor_id),
    )
    if not order:
        raise NotFoundError("Order not found")
    current = order["payment_status"]
    if not PaymentStatus.is_valid_transition(current, payment_status):
        raise ConflictError(f"Invalid payment status change from {current} to {payment_status}")

    changes = {"payment_status": payment_status}
    if payment_id is not None:
        changes["payment_id"] = str(payment_id).strip()
    _write_order(conn, order, **changes)
    logger.info("Order %s payment status changed from %s to %s", ord_id, current, payment_status)
    return load_order(conn, ord_id)


# ---------------------- Queries ----------------------

def _check_access(user, order):
    if user["role"] == Role.STUDENT and order["student_id"] != user["usr_id"]:
        raise AuthorizationError()
    if user["role"] == Role.VENDOR and order["vendor_id"] != user["usr_id"]:
        raise AuthorizationError()


def get_order_for_user(conn, user, ord_id) -> dict:
    """Order detail, visible only to its own student or vendor."""
    order = load_order(conn, ord_id)
    _check_access(user, order)
    return order


def search_by_delivery_code(conn, user, code) -> dict:
    """
    Exact, case-insensitive lookup by delivery code.
    Raises:
        ValidationError: No code given.
        NotFoundError: No order carries the code.
        AuthorizationError: The caller is neither the order's student nor its vendor.
    """
    code = (code or "").strip()
    if not code:
        raise ValidationError("Delivery code is required")
    row = fetch_one(conn, ORDER_SELECT + ' WHERE o.delivery_code = ?', (code.upper(),))
    if not row:
        raise NotFoundError("Order not found with this delivery code")
    order = serialize_order(row)
    _check_access(user, order)
    return order


def list_student_orders(conn, student_id, status=None, page=1, limit=10) -> dict:
    """
    A student's orders, newest first, paginated.
    Returns:
        dict: {'orders': [...], 'pagination': {page, limit, total, pages}}
    """
    page = max(as_int(page, "page"), 1)
    limit = min(max(as_int(limit, "limit"), 1), 100)
    where = ' WHERE o.student_id = ?'
    params = [student_id]
    if status:
        if not OrderStatus.is_valid_status(status):
            raise ValidationError(f"Invalid status: {status}")
        where += ' AND o.status = ?'
        params.append(status)

    total = fetch_one(conn, 'SELECT COUNT(*) AS n FROM "Order" o' + where, tuple(params))["n"]
    rows = fetch_all(
        conn,
        ORDER_SELECT + where + ' ORDER BY o.created_at DESC, o.ord_id DESC LIMIT ? OFFSET ?',
        tuple(params) + (limit, (page - 1) * limit),
    )
    return {
        "orders": [serialize_order(r) for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


def list_vendor_orders(conn, vendor_id, status=None, day=None) -> dict:
    """
    Incoming orders for a vendor, newest first, also grouped by status.
    Args:
        conn (sqlite3.Connection): Active database connection.
        vendor_id (int): The vendor's usr_id.
        status (str | None): Exact status filter.
        day (str | None): 'YYYY-MM-DD' (UTC) to restrict to one day.
    Returns:
        dict: orders, orders_by_status and total.
    """
    where = ' WHERE o.vendor_id = ?'
    params = [vendor_id]
    if status:
        if not OrderStatus.is_valid_status(status):
            raise ValidationError(f"Invalid status: {status}")
        where += ' AND o.status = ?'
        params.append(status)
    if day:
        try:
            start = datetime.combine(date.fromisoformat(day), datetime.min.time(), tzinfo=timezone.utc)
        except ValueError:
            raise ValidationError("Date must be in YYYY-MM-DD format")
        where += ' AND o.created_at >= ? AND o.created_at < ?'
        params.extend([to_iso(start), to_iso(start + timedelta(days=1))])

    rows = fetch_all(conn, ORDER_SELECT + where + ' ORDER BY o.created_at DESC, o.ord_id DESC', tuple(params))
    orders = [serialize_order(r) for r in rows]
    by_status = {}
    for order in orders:
        by_status.setdefault(order["status"], []).append(order)
    return {"orders": orders, "orders_by_status": by_status, "total": len(orders)}
