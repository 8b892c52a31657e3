"""
Cart manager for the cart embedded in a student account.

The cart is a JSON document on the "User" row. Every write recomputes the
derived totals and is checked against ``cart_version`` so that concurrent
writers cannot silently overwrite each other; a stale write fails with
ConflictError and leaves the stored cart untouched.

All lines belong to one vendor at a time.
"""
import logging
import uuid

from errors import ConflictError, NotFoundError, ValidationError
from models import (
    MAX_QUANTITY,
    Role,
    as_int,
    compute_cart_totals,
    empty_cart,
    line_total,
    money,
    validate_instructions,
    validate_notes,
    validate_quantity,
)
from catalog import is_vendor_open, vendor_info_of
from orders import create_order
from sqlQueries import (
    dump_json,
    execute_query,
    get_menu_items_by_ids,
    get_user,
    load_json,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

# Reconcile-on-read gives up persisting after this many version conflicts
MAX_RECONCILE_ATTEMPTS = 2


def _load_cart(conn, student_id):
    """
    Read the student's cart and the version it was read at.
    Returns:
        tuple: (cart dict, cart_version)
    Raises:
        NotFoundError: No such student account.
    """
    user = get_user(conn, student_id)
    if not user or user["role"] != Role.STUDENT:
        raise NotFoundError("User not found")
    cart = load_json(user["cart"]) or empty_cart(utcnow_iso())
    return cart, user["cart_version"]


def _save_cart(conn, student_id, cart, expected_version, commit=True):
    """
    Recompute totals and persist the cart if nobody wrote it since it was read.
    Args:
        conn (sqlite3.Connection): Active database connection.
        student_id (int): Owner's usr_id.
        cart (dict): Cart document with its 'items'.
        expected_version (int): cart_version observed when the cart was read.
        commit (bool): False when running inside a caller's transaction.
    Returns:
        dict: The saved cart.
    Raises:
        ConflictError: The cart was modified concurrently.
    """
    total_items, total_amount = compute_cart_totals(cart["items"])
    cart["total_items"] = total_items
    cart["total_amount"] = total_amount
    cart["last_updated"] = utcnow_iso()
    cur = execute_query(
        conn,
        '''
        UPDATE "User"
        SET cart = ?, cart_version = cart_version + 1, updated_at = ?
        WHERE usr_id = ? AND cart_version = ?
        ''',
        (dump_json(cart), cart["last_updated"], student_id, expected_version),
        commit=commit,
    )
    if cur.rowcount == 0:
        logger.warning("Concurrent cart modification for student %s", student_id)
        raise ConflictError("Your cart was changed by another request. Please refresh and try again.")
    return cart


def _summary(cart) -> dict:
    return {
        "total_items": cart["total_items"],
        "total_amount": cart["total_amount"],
        "items_count": len(cart["items"]),
    }


def _find_line(cart, line_id):
    for line in cart["items"]:
        if line["id"] == line_id:
            return line
    raise NotFoundError("Cart item not found")


def add_to_cart(conn, student_id, menu_item_id, quantity=1, special_instructions="") -> dict:
    """
    Add a menu item to the cart or raise the quantity of its existing line.
    Args:
        conn (sqlite3.Connection): Active database connection.
        student_id (int): Cart owner.
        menu_item_id (int): Item to add.
        quantity (int): Units to add, 1-50.
        special_instructions (str): Replaces the line's instructions.
    Returns:
        dict: total_items, total_amount and items_count.
    Raises:
        ValidationError: Bad quantity or the line would exceed the maximum.
        NotFoundError: Unknown menu item.
        ConflictError: Item unavailable, vendor closed, or the cart holds another vendor's items.
    """
    if menu_item_id is None:
        raise ValidationError("Menu item ID is required")
    menu_item_id = as_int(menu_item_id, "menu_item_id")
    quantity = validate_quantity(quantity)
    special_instructions = validate_instructions(special_instructions)

    item = get_menu_items_by_ids(conn, [menu_item_id]).get(menu_item_id)
    if not item:
        raise NotFoundError("Menu item not found")
    if not item["is_available"]:
        raise ConflictError("Menu item is not available")
    if not is_vendor_open(item):
        raise ConflictError("Vendor is currently closed")

    cart, version = _load_cart(conn, student_id)
    vendors = {line["vendor_id"] for line in cart["items"]}
    if vendors and item["vendor_id"] not in vendors:
        raise ConflictError("Cannot add items from different vendors. Please checkout current cart first.")

    existing = next((line for line in cart["items"] if line["menu_item_id"] == menu_item_id), None)
    if existing:
        new_quantity = existing["quantity"] + quantity
        if new_quantity > MAX_QUANTITY:
            raise ValidationError(f"Cannot add more than {MAX_QUANTITY} of the same item")
        existing["quantity"] = new_quantity
        existing["special_instructions"] = special_instructions
    else:
        cart["items"].append({
            "id": uuid.uuid4().hex,
            "menu_item_id": item["itm_id"],
            "vendor_id": item["vendor_id"],
            "name": item["name"],
            "price": item["price"],
            "quantity": quantity,
            "special_instructions": special_instructions,
            "added_at": utcnow_iso(),
        })

    cart = _save_cart(conn, student_id, cart, version)
    return _summary(cart)


def update_cart_line(conn, student_id, line_id, quantity=None, special_instructions=None) -> dict:
    """Partial update of one line's quantity and/or instructions."""
    if quantity is not None:
        quantity = validate_quantity(quantity)
    if special_instructions is not None:
        special_instructions = validate_instructions(special_instructions)

    cart, version = _load_cart(conn, student_id)
    line = _find_line(cart, line_id)
    if quantity is not None:
        line["quantity"] = quantity
    if special_instructions is not None:
        line["special_instructions"] = special_instructions

    cart = _save_cart(conn, student_id, cart, version)
    return _summary(cart)


def remove_cart_line(conn, student_id, line_id) -> dict:
    cart, version = _load_cart(conn, student_id)
    line = _find_line(cart, line_id)
    cart["items"].remove(line)
    cart = _save_cart(conn, student_id, cart, version)
    return _summary(cart)


def clear_cart(conn, student_id) -> dict:
    """Empty the cart. Succeeds on an already empty cart."""
    _, version = _load_cart(conn, student_id)
    cart = _save_cart(conn, student_id, empty_cart(utcnow_iso()), version)
    return _summary(cart)


def _line_is_orderable(item) -> bool:
    return item is not None and bool(item["is_available"]) and is_vendor_open(item)


def view_cart(conn, student_id) -> dict:
    """
    Return the cart grouped by vendor, dropping lines that can no longer be ordered.

    Lines whose menu item was deleted or made unavailable, or whose vendor is
    closed or inactive, are removed and the reconciled cart is persisted.
    Reconciliation is idempotent: once stored, a second read changes nothing.

    Args:
        conn (sqlite3.Connection): Active database connection.
        student_id (int): Cart owner.
    Returns:
        dict: items, items_by_vendor, total_items, total_amount, last_updated.
    """
    for _ in range(MAX_RECONCILE_ATTEMPTS):
        cart, version = _load_cart(conn, student_id)
        items = get_menu_items_by_ids(conn, {line["menu_item_id"] for line in cart["items"]})
        valid = [line for line in cart["items"] if _line_is_orderable(items.get(line["menu_item_id"]))]
        if len(valid) == len(cart["items"]):
            break
        removed = len(cart["items"]) - len(valid)
        cart["items"] = valid
        try:
            cart = _save_cart(conn, student_id, cart, version)
        except ConflictError:
            continue
        logger.info("Removed %d unavailable line(s) from cart of student %s", removed, student_id)
        break
    else:
        # Someone else keeps writing the cart; show the filtered view without storing it
        cart["total_items"], cart["total_amount"] = compute_cart_totals(cart["items"])

    by_vendor = {}
    for line in cart["items"]:
        item = items[line["menu_item_id"]]
        group = by_vendor.setdefault(str(line["vendor_id"]), {
            "vendor": {
                "id": line["vendor_id"],
                "name": item["vendor_name"],
                "shop_name": vendor_info_of(item).get("shop_name", ""),
                "is_open": is_vendor_open(item),
            },
            "items": [],
        })
        group["items"].append({
            "id": line["id"],
            "menu_item_id": line["menu_item_id"],
            "name": line["name"],
            "price": line["price"],
            "quantity": line["quantity"],
            "special_instructions": line["special_instructions"],
            "subtotal": money(line_total(line["price"], line["quantity"])),
            "menu_item": {
                "name": item["name"],
                "description": item["description"],
                "category": item["category"],
                "image": item["image"],
                "current_price": item["price"],
            },
        })

    return {
        "items": cart["items"],
        "items_by_vendor": by_vendor,
        "total_items": cart["total_items"],
        "total_amount": cart["total_amount"],
        "last_updated": cart.get("last_updated"),
    }


def checkout(conn, student_id, notes="", settings=None) -> dict:
    """
    Turn the cart into a pending order and empty the cart.

    All or nothing: every line must still be orderable, and the order insert
    and the cart clear commit in one transaction guarded by the cart version,
    so a concurrent second checkout of the same cart fails without creating
    an order. Lines are charged at the menu item's current price.

    Args:
        conn (sqlite3.Connection): Active database connection.
        student_id (int): Cart owner.
        notes (str): Optional order notes.
        settings (dict | None): From ``orders.order_settings``.
    Returns:
        dict: {'order': ..., 'repriced_items': [...]} where repriced_items lists
            lines whose current price differs from the cart snapshot.
    Raises:
        ValidationError: Empty cart or malformed notes.
        ConflictError: A line is no longer orderable, or the cart changed concurrently.
    """
    notes = validate_notes(notes)
    cart, version = _load_cart(conn, student_id)
    if not cart["items"]:
        raise ValidationError("Cart is empty")

    items = get_menu_items_by_ids(conn, {line["menu_item_id"] for line in cart["items"]})
    unavailable = [line["name"] for line in cart["items"]
                   if not _line_is_orderable(items.get(line["menu_item_id"]))]
    if unavailable:
        raise ConflictError(
            "Some items in your cart are no longer available. Please review your cart.",
            errors=unavailable,
        )

    repriced = [
        {
            "menu_item_id": line["menu_item_id"],
            "name": line["name"],
            "cart_price": line["price"],
            "current_price": items[line["menu_item_id"]]["price"],
        }
        for line in cart["items"]
        if items[line["menu_item_id"]]["price"] != line["price"]
    ]

    with conn:
        order = create_order(
            conn,
            student_id,
            cart["items"][0]["vendor_id"],
            [
                {
                    "menu_item_id": line["menu_item_id"],
                    "quantity": line["quantity"],
                    "special_instructions": line["special_instructions"],
                }
                for line in cart["items"]
            ],
            notes,
            settings,
        )
        _save_cart(conn, student_id, empty_cart(utcnow_iso()), version, commit=False)

    logger.info("Student %s checked out cart into order %s", student_id, order["id"])
    return {"order": order, "repriced_items": repriced}
