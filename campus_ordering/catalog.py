"""
Catalog store: vendor-owned menu items and public vendor browsing.

Menu items are created, edited and deleted by their owning vendor only.
Names are unique per vendor (case-insensitive) and an item cannot be deleted
while a non-terminal order still references it.
"""
import logging

from errors import ConflictError, NotFoundError, ValidationError
from models import (
    DEFAULT_PREPARATION_TIME,
    MAX_PREPARATION_TIME,
    MAX_PRICE,
    MIN_PREPARATION_TIME,
    MIN_PRICE,
    MenuCategory,
    OrderStatus,
    as_int,
    as_number,
    money,
)
from sqlQueries import (
    execute_query,
    fetch_all,
    fetch_one,
    get_active_vendor,
    load_json,
    utcnow_iso,
)

logger = logging.getLogger(__name__)


def vendor_info_of(row) -> dict:
    return load_json(row["vendor_info"], {}) or {}


def is_vendor_open(vendor_row) -> bool:
    """
    A vendor can take orders when the account is active and the shop is open.
    Args:
        vendor_row (sqlite3.Row | None): A "User" row of a vendor.
    Returns:
        bool: True if the vendor currently accepts orders.
    """
    if vendor_row is None or not vendor_row["is_active"]:
        return False
    return bool(vendor_info_of(vendor_row).get("is_open"))


def serialize_menu_item(row) -> dict:
    return {
        "id": row["itm_id"],
        "vendor_id": row["vendor_id"],
        "name": row["name"],
        "description": row["description"],
        "price": row["price"],
        "category": row["category"],
        "image": row["image"],
        "is_available": bool(row["is_available"]),
        "preparation_time": row["preparation_time"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def group_by_category(items):
    grouped = {}
    for item in items:
        grouped.setdefault(item["category"], []).append(item)
    return grouped


def _validate_menu_fields(payload, partial=False):
    """
    Validate and normalise menu item input.
    Args:
        payload (dict): Raw request fields.
        partial (bool): When True only the supplied fields are checked.
    Returns:
        dict: Normalised column values for the supplied fields.
    Raises:
        ValidationError: With every problem found.
    """
    errors = []
    fields = {}

    name = payload.get("name")
    if name is not None or not partial:
        name = name.strip() if isinstance(name, str) else ""
        if len(name) < 2 or len(name) > 100:
            errors.append("Item name must be between 2 and 100 characters")
        fields["name"] = name

    description = payload.get("description")
    if description is not None or not partial:
        description = description.strip() if isinstance(description, str) else ""
        if len(description) < 10 or len(description) > 500:
            errors.append("Description must be between 10 and 500 characters")
        fields["description"] = description

    price = payload.get("price")
    if price is not None or not partial:
        try:
            price = as_number(price, "Price")
            if price < MIN_PRICE or price > MAX_PRICE:
                errors.append(f"Price must be between {MIN_PRICE} and {MAX_PRICE:,}")
            fields["price"] = money(price)
        except ValidationError:
            errors.append("Price is required and must be a number")

    category = payload.get("category")
    if category is not None or not partial:
        if not MenuCategory.is_valid(category):
            errors.append("Category must be one of: " + ", ".join(MenuCategory.VALID_CATEGORIES))
        fields["category"] = category

    preparation_time = payload.get("preparation_time")
    if preparation_time is not None:
        try:
            preparation_time = as_int(preparation_time, "Preparation time")
            if preparation_time < MIN_PREPARATION_TIME or preparation_time > MAX_PREPARATION_TIME:
                errors.append(
                    f"Preparation time must be between {MIN_PREPARATION_TIME} and {MAX_PREPARATION_TIME} minutes"
                )
            fields["preparation_time"] = preparation_time
        except ValidationError as e:
            errors.extend(e.errors)
    elif not partial:
        fields["preparation_time"] = DEFAULT_PREPARATION_TIME

    image = payload.get("image")
    if image is not None:
        if not isinstance(image, str):
            errors.append("Image must be a URL string")
        fields["image"] = image if isinstance(image, str) else ""

    is_available = payload.get("is_available")
    if is_available is not None:
        if not isinstance(is_available, bool):
            errors.append("is_available must be true or false")
        fields["is_available"] = 1 if is_available else 0

    if errors:
        raise ValidationError(errors)
    return fields


def _ensure_unique_name(conn, vendor_id, name, exclude_id=None):
    rows = fetch_all(
        conn,
        'SELECT itm_id, name FROM "MenuItem" WHERE vendor_id = ?',
        (vendor_id,),
    )
    wanted = name.casefold()
    for row in rows:
        if row["itm_id"] != exclude_id and row["name"].casefold() == wanted:
            raise ConflictError("Menu item with this name already exists")


def _get_owned_item(conn, vendor_id, itm_id):
    row = fetch_one(
        conn,
        'SELECT * FROM "MenuItem" WHERE itm_id = ? AND vendor_id = ?',
        (itm_id, vendor_id),
    )
    if not row:
        raise NotFoundError("Menu item not found or access denied")
    return row


def create_menu_item(conn, vendor_id, payload) -> dict:
    """
    Create a menu item for the vendor.
    Args:
        conn (sqlite3.Connection): Active database connection.
        vendor_id (int): Owning vendor's usr_id.
        payload (dict): name, description, price, category and optional
            preparation_time, image.
    Returns:
        dict: The serialized menu item.
    """
    fields = _validate_menu_fields(payload)
    _ensure_unique_name(conn, vendor_id, fields["name"])

    now = utcnow_iso()
    cur = execute_query(
        conn,
        '''
        INSERT INTO "MenuItem"
            (vendor_id, name, description, price, category, image, is_available, preparation_time, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?, ?)
        ''',
        (vendor_id, fields["name"], fields["description"], fields["price"], fields["category"],
         fields.get("image", ""), fields["preparation_time"], now, now),
    )
    logger.info("Vendor %s created menu item %s (%s)", vendor_id, cur.lastrowid, fields["name"])
    return serialize_menu_item(fetch_one(conn, 'SELECT * FROM "MenuItem" WHERE itm_id = ?', (cur.lastrowid,)))


def update_menu_item(conn, vendor_id, itm_id, payload) -> dict:
    """Partial update; only the supplied fields change."""
    _get_owned_item(conn, vendor_id, itm_id)
    fields = _validate_menu_fields(payload, partial=True)
    if "name" in fields:
        _ensure_unique_name(conn, vendor_id, fields["name"], exclude_id=itm_id)

    if fields:
        assignments = ", ".join(f"{column} = ?" for column in fields)
        execute_query(
            conn,
            f'UPDATE "MenuItem" SET {assignments}, updated_at = ? WHERE itm_id = ?',
            tuple(fields.values()) + (utcnow_iso(), itm_id),
        )
    return serialize_menu_item(_get_owned_item(conn, vendor_id, itm_id))


def count_active_orders_with_item(conn, itm_id) -> int:
    qmarks = ",".join(["?"] * len(OrderStatus.ACTIVE))
    row = fetch_one(
        conn,
        f'''
        SELECT COUNT(DISTINCT o.ord_id) AS n
        FROM "Order" o, json_each(o.items) j
        WHERE o.status IN ({qmarks})
          AND json_extract(j.value, '$.menu_item_id') = ?
        ''',
        tuple(OrderStatus.ACTIVE) + (itm_id,),
    )
    return row["n"] if row else 0


def delete_menu_item(conn, vendor_id, itm_id):
    """
    Delete a menu item.
    Raises:
        NotFoundError: Item missing or owned by another vendor.
        ConflictError: Item is referenced by a pending, confirmed or preparing order.
    """
    _get_owned_item(conn, vendor_id, itm_id)
    if count_active_orders_with_item(conn, itm_id) > 0:
        raise ConflictError("Cannot delete menu item with pending orders. Set as unavailable instead.")
    execute_query(conn, 'DELETE FROM "MenuItem" WHERE itm_id = ?', (itm_id,))
    logger.info("Vendor %s deleted menu item %s", vendor_id, itm_id)


def toggle_availability(conn, vendor_id, itm_id) -> dict:
    item = _get_owned_item(conn, vendor_id, itm_id)
    execute_query(
        conn,
        'UPDATE "MenuItem" SET is_available = ?, updated_at = ? WHERE itm_id = ?',
        (0 if item["is_available"] else 1, utcnow_iso(), itm_id),
    )
    return serialize_menu_item(_get_owned_item(conn, vendor_id, itm_id))


# ---------------------- Browsing ----------------------

def list_menu_items(conn, category=None, vendor_id=None, search=None,
                    min_price=None, max_price=None, available=True):
    """
    Public menu browse. Items from closed or inactive vendors are hidden.
    Args:
        conn (sqlite3.Connection): Active database connection.
        category (str | None): Exact category filter.
        vendor_id (int | None): Restrict to one vendor.
        search (str | None): Case-insensitive substring over name and description.
        min_price (float | None): Lower price bound, inclusive.
        max_price (float | None): Upper price bound, inclusive.
        available (bool): Availability flag to match.
    Returns:
        list[dict]: Serialized items with a nested 'vendor' summary.
    """
    query = '''
        SELECT m.*, u.name AS vendor_name, u.vendor_info, u.is_active
        FROM "MenuItem" m
        JOIN "User" u ON u.usr_id = m.vendor_id
        WHERE m.is_available = ?
    '''
    params = [1 if available else 0]
    if category:
        query += ' AND m.category = ?'
        params.append(category)
    if vendor_id is not None:
        query += ' AND m.vendor_id = ?'
        params.append(vendor_id)
    if search:
        query += " AND (m.name LIKE ? ESCAPE '\\' OR m.description LIKE ? ESCAPE '\\')"
        escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        params.extend([f"%{escaped}%", f"%{escaped}%"])
    if min_price is not None:
        query += ' AND m.price >= ?'
        params.append(min_price)
    if max_price is not None:
        query += ' AND m.price <= ?'
        params.append(max_price)
    query += ' ORDER BY m.category, m.name'

    items = []
    for row in fetch_all(conn, query, tuple(params)):
        if not is_vendor_open(row):
            continue
        item = serialize_menu_item(row)
        item["vendor"] = {
            "id": row["vendor_id"],
            "name": row["vendor_name"],
            "shop_name": vendor_info_of(row).get("shop_name", ""),
        }
        items.append(item)
    return items


def list_categories(conn):
    rows = fetch_all(
        conn,
        '''
        SELECT category, COUNT(*) AS count
        FROM "MenuItem"
        WHERE is_available = 1
        GROUP BY category
        ORDER BY category
        ''',
    )
    return [{"category": r["category"], "count": r["count"]} for r in rows]


def list_vendor_items(conn, vendor_id, category=None, available=None):
    query = 'SELECT * FROM "MenuItem" WHERE vendor_id = ?'
    params = [vendor_id]
    if category:
        query += ' AND category = ?'
        params.append(category)
    if available is not None:
        query += ' AND is_available = ?'
        params.append(1 if available else 0)
    query += ' ORDER BY category, name'
    return [serialize_menu_item(r) for r in fetch_all(conn, query, tuple(params))]


def _vendor_summary(row, menu_item_count):
    info = vendor_info_of(row)
    return {
        "id": row["usr_id"],
        "name": row["name"],
        "shop_name": info.get("shop_name", ""),
        "description": info.get("description", ""),
        "is_open": bool(info.get("is_open")),
        "schedule": info.get("schedule", {}),
        "avatar": info.get("avatar", ""),
        "menu_item_count": menu_item_count,
        "joined_date": row["created_at"],
    }


def list_vendors(conn, search=None, is_open=None):
    """
    Active vendors sorted by shop name, with their available item counts.
    Args:
        conn (sqlite3.Connection): Active database connection.
        search (str | None): Case-insensitive substring of the shop name.
        is_open (bool | None): Filter on the open flag.
    Returns:
        list[dict]: Vendor summaries.
    """
    rows = fetch_all(
        conn,
        '''
        SELECT u.*,
               (SELECT COUNT(*) FROM "MenuItem" m
                WHERE m.vendor_id = u.usr_id AND m.is_available = 1) AS menu_item_count
        FROM "User" u
        WHERE u.role = 'vendor' AND u.is_active = 1
        ''',
    )
    vendors = []
    for row in rows:
        summary = _vendor_summary(row, row["menu_item_count"])
        if search and search.casefold() not in summary["shop_name"].casefold():
            continue
        if is_open is not None and summary["is_open"] != is_open:
            continue
        vendors.append(summary)
    vendors.sort(key=lambda v: v["shop_name"].casefold())
    return vendors


def get_vendor_detail(conn, vendor_id) -> dict:
    vendor = get_active_vendor(conn, vendor_id)
    if not vendor:
        raise NotFoundError("Vendor not found")
    items = list_vendor_items(conn, vendor_id, available=True)
    detail = _vendor_summary(vendor, len(items))
    detail["menu_by_category"] = group_by_category(items)
    return detail
