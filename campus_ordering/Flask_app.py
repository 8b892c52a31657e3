import argparse
import logging
from datetime import timedelta

from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from config import Config
from errors import AppError, InternalError, NotFoundError, ValidationError
from responses import error_response, success_response
from auth import login_required, login_user, logout_user, student_required, vendor_required
from models import as_number
from sqlQueries import close_connection, create_connection, get_active_vendor, init_db

import accounts
import cart
import catalog
import orders
import reporting

app = Flask(__name__)
app.config.from_object(Config)
app.permanent_session_lifetime = timedelta(minutes=app.config["SESSION_MINUTES"])

logging.basicConfig(
    level=app.config["LOG_LEVEL"],
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------- Helpers ----------------------

def _connect():
    """
    Open a connection to the configured database.
    Returns:
        sqlite3.Connection: Caller closes it with close_connection.
    """
    return create_connection(app.config["DATABASE"])


def _json_body() -> dict:
    """
    Parsed JSON request body.
    Returns:
        dict: The body, or {} when there is none.
    Raises:
        ValidationError: Body present but not a JSON object.
    """
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _bool_arg(name):
    value = request.args.get(name)
    if value is None or value == "":
        return None
    return value.strip().lower() in ("true", "1", "yes")


def _number_arg(name):
    value = request.args.get(name)
    if value is None or value == "":
        return None
    return as_number(value, name)


# ---------------------- Error handlers ----------------------

@app.errorhandler(AppError)
def handle_app_error(e):
    if e.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.path, e.message)
    return error_response(e.message, e.errors, e.status_code)


@app.errorhandler(HTTPException)
def handle_http_error(e):
    if e.code == 404:
        return error_response(f"Route {request.path} not found", status_code=404)
    if e.code == 405:
        return error_response(f"Method {request.method} not allowed for {request.path}", status_code=405)
    return error_response(e.description or e.name, status_code=e.code or 500)


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    return error_response(InternalError().message, status_code=500)


@app.route('/api/health')
def health():
    return success_response("Campus ordering API is running")


# ---------------------- Auth ----------------------

@app.route('/api/auth/register', methods=['POST'])
def register():
    """
    Create a student or vendor account and log it in.
    Args:
        None (JSON body: name, email, password, role, phone, student_id | vendor_info)
    Returns:
        Response: 201 with the new user.
    """
    payload = _json_body()
    conn = _connect()
    try:
        user = accounts.register_user(conn, payload, app.config["STUDENT_EMAIL_DOMAIN"])
    finally:
        close_connection(conn)
    login_user({"usr_id": user["id"], "role": user["role"]})
    return success_response("User registered successfully", {"user": user}, 201)


@app.route('/api/auth/login', methods=['POST'])
def login():
    """
    Authenticate with email and password and start a session.
    Returns:
        Response: 200 with the user, 401 on bad credentials.
    """
    payload = _json_body()
    conn = _connect()
    try:
        row = accounts.authenticate(conn, payload.get("email"), payload.get("password"))
    finally:
        close_connection(conn)
    login_user(row)
    logger.info("User %s logged in", row["usr_id"])
    return success_response("Login successful", {"user": accounts.serialize_user(row)})


@app.route('/api/auth/logout', methods=['POST'])
def logout():
    logout_user()
    return success_response("Logged out successfully")


@app.route('/api/auth/profile', methods=['GET'])
@login_required
def get_profile():
    return success_response("Profile retrieved successfully", {"user": accounts.serialize_user(g.user)})


@app.route('/api/auth/profile', methods=['PUT'])
@login_required
def update_profile():
    payload = _json_body()
    conn = _connect()
    try:
        user = accounts.update_profile(conn, g.user["usr_id"], payload)
    finally:
        close_connection(conn)
    return success_response("Profile updated successfully", {"user": user})


# ---------------------- Vendors ----------------------

@app.route('/api/vendors')
def vendors():
    """
    List active vendors.
    Args:
        None (query: search, is_open)
    Returns:
        Response: Vendors sorted by shop name.
    """
    conn = _connect()
    try:
        result = catalog.list_vendors(conn, request.args.get("search"), _bool_arg("is_open"))
    finally:
        close_connection(conn)
    return success_response("Vendors retrieved successfully", {"vendors": result, "count": len(result)})


@app.route('/api/vendors/<int:vendor_id>')
def vendor_detail(vendor_id: int):
    conn = _connect()
    try:
        vendor = catalog.get_vendor_detail(conn, vendor_id)
    finally:
        close_connection(conn)
    return success_response("Vendor details retrieved successfully", {"vendor": vendor})


@app.route('/api/vendors/<int:vendor_id>/menu')
def vendor_menu(vendor_id: int):
    """
    A vendor's menu.
    Args:
        vendor_id (int): The vendor's id.
        (query: category, available)
    Returns:
        Response: menu_items plus the same items grouped by category.
    """
    conn = _connect()
    try:
        if not get_active_vendor(conn, vendor_id):
            raise NotFoundError("Vendor not found")
        items = catalog.list_vendor_items(
            conn, vendor_id, request.args.get("category"), _bool_arg("available")
        )
    finally:
        close_connection(conn)
    return success_response("Vendor menu retrieved successfully", {
        "menu_items": items,
        "menu_by_category": catalog.group_by_category(items),
        "count": len(items),
    })


@app.route('/api/vendors/dashboard/stats')
@vendor_required
def vendor_dashboard():
    conn = _connect()
    try:
        stats = reporting.vendor_dashboard_stats(conn, g.user["usr_id"])
    finally:
        close_connection(conn)
    return success_response("Dashboard statistics retrieved successfully", {"stats": stats})


@app.route('/api/vendors/profile', methods=['PUT'])
@vendor_required
def update_vendor_profile():
    payload = _json_body()
    conn = _connect()
    try:
        info = accounts.update_vendor_profile(conn, g.user["usr_id"], payload)
    finally:
        close_connection(conn)
    return success_response("Vendor profile updated successfully", {"vendor_info": info})


# ---------------------- Menu ----------------------

@app.route('/api/menu')
def menu():
    """
    Public menu browse.
    Args:
        None (query: category, vendor_id, search, min_price, max_price, available)
    Returns:
        Response: Matching items from open vendors.
    """
    available = _bool_arg("available")
    vendor_id = request.args.get("vendor_id", type=int)
    conn = _connect()
    try:
        items = catalog.list_menu_items(
            conn,
            category=request.args.get("category"),
            vendor_id=vendor_id,
            search=request.args.get("search"),
            min_price=_number_arg("min_price"),
            max_price=_number_arg("max_price"),
            available=True if available is None else available,
        )
    finally:
        close_connection(conn)
    return success_response("Menu items retrieved successfully", {"menu_items": items, "count": len(items)})


@app.route('/api/menu/categories')
def menu_categories():
    conn = _connect()
    try:
        categories = catalog.list_categories(conn)
    finally:
        close_connection(conn)
    return success_response("Categories retrieved successfully", {"categories": categories})


@app.route('/api/menu/my-items')
@vendor_required
def my_menu_items():
    conn = _connect()
    try:
        items = catalog.list_vendor_items(
            conn, g.user["usr_id"], request.args.get("category"), _bool_arg("available")
        )
    finally:
        close_connection(conn)
    return success_response("Menu items retrieved successfully", {
        "menu_items": items,
        "menu_by_category": catalog.group_by_category(items),
        "count": len(items),
    })


@app.route('/api/menu', methods=['POST'])
@vendor_required
def create_menu_item():
    payload = _json_body()
    conn = _connect()
    try:
        item = catalog.create_menu_item(conn, g.user["usr_id"], payload)
    finally:
        close_connection(conn)
    return success_response("Menu item created successfully", {"menu_item": item}, 201)


@app.route('/api/menu/<int:itm_id>', methods=['PUT'])
@vendor_required
def update_menu_item(itm_id: int):
    payload = _json_body()
    conn = _connect()
    try:
        item = catalog.update_menu_item(conn, g.user["usr_id"], itm_id, payload)
    finally:
        close_connection(conn)
    return success_response("Menu item updated successfully", {"menu_item": item})


@app.route('/api/menu/<int:itm_id>', methods=['DELETE'])
@vendor_required
def delete_menu_item(itm_id: int):
    conn = _connect()
    try:
        catalog.delete_menu_item(conn, g.user["usr_id"], itm_id)
    finally:
        close_connection(conn)
    return success_response("Menu item deleted successfully")


@app.route('/api/menu/<int:itm_id>/toggle-availability', methods=['PATCH'])
@vendor_required
def toggle_menu_item(itm_id: int):
    conn = _connect()
    try:
        item = catalog.toggle_availability(conn, g.user["usr_id"], itm_id)
    finally:
        close_connection(conn)
    state = "available" if item["is_available"] else "unavailable"
    return success_response(f"Menu item marked as {state}", {"menu_item": item})


# ---------------------- Cart ----------------------

@app.route('/api/cart')
@student_required
def view_cart():
    conn = _connect()
    try:
        data = cart.view_cart(conn, g.user["usr_id"])
    finally:
        close_connection(conn)
    return success_response("Cart retrieved successfully", {"cart": data})


@app.route('/api/cart/add', methods=['POST'])
@student_required
def add_to_cart():
    """
    Add an item to the cart.
    Args:
        None (JSON body: menu_item_id, quantity, special_instructions)
    Returns:
        Response: The cart summary.
    """
    payload = _json_body()
    conn = _connect()
    try:
        summary = cart.add_to_cart(
            conn,
            g.user["usr_id"],
            payload.get("menu_item_id"),
            payload.get("quantity", 1),
            payload.get("special_instructions"),
        )
    finally:
        close_connection(conn)
    return success_response("Item added to cart successfully", {"cart": summary})


@app.route('/api/cart/update/<line_id>', methods=['PUT'])
@student_required
def update_cart_item(line_id):
    payload = _json_body()
    conn = _connect()
    try:
        summary = cart.update_cart_line(
            conn,
            g.user["usr_id"],
            line_id,
            payload.get("quantity"),
            payload.get("special_instructions"),
        )
    finally:
        close_connection(conn)
    return success_response("Cart item updated successfully", {"cart": summary})


@app.route('/api/cart/remove/<line_id>', methods=['DELETE'])
@student_required
def remove_cart_item(line_id):
    conn = _connect()
    try:
        summary = cart.remove_cart_line(conn, g.user["usr_id"], line_id)
    finally:
        close_connection(conn)
    return success_response("Item removed from cart successfully", {"cart": summary})


@app.route('/api/cart/clear', methods=['DELETE'])
@student_required
def clear_cart():
    conn = _connect()
    try:
        summary = cart.clear_cart(conn, g.user["usr_id"])
    finally:
        close_connection(conn)
    return success_response("Cart cleared successfully", {"cart": summary})


@app.route('/api/cart/checkout', methods=['POST'])
@student_required
def checkout():
    """
    Convert the cart into an order.
    Args:
        None (JSON body: notes)
    Returns:
        Response: 201 with the order and any re-priced lines.
    """
    payload = _json_body()
    conn = _connect()
    try:
        result = cart.checkout(
            conn, g.user["usr_id"], payload.get("notes"), orders.order_settings(app.config)
        )
    finally:
        close_connection(conn)
    return success_response("Order placed successfully", result, 201)


# ---------------------- Orders ----------------------

@app.route('/api/orders', methods=['POST'])
@student_required
def place_order():
    payload = _json_body()
    conn = _connect()
    try:
        order = orders.place_order(conn, g.user["usr_id"], payload, orders.order_settings(app.config))
    finally:
        close_connection(conn)
    return success_response("Order placed successfully", {"order": order}, 201)


@app.route('/api/orders/my-orders')
@student_required
def my_orders():
    conn = _connect()
    try:
        result = orders.list_student_orders(
            conn,
            g.user["usr_id"],
            request.args.get("status"),
            request.args.get("page", 1),
            request.args.get("limit", 10),
        )
    finally:
        close_connection(conn)
    return success_response("Orders retrieved successfully", result)


@app.route('/api/orders/search')
@login_required
def search_order():
    conn = _connect()
    try:
        order = orders.search_by_delivery_code(conn, g.user, request.args.get("code"))
    finally:
        close_connection(conn)
    return success_response("Order found", {"order": order})


@app.route('/api/orders/vendor/incoming')
@vendor_required
def incoming_orders():
    """
    Orders received by the logged-in vendor.
    Args:
        None (query: status, date as YYYY-MM-DD)
    Returns:
        Response: orders, orders_by_status and total.
    """
    conn = _connect()
    try:
        result = orders.list_vendor_orders(
            conn, g.user["usr_id"], request.args.get("status"), request.args.get("date")
        )
    finally:
        close_connection(conn)
    return success_response("Incoming orders retrieved successfully", result)


@app.route('/api/orders/vendor/stats')
@vendor_required
def vendor_stats():
    conn = _connect()
    try:
        result = reporting.vendor_order_stats(conn, g.user["usr_id"], request.args.get("period", "today"))
    finally:
        close_connection(conn)
    return success_response("Vendor statistics retrieved successfully", result)


@app.route('/api/orders/<int:ord_id>')
@login_required
def order_detail(ord_id: int):
    conn = _connect()
    try:
        order = orders.get_order_for_user(conn, g.user, ord_id)
    finally:
        close_connection(conn)
    return success_response("Order retrieved successfully", {"order": order})


@app.route('/api/orders/<int:ord_id>/cancel', methods=['PATCH'])
@student_required
def cancel_order(ord_id: int):
    payload = _json_body()
    conn = _connect()
    try:
        order = orders.cancel_order(conn, g.user["usr_id"], ord_id, payload.get("reason"))
    finally:
        close_connection(conn)
    return success_response("Order cancelled successfully", {"order": order})


@app.route('/api/orders/<int:ord_id>/status', methods=['PATCH'])
@vendor_required
def update_order_status(ord_id: int):
    """
    Vendor status update.
    Args:
        ord_id (int): The order id.
        (JSON body: status, estimated_time)
    Returns:
        Response: The updated order; 400 on an invalid progression.
    """
    payload = _json_body()
    conn = _connect()
    try:
        order = orders.update_order_status(
            conn, g.user["usr_id"], ord_id, payload.get("status"), payload.get("estimated_time")
        )
    finally:
        close_connection(conn)
    return success_response(f"Order status updated to {order['status']}", {"order": order})


@app.route('/api/orders/<int:ord_id>/payment', methods=['PATCH'])
@vendor_required
def update_payment_status(ord_id: int):
    payload = _json_body()
    conn = _connect()
    try:
        order = orders.update_payment_status(
            conn, g.user["usr_id"], ord_id, payload.get("payment_status"), payload.get("payment_id")
        )
    finally:
        close_connection(conn)
    return success_response(f"Payment status updated to {order['payment_status']}", {"order": order})


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Campus food ordering API")
    parser.add_argument('--host', type=str, default='127.0.0.1', help='Host to run the Flask app on')
    parser.add_argument('--port', type=int, default=5000, help='Port to run the Flask app on')
    parser.add_argument('--debug', action='store_true', help='Run with the Flask debugger')
    return parser.parse_args()


if __name__ == '__main__':
    args = parse_args()
    init_db(app.config["DATABASE"])
    app.run(host=args.host, port=args.port, debug=args.debug)
