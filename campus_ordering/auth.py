"""
Session-based access guards for the JSON API.

Login stores ``usr_id`` and ``role`` in the signed Flask session. The
decorators below load the account for every protected request, so a
deactivated account loses access immediately.

    @app.route('/api/cart')
    @student_required
    def view_cart_route():
        user = g.user
        ...
"""
from functools import wraps

from flask import current_app, g, session

from errors import AuthenticationError, AuthorizationError
from models import Role
from sqlQueries import close_connection, create_connection, get_user


def login_user(user):
    """Start a session for an authenticated account row."""
    session.clear()
    session["usr_id"] = user["usr_id"]
    session["role"] = user["role"]
    session.permanent = True


def logout_user():
    session.clear()


def current_user():
    """
    Load the logged-in account.
    Returns:
        sqlite3.Row: The account row.
    Raises:
        AuthenticationError: No session, unknown account or deactivated account.
    """
    usr_id = session.get("usr_id")
    if usr_id is None:
        raise AuthenticationError()

    conn = create_connection(current_app.config["DATABASE"])
    try:
        user = get_user(conn, usr_id)
    finally:
        close_connection(conn)

    if not user:
        session.clear()
        raise AuthenticationError("Invalid session. Please log in again.")
    if not user["is_active"]:
        session.clear()
        raise AuthenticationError("Account is deactivated. Please contact support.")
    return user


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        g.user = current_user()
        return view(*args, **kwargs)
    return wrapped


def _role_required(role, message):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            user = current_user()
            if user["role"] != role:
                raise AuthorizationError(message)
            g.user = user
            return view(*args, **kwargs)
        return wrapped
    return decorator


student_required = _role_required(Role.STUDENT, "Access denied. Students only.")
vendor_required = _role_required(Role.VENDOR, "Access denied. Vendors only.")
