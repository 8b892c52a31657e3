"""
Account store: registration, credential checks and profile updates.

A student account carries a ``student_id`` and an embedded cart; a vendor
account carries ``vendor_info`` (shop metadata and the open flag). Exactly one
of the two is populated, matching the role.
"""
import logging
import sqlite3

from werkzeug.security import check_password_hash, generate_password_hash

from config import Config
from errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from models import (
    Role,
    empty_cart,
    is_institutional_email,
    is_valid_email,
    is_valid_phone,
    is_valid_time,
)
from sqlQueries import (
    dump_json,
    execute_query,
    get_user,
    get_user_by_email,
    fetch_one,
    load_json,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_OPEN_TIME = '09:00'
DEFAULT_CLOSE_TIME = '22:00'


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def serialize_user(row) -> dict:
    """
    Public view of an account row (never includes the password hash).
    Args:
        row (sqlite3.Row): A "User" row.
    Returns:
        dict: JSON-ready account fields.
    """
    data = {
        "id": row["usr_id"],
        "name": row["name"],
        "email": row["email"],
        "role": row["role"],
        "phone": row["phone"],
        "is_active": bool(row["is_active"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }
    if row["role"] == Role.STUDENT:
        data["student_id"] = row["student_id"]
    else:
        data["vendor_info"] = load_json(row["vendor_info"], {})
    return data


def _validate_registration(payload, student_domain):
    name = _clean(payload.get("name"))
    email = _clean(payload.get("email")).lower()
    password = payload.get("password") or ""
    role = payload.get("role")
    phone = _clean(payload.get("phone"))
    student_id = _clean(payload.get("student_id"))
    vendor_info = payload.get("vendor_info") or {}
    if not isinstance(vendor_info, dict):
        vendor_info = {}

    errors = []
    if len(name) < 2 or len(name) > 50:
        errors.append("Name must be between 2 and 50 characters long")
    if not is_valid_email(email):
        errors.append("Please provide a valid email address")
    if not isinstance(password, str) or len(password) < 6:
        errors.append("Password must be at least 6 characters long")
    if role not in Role.VALID_ROLES:
        errors.append("Role must be either student or vendor")
    if not is_valid_phone(phone):
        errors.append("Please provide a valid mobile number (01XXXXXXXXX)")

    if role == Role.STUDENT:
        if not is_institutional_email(email, student_domain):
            errors.append(f"Students must use their institutional email (@{student_domain})")
        if len(student_id) < 4:
            errors.append("Student ID is required and must be at least 4 characters")

    if role == Role.VENDOR:
        shop_name = _clean(vendor_info.get("shop_name"))
        if len(shop_name) < 2:
            errors.append("Shop name is required for vendor accounts")
        elif len(shop_name) > 100:
            errors.append("Shop name cannot exceed 100 characters")
        schedule = vendor_info.get("schedule") or {}
        if not isinstance(schedule, dict):
            errors.append("Schedule must be an object with open_time and close_time")
        else:
            for key in ("open_time", "close_time"):
                if schedule.get(key) and not is_valid_time(schedule.get(key)):
                    errors.append(f"{key.replace('_', ' ').capitalize()} must be in HH:MM format")
        if vendor_info.get("is_open") is not None and not isinstance(vendor_info.get("is_open"), bool):
            errors.append("is_open must be true or false")

    if errors:
        raise ValidationError(errors)

    return name, email, password, role, phone, student_id, vendor_info


def register_user(conn, payload, student_domain=Config.STUDENT_EMAIL_DOMAIN) -> dict:
    """
    Create a student or vendor account.
    Args:
        conn (sqlite3.Connection): Active database connection.
        payload (dict): name, email, password, role, phone and either
            student_id (students) or vendor_info.shop_name (vendors).
        student_domain (str): Required email domain for students.
    Returns:
        dict: The serialized new account.
    Raises:
        ValidationError: Missing or malformed fields.
        ConflictError: Email or student id already registered.
    """
    name, email, password, role, phone, student_id, vendor_info = _validate_registration(
        payload, student_domain
    )

    if get_user_by_email(conn, email):
        raise ConflictError("User already exists with this email address")
    if role == Role.STUDENT and fetch_one(conn, 'SELECT 1 FROM "User" WHERE student_id = ?', (student_id,)):
        raise ConflictError("Student ID already exists")

    now = utcnow_iso()
    if role == Role.STUDENT:
        student_value, vendor_value, cart_value = student_id, None, dump_json(empty_cart(now))
    else:
        schedule = vendor_info.get("schedule") or {}
        is_open = vendor_info.get("is_open")
        vendor_value = dump_json({
            "shop_name": _clean(vendor_info.get("shop_name")),
            "description": _clean(vendor_info.get("description")),
            "is_open": True if is_open is None else is_open,
            "schedule": {
                "open_time": schedule.get("open_time") or DEFAULT_OPEN_TIME,
                "close_time": schedule.get("close_time") or DEFAULT_CLOSE_TIME,
            },
            "avatar": _clean(vendor_info.get("avatar")),
        })
        student_value, cart_value = None, None

    try:
        cur = execute_query(
            conn,
            '''
            INSERT INTO "User"
                (name, email, password_HS, role, phone, student_id, vendor_info, cart, created_at, updated_at)
            VALUES
                (?,    ?,     ?,           ?,    ?,     ?,          ?,           ?,    ?,          ?)
            ''',
            (name, email, generate_password_hash(password), role, phone,
             student_value, vendor_value, cart_value, now, now),
        )
    except sqlite3.IntegrityError as e:
        # Lost a race with a concurrent registration
        field = "Student ID" if "student_id" in str(e) else "Email"
        raise ConflictError(f"{field} already exists")

    logger.info("Registered %s account %s (usr_id=%s)", role, email, cur.lastrowid)
    return serialize_user(get_user(conn, cur.lastrowid))


def authenticate(conn, email, password):
    """
    Verify credentials.
    Args:
        conn (sqlite3.Connection): Active database connection.
        email (str): Login email (case-insensitive).
        password (str): Plain-text password.
    Returns:
        sqlite3.Row: The account row.
    Raises:
        ValidationError: Email or password missing.
        AuthenticationError: Unknown email, wrong password or deactivated account.
    """
    email = _clean(email).lower()
    errors = []
    if not is_valid_email(email):
        errors.append("Please provide a valid email address")
    if not password or not isinstance(password, str):
        errors.append("Please provide a password")
    if errors:
        raise ValidationError(errors)

    user = get_user_by_email(conn, email)
    if not user or not check_password_hash(user["password_HS"], password):
        raise AuthenticationError("Invalid email or password")
    if not user["is_active"]:
        raise AuthenticationError("Account is deactivated. Please contact support.")
    return user


def update_profile(conn, usr_id, payload) -> dict:
    """Partial update of name and phone."""
    user = get_user(conn, usr_id)
    if not user:
        raise NotFoundError("User not found")

    name = payload.get("name")
    phone = payload.get("phone")
    errors = []
    if name is not None and not (2 <= len(_clean(name)) <= 50):
        errors.append("Name must be between 2 and 50 characters long")
    if phone is not None and not is_valid_phone(_clean(phone)):
        errors.append("Please provide a valid mobile number (01XXXXXXXXX)")
    if errors:
        raise ValidationError(errors)

    execute_query(
        conn,
        'UPDATE "User" SET name = ?, phone = ?, updated_at = ? WHERE usr_id = ?',
        (
            _clean(name) if name is not None else user["name"],
            _clean(phone) if phone is not None else user["phone"],
            utcnow_iso(),
            usr_id,
        ),
    )
    return serialize_user(get_user(conn, usr_id))


def update_vendor_profile(conn, vendor_id, payload) -> dict:
    """
    Update shop metadata: shop_name, description, is_open and schedule.
    Args:
        conn (sqlite3.Connection): Active database connection.
        vendor_id (int): The vendor's usr_id.
        payload (dict): Any subset of the shop fields.
    Returns:
        dict: The updated vendor_info.
    """
    vendor = get_user(conn, vendor_id)
    if not vendor or vendor["role"] != Role.VENDOR:
        raise NotFoundError("Vendor not found")

    info = load_json(vendor["vendor_info"], {})
    shop_name = payload.get("shop_name")
    description = payload.get("description")
    is_open = payload.get("is_open")
    schedule = payload.get("schedule")

    errors = []
    if shop_name is not None and not (2 <= len(_clean(shop_name)) <= 100):
        errors.append("Shop name must be between 2 and 100 characters long")
    if description is not None and len(_clean(description)) > 500:
        errors.append("Description cannot exceed 500 characters")
    if is_open is not None and not isinstance(is_open, bool):
        errors.append("is_open must be true or false")
    if schedule is not None:
        if not isinstance(schedule, dict):
            errors.append("Schedule must be an object with open_time and close_time")
        else:
            if schedule.get("open_time") and not is_valid_time(schedule["open_time"]):
                errors.append("Open time must be in HH:MM format")
            if schedule.get("close_time") and not is_valid_time(schedule["close_time"]):
                errors.append("Close time must be in HH:MM format")
    if errors:
        raise ValidationError(errors)

    if shop_name is not None:
        info["shop_name"] = _clean(shop_name)
    if description is not None:
        info["description"] = _clean(description)
    if is_open is not None:
        info["is_open"] = is_open
    if schedule:
        current = info.setdefault("schedule", {})
        if schedule.get("open_time"):
            current["open_time"] = schedule["open_time"]
        if schedule.get("close_time"):
            current["close_time"] = schedule["close_time"]

    execute_query(
        conn,
        'UPDATE "User" SET vendor_info = ?, updated_at = ? WHERE usr_id = ?',
        (dump_json(info), utcnow_iso(), vendor_id),
    )
    logger.info("Vendor %s updated shop profile (open=%s)", vendor_id, info.get("is_open"))
    return info
