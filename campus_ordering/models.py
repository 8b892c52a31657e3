"""
Data models for the campus food ordering marketplace.

This module contains the status workflows, closed enumerations, field
bounds and small pure helpers (money rounding, cart totals) shared by the
account, catalog, cart and order modules.
"""
import re
from decimal import Decimal, ROUND_HALF_UP

from errors import ValidationError


class OrderStatus:
    """
    Represents valid order statuses and transitions.

    Status Flow:
        pending -> confirmed -> preparing -> ready -> completed
        confirmed -> ready (vendor finished early, skips preparing)
        pending | confirmed -> cancelled (student cancellation only)

    completed and cancelled are terminal.

    Attributes:
        PROGRESSION (list): The ordered fulfilment path.
        VALID_STATUSES (list): Every status an order can hold.
        VENDOR_SETTABLE (list): Statuses a vendor may request via a status update.
        CANCELLABLE (list): Statuses from which a student may cancel.
        ACTIVE (list): Non-terminal statuses that pin their menu items.
        TRANSITIONS (dict): Mapping of current status to allowed next statuses.
    """

    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    PREPARING = 'preparing'
    READY = 'ready'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    PROGRESSION = [PENDING, CONFIRMED, PREPARING, READY, COMPLETED]
    VALID_STATUSES = PROGRESSION + [CANCELLED]
    VENDOR_SETTABLE = [CONFIRMED, PREPARING, READY, COMPLETED]
    CANCELLABLE = [PENDING, CONFIRMED]
    ACTIVE = [PENDING, CONFIRMED, PREPARING]
    TERMINAL = [COMPLETED, CANCELLED]

    TRANSITIONS = {
        PENDING: [CONFIRMED, CANCELLED],
        CONFIRMED: [PREPARING, READY, CANCELLED],
        PREPARING: [READY],
        READY: [COMPLETED],
        COMPLETED: [],
        CANCELLED: [],
    }

    @classmethod
    def is_valid_status(cls, status):
        """
        Check if a status value is valid.

        Example:
            >>> OrderStatus.is_valid_status('pending')
            True
            >>> OrderStatus.is_valid_status('Delivered')
            False
        """
        return status in cls.VALID_STATUSES

    @classmethod
    def is_terminal(cls, status):
        return status in cls.TERMINAL

    @classmethod
    def is_valid_transition(cls, current_status, new_status):
        """
        Check if a status transition is allowed.

        Args:
            current_status (str): The current order status
            new_status (str): The proposed new status

        Returns:
            bool: True if the transition is allowed, False otherwise

        Example:
            >>> OrderStatus.is_valid_transition('pending', 'confirmed')
            True
            >>> OrderStatus.is_valid_transition('pending', 'preparing')
            False
            >>> OrderStatus.is_valid_transition('confirmed', 'ready')
            True
        """
        if current_status not in cls.TRANSITIONS:
            return False
        return new_status in cls.TRANSITIONS[current_status]


class PaymentStatus:
    """Payment track, independent of the fulfilment status."""

    PENDING = 'pending'
    PAID = 'paid'
    FAILED = 'failed'
    REFUNDED = 'refunded'

    VALID_STATUSES = [PENDING, PAID, FAILED, REFUNDED]

    TRANSITIONS = {
        PENDING: [PAID, FAILED],
        FAILED: [PAID],
        PAID: [REFUNDED],
        REFUNDED: [],
    }

    @classmethod
    def is_valid_status(cls, status):
        return status in cls.VALID_STATUSES

    @classmethod
    def is_valid_transition(cls, current_status, new_status):
        return new_status in cls.TRANSITIONS.get(current_status, [])


class Role:
    STUDENT = 'student'
    VENDOR = 'vendor'

    VALID_ROLES = [STUDENT, VENDOR]


class MenuCategory:
    VALID_CATEGORIES = ['breakfast', 'lunch', 'dinner', 'snacks', 'beverages', 'desserts']

    @classmethod
    def is_valid(cls, category):
        return category in cls.VALID_CATEGORIES


# Field bounds
MIN_QUANTITY = 1
MAX_QUANTITY = 50
MAX_INSTRUCTIONS_LENGTH = 200
MAX_NOTES_LENGTH = 500
MIN_PRICE = 1
MAX_PRICE = 10000
MIN_PREPARATION_TIME = 5
MAX_PREPARATION_TIME = 120
DEFAULT_PREPARATION_TIME = 15
MAX_INT_DIGITS = 9

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^(\+8801|01)[3-9]\d{8}$")
TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def is_valid_email(email) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email))


def is_institutional_email(email, domain: str) -> bool:
    """
    Check that an address is on the institutional domain.
    Example:
        >>> is_institutional_email('a.b@cuet.ac.bd', 'cuet.ac.bd')
        True
    """
    pattern = r"^[a-zA-Z0-9._%+-]+@" + re.escape(domain) + r"$"
    return bool(email) and bool(re.match(pattern, email))


def is_valid_phone(phone) -> bool:
    return bool(phone) and bool(PHONE_RE.match(phone))


def is_valid_time(value) -> bool:
    return isinstance(value, str) and bool(TIME_RE.match(value))


def as_int(value, field: str) -> int:
    """
    Coerce request input to int, rejecting booleans and fractional numbers.
    Magnitudes beyond MAX_INT_DIGITS digits are rejected before conversion.
    Raises:
        ValidationError: If the value is not a whole number.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number")
    try:
        number = Decimal(str(value).strip())
    except ArithmeticError:
        raise ValidationError(f"{field} must be a whole number")
    if not number.is_finite() or number.adjusted() >= MAX_INT_DIGITS:
        raise ValidationError(f"{field} must be a whole number")
    if number != number.to_integral_value():
        raise ValidationError(f"{field} must be a whole number")
    return int(number)


def as_number(value, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field} must be a number")
    if number != number or number in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a number")
    return number


def validate_quantity(quantity) -> int:
    quantity = as_int(quantity, "Quantity")
    if quantity < MIN_QUANTITY or quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}")
    return quantity


def _as_text(value, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text")
    return value.strip()


def validate_instructions(text) -> str:
    text = _as_text(text, "Special instructions")
    if len(text) > MAX_INSTRUCTIONS_LENGTH:
        raise ValidationError(
            f"Special instructions cannot exceed {MAX_INSTRUCTIONS_LENGTH} characters"
        )
    return text


def validate_notes(text, field: str = "Notes") -> str:
    text = _as_text(text, field)
    if len(text) > MAX_NOTES_LENGTH:
        raise ValidationError(f"{field} cannot exceed {MAX_NOTES_LENGTH} characters")
    return text


# ---------------------- Money ----------------------

def money(value) -> float:
    """
    Round a numeric value to two decimal places, half up.
    Args:
        value (int | float | Decimal): The amount to round.
    Returns:
        float: The rounded amount.
    """
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def line_total(price, quantity) -> Decimal:
    return Decimal(str(price)) * int(quantity)


def compute_tax(subtotal, rate) -> int:
    """
    Tax is a whole-currency amount: subtotal * rate rounded half up.
    Example:
        >>> compute_tax(240, "0.05")
        12
        >>> compute_tax(250, "0.05")
        13
    """
    return int((Decimal(str(subtotal)) * Decimal(str(rate))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_cart_totals(lines):
    """
    Pure recomputation of the derived cart totals.
    Args:
        lines (list[dict]): Cart lines with 'price' and 'quantity'.
    Returns:
        tuple: (total_items, total_amount) from each line's stored price.
    """
    total_items = sum(int(line["quantity"]) for line in lines)
    total_amount = sum((line_total(line["price"], line["quantity"]) for line in lines), Decimal("0"))
    return total_items, money(total_amount)


def empty_cart(now_iso):
    return {"items": [], "total_items": 0, "total_amount": 0, "last_updated": now_iso}
