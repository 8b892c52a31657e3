import pytest

from errors import ValidationError
from models import (
    OrderStatus,
    PaymentStatus,
    as_int,
    as_number,
    compute_cart_totals,
    compute_tax,
    is_institutional_email,
    is_valid_phone,
    is_valid_time,
    money,
    validate_instructions,
    validate_notes,
    validate_quantity,
)

def test_order_status_constants():
    """Ensure constants haven't drifted."""
    assert OrderStatus.PENDING == 'pending'
    assert OrderStatus.CONFIRMED == 'confirmed'
    assert OrderStatus.PREPARING == 'preparing'
    assert OrderStatus.READY == 'ready'
    assert OrderStatus.COMPLETED == 'completed'
    assert OrderStatus.CANCELLED == 'cancelled'

def test_is_valid_status_true():
    """Test valid statuses return True."""
    assert OrderStatus.is_valid_status('pending') is True
    assert OrderStatus.is_valid_status('cancelled') is True

def test_is_valid_status_false():
    """Test invalid statuses return False."""
    assert OrderStatus.is_valid_status('Cooking') is False
    assert OrderStatus.is_valid_status('Pending') is False
    assert OrderStatus.is_valid_status('') is False
    assert OrderStatus.is_valid_status(None) is False

def test_valid_transitions_forward():
    """Test the normal fulfilment path."""
    assert OrderStatus.is_valid_transition(OrderStatus.PENDING, OrderStatus.CONFIRMED) is True
    assert OrderStatus.is_valid_transition(OrderStatus.CONFIRMED, OrderStatus.PREPARING) is True
    assert OrderStatus.is_valid_transition(OrderStatus.PREPARING, OrderStatus.READY) is True
    assert OrderStatus.is_valid_transition(OrderStatus.READY, OrderStatus.COMPLETED) is True

def test_ready_fast_path_only_from_confirmed():
    """confirmed -> ready may skip preparing; nothing else skips."""
    assert OrderStatus.is_valid_transition(OrderStatus.CONFIRMED, OrderStatus.READY) is True
    assert OrderStatus.is_valid_transition(OrderStatus.PENDING, OrderStatus.READY) is False
    assert OrderStatus.is_valid_transition(OrderStatus.PENDING, OrderStatus.PREPARING) is False
    assert OrderStatus.is_valid_transition(OrderStatus.CONFIRMED, OrderStatus.COMPLETED) is False

def test_invalid_transitions_backward():
    """Test backward transitions are blocked."""
    assert OrderStatus.is_valid_transition(OrderStatus.READY, OrderStatus.PREPARING) is False
    assert OrderStatus.is_valid_transition(OrderStatus.COMPLETED, OrderStatus.PENDING) is False

def test_terminal_statuses_have_no_exits():
    for status in OrderStatus.VALID_STATUSES:
        assert OrderStatus.is_valid_transition(OrderStatus.COMPLETED, status) is False
        assert OrderStatus.is_valid_transition(OrderStatus.CANCELLED, status) is False
    assert OrderStatus.is_terminal(OrderStatus.COMPLETED)
    assert not OrderStatus.is_terminal(OrderStatus.READY)

def test_cancellation_only_before_preparing():
    assert OrderStatus.is_valid_transition(OrderStatus.PENDING, OrderStatus.CANCELLED) is True
    assert OrderStatus.is_valid_transition(OrderStatus.CONFIRMED, OrderStatus.CANCELLED) is True
    assert OrderStatus.is_valid_transition(OrderStatus.PREPARING, OrderStatus.CANCELLED) is False
    assert OrderStatus.is_valid_transition(OrderStatus.READY, OrderStatus.CANCELLED) is False

def test_invalid_transition_unknown_status():
    """Test transitions involving unknown statuses."""
    assert OrderStatus.is_valid_transition('AlienStatus', OrderStatus.PENDING) is False
    assert OrderStatus.is_valid_transition(OrderStatus.PENDING, 'AlienStatus') is False

def test_payment_transitions():
    assert PaymentStatus.is_valid_transition('pending', 'paid') is True
    assert PaymentStatus.is_valid_transition('pending', 'failed') is True
    assert PaymentStatus.is_valid_transition('failed', 'paid') is True
    assert PaymentStatus.is_valid_transition('paid', 'refunded') is True
    assert PaymentStatus.is_valid_transition('refunded', 'paid') is False
    assert PaymentStatus.is_valid_transition('paid', 'pending') is False

def test_tax_is_whole_currency_half_up():
    assert compute_tax(240, "0.05") == 12
    assert compute_tax(250, "0.05") == 13
    assert compute_tax(249, "0.05") == 12
    assert compute_tax(0, "0.05") == 0

def test_money_rounds_half_up():
    assert money(0.125) == 0.13
    assert money("19.994") == 19.99
    assert money(10) == 10.0

def test_cart_totals_from_stored_prices():
    lines = [
        {"price": 120, "quantity": 2},
        {"price": 40.5, "quantity": 3},
    ]
    assert compute_cart_totals(lines) == (5, 361.5)
    assert compute_cart_totals([]) == (0, 0)

def test_as_int_accepts_whole_numbers():
    assert as_int("3", "q") == 3
    assert as_int(3.0, "q") == 3
    assert as_int(" 12 ", "q") == 12

@pytest.mark.parametrize("bad", [1.5, "abc", None, True, "", "nan"])
def test_as_int_rejects_non_integers(bad):
    with pytest.raises(ValidationError):
        as_int(bad, "q")

@pytest.mark.parametrize("huge", ["1e3000000", "-1e3000000", "1000000000", 10 ** 400])
def test_as_int_rejects_huge_magnitudes(huge):
    with pytest.raises(ValidationError) as exc:
        as_int(huge, "Quantity")
    assert exc.value.errors == ["Quantity must be a whole number"]

def test_as_int_keeps_large_ids():
    assert as_int("999999999", "id") == 999999999

def test_as_number_rejects_overflow():
    with pytest.raises(ValidationError):
        as_number(10 ** 400, "Price")
    with pytest.raises(ValidationError):
        as_number("1e3000000", "Price")

def test_text_fields_must_be_strings():
    assert validate_instructions(None) == ""
    assert validate_notes("  ring the bell  ") == "ring the bell"
    with pytest.raises(ValidationError) as exc:
        validate_instructions(5)
    assert exc.value.errors == ["Special instructions must be text"]
    with pytest.raises(ValidationError) as exc:
        validate_notes(["a"], "Cancel reason")
    assert exc.value.errors == ["Cancel reason must be text"]

def test_time_format_rejects_non_strings():
    assert is_valid_time("09:30") is True
    assert is_valid_time(900) is False
    assert is_valid_time({"h": 9}) is False

def test_quantity_bounds():
    assert validate_quantity(1) == 1
    assert validate_quantity(50) == 50
    for bad in (0, 51, -1):
        with pytest.raises(ValidationError) as exc:
            validate_quantity(bad)
        assert "between 1 and 50" in exc.value.errors[0]

def test_institutional_email():
    assert is_institutional_email("u1904001@cuet.ac.bd", "cuet.ac.bd") is True
    assert is_institutional_email("someone@gmail.com", "cuet.ac.bd") is False
    assert is_institutional_email("x@student.cuet.ac.bd", "cuet.ac.bd") is False

def test_phone_format():
    assert is_valid_phone("01712345678") is True
    assert is_valid_phone("+8801712345678") is True
    assert is_valid_phone("01212345678") is False
    assert is_valid_phone("0171234567") is False
