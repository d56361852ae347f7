from decimal import Decimal

from ageless.utils.logger import sanitize_payload
from ageless.utils.money import format_usd, quantize, to_cents, to_decimal
from ageless.utils.phone import is_valid_phone, normalize_phone


def test_money_rounds_half_up():
    assert quantize("10.005") == Decimal("10.01")
    assert quantize(0.1 + 0.2) == Decimal("0.30")
    assert to_decimal(None) == Decimal("0")
    assert to_cents("12.345") == 1235
    assert format_usd(1234.5) == "$1,234.50"


def test_phone_normalization():
    assert normalize_phone(" +1 (555) 123-4567 ") == "+15551234567"
    assert normalize_phone(None) == ""
    assert is_valid_phone("+1 555 123 4567")
    assert not is_valid_phone("555-1234")


def test_sanitize_payload_masks_secrets():
    data = {
        "email": "reader@bookmail.com",
        "password": "hunter2",
        "payment_method_id": "pm_1234567890abcd",
        "nested": {"api_key": "k"},
    }
    clean = sanitize_payload(data)
    assert clean["email"] == "reader@bookmail.com"
    assert clean["password"] == "****"
    assert clean["payment_method_id"] == "pm_1...abcd"
    assert clean["nested"]["api_key"] == "****"
    assert sanitize_payload(None) is None
