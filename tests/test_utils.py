from decimal import Decimal

import pytest

from app.flock.errors import BadRequest
from app.flock.utils import parse_decimal, parse_int


def test_parse_int_accepts_integral_values():
    assert parse_int("12") == 12
    assert parse_int(3.0) == 3
    assert parse_int(None, 7) == 7
    assert parse_int("", 0) == 0


@pytest.mark.parametrize("value", [2.7, "2.7", True, "abc", float("nan")])
def test_parse_int_rejects_fractions_and_junk(value):
    with pytest.raises(BadRequest) as exc:
        parse_int(value)
    assert exc.value.message.startswith("Invalid integer")


def test_parse_decimal_keeps_cents():
    assert parse_decimal("50.5") == Decimal("50.5")
    assert parse_decimal(12) == Decimal("12")
    assert parse_decimal(None) is None


@pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", "sNaN", False])
def test_parse_decimal_rejects_non_finite(value):
    with pytest.raises(BadRequest) as exc:
        parse_decimal(value)
    assert exc.value.message.startswith("Invalid amount")


def test_parse_decimal_rejects_amounts_beyond_column():
    with pytest.raises(BadRequest) as exc:
        parse_decimal("10000000000")
    assert exc.value.message == "Amount must be at most 9999999999.99."
