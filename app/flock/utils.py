from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import request

from app.flock.constants import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from app.flock.errors import BadRequest


def parse_date(s: Any) -> date | None:
    """Parse YYYY-MM-DD date string (datetimes are truncated)."""
    if s is None or isinstance(s, date) and not isinstance(s, datetime):
        return s
    if isinstance(s, datetime):
        return s.date()
    s = str(s).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError as e:
        raise BadRequest(f"Invalid date: {s}") from e


def parse_datetime(s: Any) -> datetime | None:
    if s is None or isinstance(s, datetime):
        return s
    s = str(s).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1]
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as e:
        raise BadRequest(f"Invalid datetime: {s}") from e
    return dt.replace(tzinfo=None)


def parse_time(s: Any) -> time | None:
    if s is None or isinstance(s, time):
        return s
    s = str(s).strip()
    if not s:
        return None
    try:
        return time.fromisoformat(s)
    except ValueError as e:
        raise BadRequest(f"Invalid time: {s}") from e


# Numeric(12, 2) columns hold at most ten integer digits
MAX_AMOUNT = Decimal("9999999999.99")


def parse_int(value: Any, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise BadRequest(f"Invalid integer: {value}")
    if isinstance(value, float):
        if not value.is_integer():
            raise BadRequest(f"Invalid integer: {value}")
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise BadRequest(f"Invalid integer: {value}") from e


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise BadRequest(f"Invalid amount: {value}")
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise BadRequest(f"Invalid amount: {value}") from e
    if not d.is_finite():
        raise BadRequest(f"Invalid amount: {value}")
    if abs(d) > MAX_AMOUNT:
        raise BadRequest(f"Amount must be at most {MAX_AMOUNT}.")
    return d


def parse_bool(value: Any) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    v = str(value).strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    raise BadRequest(f"Invalid boolean: {value}")


def clean_str(value: Any) -> str | None:
    """Strip a string; empty becomes None."""
    if value is None:
        return None
    return str(value).strip() or None


def check_length(errors: list[str], label: str, value: str | None, *, min_len: int = 0, max_len: int | None = None) -> None:
    n = len(value or "")
    if n < min_len:
        errors.append(f"{label} is required." if min_len == 1 else f"{label} must be at least {min_len} characters.")
    elif max_len is not None and n > max_len:
        errors.append(f"{label} must be at most {max_len} characters.")


def check_choice(errors: list[str], label: str, value: str | None, choices: tuple[str, ...]) -> None:
    if value is not None and value not in choices:
        errors.append(f"Invalid {label}. Must be one of: {', '.join(choices)}")


def clamp_limit(value: Any, *, default: int = DEFAULT_LIST_LIMIT, maximum: int = MAX_LIST_LIMIT) -> int:
    n = parse_int(value, default)
    if n is None or n < 1 or n > maximum:
        raise BadRequest(f"limit must be between 1 and {maximum}")
    return n


def parse_offset(value: Any) -> int:
    n = parse_int(value, 0) or 0
    if n < 0:
        raise BadRequest("offset must be >= 0")
    return n


def json_body() -> dict:
    """Request JSON object (empty dict when absent)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def iso(value: date | datetime | time | None) -> str | None:
    return value.isoformat() if value is not None else None


def money(value: Decimal | float | int | None) -> str:
    """Two-decimal string for currency amounts."""
    return f"{Decimal(str(value or 0)).quantize(Decimal('0.01'))}"
