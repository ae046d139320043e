# Overview: Input coercion shared by routes and services (currency, quantities, identifiers).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Menu item ids are PostgreSQL INTEGER serials. Offline devices mint temporary
# ids from the millisecond clock, which always exceed this.
MAX_ITEM_ID = 2_147_483_647

TEMP_ID_PREFIXES = ("temp-", "offline-", "tmp-")


def require_int(value: Any, field: str) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def require_positive_int(value: Any, field: str) -> int:
    number = require_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be positive")
    return number


def to_cents(value: Any, field: str, *, allow_negative: bool = False) -> int:
    """
    Convert a decimal currency amount (2.5, "2.50") to integer cents, half-up.

    Floats go through str() first so 0.1 + 0.2 style noise doesn't leak in.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    cents = int(amount * 100)
    if cents < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative")
    if abs(cents) > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} is too large")
    return cents


def cents_from(data: dict, key: str, *, default: int | None = None) -> int:
    """Read `<key>_cents` if present, else decimal `<key>`, else default."""
    if data.get(f"{key}_cents") is not None:
        cents = require_int(data[f"{key}_cents"], f"{key}_cents")
        if cents < 0:
            raise ValidationError(f"{key}_cents cannot be negative")
        return cents
    if data.get(key) is not None:
        return to_cents(data[key], key)
    if default is not None:
        return default
    raise ValidationError(f"{key} is required")


def parse_item_id(value: Any) -> int | None:
    """
    Return the menu item id if `value` is a genuine server id, else None.

    Temporary ids ("temp-17", "offline-3") and clock-derived numbers minted by
    offline devices are not genuine.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lower().startswith(TEMP_ID_PREFIXES):
            return None
        if not stripped.isdigit():
            return None
        value = int(stripped)
    if not isinstance(value, int):
        return None
    if value <= 0 or value > MAX_ITEM_ID:
        return None
    return value


def optional_user_id(payload: dict) -> int | None:
    """Operator id from `userId` or a `user` object as devices send it."""
    raw = payload.get("userId")
    if raw is None and isinstance(payload.get("user"), dict):
        raw = payload["user"].get("id")
    if raw is None:
        return None
    return require_positive_int(raw, "userId")


def optional_cents(data: dict, key: str) -> int | None:
    if data.get(key) is None and data.get(f"{key}_cents") is None:
        return None
    return cents_from(data, key)
