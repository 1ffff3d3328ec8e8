from __future__ import annotations

from typing import Any

from resale.services.errors import ValidationError


# Maximum price: 9,999,999.99 in major units (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Upper bound on a single purchase/cart quantity
MAX_QUANTITY = 1_000_000


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for JSON input.

    Accepts ints and plain digit strings. Rejects bools, floats,
    decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    qty = coerce_int(value, field)
    minimum = 0 if allow_zero else 1
    if qty < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return qty


def parse_price_cents(value: Any, field: str = "price_cents") -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    price = coerce_int(value, field)
    if price <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return price


def parse_id(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    ident = coerce_int(value, field)
    if ident <= 0:
        raise ValidationError(f"{field} must be a positive id")
    return ident


def require_fields(data: dict | None, *fields: str) -> dict:
    if data is None or not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return data


def optional_text(data: dict, field: str, max_length: int) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
