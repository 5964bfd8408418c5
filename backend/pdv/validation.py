from __future__ import annotations

from typing import Any

from .errors import ValidationError


# Maximum money value: R$ 9.999.999,99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for JSON payload values.

    Accepts ints and plain digit strings; rejects bools, floats, decimals and
    scientific notation so that money in cents can never be silently truncated.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def get_int(
    data: dict,
    field: str,
    *,
    required: bool = True,
    default: int | None = None,
    minimum: int | None = None,
) -> int | None:
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return default
    result = coerce_int(value, field)
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def get_cents(data: dict, field: str, *, required: bool = True, default: int | None = None) -> int | None:
    """Money field in cents: integer in [0, MAX_PRICE_CENTS]."""
    result = get_int(data, field, required=required, default=default, minimum=0)
    if result is not None and result > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed value ({MAX_PRICE_CENTS})")
    return result


def get_text(data: dict, field: str, *, required: bool = False, max_length: int = 255) -> str | None:
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value
