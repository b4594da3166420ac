"""
Shared utilities for the notification relay.

This module provides small helpers used across the relay: value coercion
for loosely typed row images, exact number rendering, HTML escaping for
Telegram messages, and hashing.
"""

import hashlib
from datetime import datetime, timezone
from decimal import Decimal, DecimalException, InvalidOperation
from typing import Any

_TRUE_STRINGS = {"true", "t", "1", "yes", "y", "on"}


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a row value to Decimal, falling back to zero.

    Strings and floats go through ``str`` so that ``0.1`` stays ``0.1``
    instead of its binary approximation. Missing, non-numeric and
    non-finite values become ``Decimal(0)``.

    Args:
        value: Raw column value

    Returns:
        Finite Decimal
    """
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return Decimal(0)
    if not result.is_finite():
        return Decimal(0)
    return result


def to_bool(value: Any) -> bool:
    """Coerce a row value to bool, accepting the usual string spellings."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def format_number(value: Any) -> str:
    """
    Render a number exactly, without float noise or trailing zeros.

    Args:
        value: Number, numeric string or None

    Returns:
        Plain decimal string, ``"0"`` for missing values
    """
    if value is None:
        return "0"
    number = to_decimal(value)
    if number == 0:
        return "0"
    try:
        return format(number.normalize(), "f")
    except DecimalException:
        # exponent outside the context range
        return str(number)


def format_grouped(value: Any) -> str:
    """Render a number with thousands separators, e.g. ``1,000``."""
    number = to_decimal(value)
    try:
        normalized = number.normalize()
        if normalized == normalized.to_integral_value():
            return f"{int(normalized):,}"
        return f"{normalized:,f}"
    except (DecimalException, ValueError):
        return str(number)


def escape_html(value: Any) -> str:
    """Escape a value for Telegram's HTML parse mode."""
    if value is None:
        return ""
    return (
        str(value)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def calculate_hash(data: str) -> str:
    """
    Calculate SHA256 hash of string data.

    Args:
        data: String data to hash

    Returns:
        Hexadecimal hash string
    """
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate string to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix
