"""
Conversion between human decimal amounts and integer base units.

Works for any token precision (including odd ones like 7 or 9) by string
splitting on a normalised plain-decimal representation, so no float ever
touches an amount.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union

from core.errors import ConversionError

AmountLike = Union[str, int, Decimal, float]


def _plain_decimal(value: AmountLike) -> str:
    if isinstance(value, bool):
        raise ConversionError(f"Invalid amount: {value!r}")
    raw = value if isinstance(value, Decimal) else str(value).strip()
    try:
        d = Decimal(raw)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ConversionError(f"Invalid amount: {value!r}") from e
    if not d.is_finite():
        raise ConversionError(f"Invalid amount: {value!r}")
    if d < 0:
        raise ConversionError(f"Amount must not be negative: {value!r}")
    d = d.copy_abs()  # drops the sign of -0 without context rounding
    # 'f' formatting expands exponents ("1E-7" -> "0.0000001")
    return format(d, "f")


def _check_decimals(decimals: int) -> int:
    try:
        d = int(decimals)
    except (TypeError, ValueError) as e:
        raise ConversionError(f"Invalid token decimals: {decimals!r}") from e
    if d < 0 or d > 255:
        raise ConversionError(f"Token decimals out of range: {d}")
    return d


def to_base_units(amount: AmountLike, decimals: int) -> str:
    """Convert a decimal amount to base units, truncating digits beyond ``decimals``."""
    decimals = _check_decimals(decimals)
    text = _plain_decimal(amount)
    whole, _, fractional = text.partition(".")
    fractional = fractional[:decimals].ljust(decimals, "0")
    return (whole + fractional).lstrip("0") or "0"


def from_base_units(amount: Union[str, int], decimals: int) -> str:
    """Render an integer base-unit amount as a decimal string without trailing zeros."""
    decimals = _check_decimals(decimals)
    digits = str(parse_base_units(amount))
    if digits == "0":
        return "0"
    if decimals == 0:
        return digits
    digits = digits.rjust(decimals + 1, "0")
    whole, fractional = digits[:-decimals], digits[-decimals:].rstrip("0")
    return f"{whole}.{fractional}" if fractional else whole


def parse_base_units(value: Union[str, int]) -> int:
    """Normalise an integer-like value (int, digit string, 0x-hex) into an unsigned int."""
    if isinstance(value, bool):
        raise ConversionError(f"Invalid base-unit amount: {value!r}")
    if isinstance(value, int):
        result = value
    else:
        text = str(value).strip()
        try:
            result = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError as e:
            raise ConversionError(f"Invalid base-unit amount: {value!r}") from e
    if result < 0:
        raise ConversionError(f"Base-unit amount must not be negative: {value!r}")
    return result
