"""
Currency helpers used by every item-editing surface.

Parsing is lenient: malformed input degrades to 0 instead of raising.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest value a Numeric(10, 2) money column can hold
MAX_AMOUNT = Decimal("99999999.99")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert a number (or numeric string) to Decimal, 0 when it can't be read"""
    if isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps floats like 7.5 from turning into 7.4999...
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal(0)


def quantize_money(value: Number) -> Decimal:
    """Round to cents; NaN, infinities and values too long for the decimal context become 0"""
    value = to_decimal(value)
    if not value.is_finite():
        return ZERO
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return ZERO


def parse_currency_input(text) -> Decimal:
    """
    Parse user-typed currency text into a two-decimal amount.

    Strips everything except digits and dots, keeps at most two fractional
    digits (truncated, not rounded) and returns 0 if nothing parseable is left.

        "$12.50" -> 12.50
        "12.999" -> 12.99
        "abc"    -> 0.00
    """
    if text is None:
        return ZERO
    if isinstance(text, (int, float, Decimal)) and not isinstance(text, bool):
        text = str(text)
    if not isinstance(text, str):
        return ZERO

    clean = re.sub(r"[^\d.]", "", text)
    parts = clean.split(".")
    formatted = parts[0]
    if len(parts) > 1:
        formatted += "." + parts[1][:2]

    try:
        value = Decimal(formatted)
    except InvalidOperation:
        return ZERO
    return quantize_money(value)


def format_amount(amount: Number) -> str:
    """Fixed two decimal places, no currency symbol"""
    return f"{quantize_money(amount):.2f}"
