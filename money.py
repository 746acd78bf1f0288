"""Fixed-point helpers shared by the balance and analytics code.

Amounts are stored as integer cents and surface as ``Decimal`` at two
fractional digits, rounded half-up. Sums run over the integer columns, so
binary floats never enter a calculation.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

import models
from errors import ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")
# Keeps cents, and sums of many of them, inside a signed 64-bit column.
MAX_AMOUNT = Decimal("999999999999999.99")

Number = Union[Decimal, int, float, str, None]


def to_decimal(value: Number) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc


def quantize(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Number) -> int:
    return int((quantize(value) * HUNDRED).quantize(Decimal("1")))


def from_cents(cents: Union[int, None]) -> Decimal:
    return (Decimal(int(cents or 0)) / HUNDRED).quantize(CENT)


def percentage(part: Number, whole: Number) -> Decimal:
    """Share of ``part`` in ``whole`` as a percentage with two decimals.

    A zero ``whole`` yields 0.00 instead of raising.
    """
    whole_dec = to_decimal(whole)
    if whole_dec == 0:
        return ZERO
    return quantize(to_decimal(part) / whole_dec * HUNDRED)


def savings_rate(income: Number, expenses: Number) -> Decimal:
    income_dec = quantize(income)
    return percentage(income_dec - quantize(expenses), income_dec)


def to_signed_amount(magnitude: Number, direction: models.TransactionType) -> Decimal:
    """Apply the direction sign to a positive magnitude.

    >>> to_signed_amount(Decimal("123.456"), models.TransactionType.expense)
    Decimal('-123.46')
    """
    if magnitude is None or direction is None:
        raise ValidationError("Amount and transaction type are required")
    raw = to_decimal(magnitude)
    if not raw.is_finite() or raw <= 0:
        raise ValidationError("Amount must be greater than zero")
    amount = quantize(raw)
    if amount == 0:
        raise ValidationError("Amount must be at least 0.01")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")
    try:
        direction = models.TransactionType(direction)
    except ValueError as exc:
        raise ValidationError(f"Unknown transaction type: {direction!r}") from exc
    if direction == models.TransactionType.income:
        return amount
    return -amount
