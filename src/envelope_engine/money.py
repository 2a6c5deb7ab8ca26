# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Fixed-point currency helpers.

Every persisted amount is a ``Decimal`` with exactly two fractional digits.
Floats are converted through ``str`` so binary representation error never
enters a stored value.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Convert ``value`` to an unrounded Decimal. Raises ValueError on junk input."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a currency amount: {value!r}")
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a currency amount: {value!r}") from exc


def quantize(amount: Decimal) -> Decimal:
    """Round to cents using round-half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: Any) -> Decimal:
    """Convert and round ``value`` to a two-decimal currency amount."""
    amount = to_decimal(value)
    if not amount.is_finite():
        raise ValueError(f"Currency amounts must be finite, got {value!r}")
    return quantize(amount)
