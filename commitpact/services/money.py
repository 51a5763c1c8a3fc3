from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from commitpact.services.errors import InvalidAmount

CENT = Decimal("0.01")


def to_cents(amount: Decimal | int | str) -> int:
    """Convert a euro amount with at most two decimals to integer cents."""
    try:
        d = Decimal(str(amount))
    except InvalidOperation:
        raise InvalidAmount(f"not a number: {amount!r}")
    if not d.is_finite():
        raise InvalidAmount(f"not a number: {amount!r}")
    if d != d.quantize(CENT):
        raise InvalidAmount(f"at most two decimals allowed: {amount}")
    return int(d * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def round_cents(value: Decimal) -> int:
    """Half-up rounding of a (possibly fractional) cents value."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
