# levies/apportion.py
"""
Largest-remainder (Hamilton) apportionment in integer cents.

Every share is first floored to a whole cent. The cents left over go, one
each, to the keys with the largest fractional remainders; equal remainders
are broken by input order. Shares always sum to the total exactly.

    >>> apportion(100, [1, 1, 1]).shares
    [34, 33, 33]
"""
import math
from decimal import Decimal, ROUND_HALF_UP
from fractions import Fraction
from typing import Any, List, Mapping, NamedTuple, Sequence, Union

from common.errors import ValidationError

CENTS = Decimal("0.01")


class Apportionment(NamedTuple):
    keys: List[Any]
    shares: List[int]
    reconciled: List[Any]  # keys that received a leftover cent, largest remainder first

    def as_dict(self) -> dict:
        return dict(zip(self.keys, self.shares))


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENTS)


def apportion(total_cents: int, weights: Union[Mapping[Any, Any], Sequence[Any]]) -> Apportionment:
    """
    Split `total_cents` by `weights`. A mapping keeps its keys (e.g. lot id ->
    entitlement, in lot id order); a plain sequence is keyed by position.
    """
    if isinstance(weights, Mapping):
        pairs = list(weights.items())
    else:
        pairs = list(enumerate(weights))
    if not pairs:
        raise ValidationError("Cannot apportion over an empty set of weights")
    if int(total_cents) != total_cents or total_cents < 0:
        raise ValidationError("Total to apportion must be a non-negative whole number of cents")

    keys = [k for k, _ in pairs]
    fracs = [Fraction(w) for _, w in pairs]
    if any(f < 0 for f in fracs):
        raise ValidationError("Weights cannot be negative")
    weight_sum = sum(fracs)
    if weight_sum <= 0:
        raise ValidationError("Total weight must be greater than zero")

    total = int(total_cents)
    raw = [total * f / weight_sum for f in fracs]
    shares = [math.floor(r) for r in raw]
    leftover = total - sum(shares)

    by_remainder = sorted(range(len(raw)), key=lambda i: (-(raw[i] - shares[i]), i))
    reconciled = []
    for i in by_remainder[:leftover]:
        shares[i] += 1
        reconciled.append(keys[i])

    return Apportionment(keys=keys, shares=shares, reconciled=reconciled)
