"""
Module: relief_engines.allocation
Responsibility:
    Split a phase's total funds across the three fixed budget buckets
    (ingredient, cooking, delivery) from integer percentages, with
    deterministic rounding to the currency minor unit.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import relief_kernel domain values, types and exceptions.

Invariants enforced:
    - ingredient + cooking + delivery == total_funds, always.
    - The first two buckets are rounded half-up to the minor unit; the
      delivery bucket absorbs the rounding remainder.
    - Percentages are non-negative integers summing to exactly 100.

Failure modes:
    - InvalidAllocationError on non-integer, negative or mis-summed
      percentages, or negative total funds.
    - ValidationError on an unsupported currency.

Usage:
    from relief_engines.allocation import allocate

    result = allocate(Decimal("1000000"), 40, 35, 25, "VND")
    result.ingredient  # Decimal("400000")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from relief_engines.tracer import traced_engine
from relief_kernel.db.types import round_money
from relief_kernel.domain.currency import CurrencyRegistry
from relief_kernel.exceptions import InvalidAllocationError
from relief_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class BudgetSplit:
    """Integer percentages for the three buckets."""

    ingredient: int
    cooking: int
    delivery: int

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.ingredient, self.cooking, self.delivery)


@dataclass(frozen=True)
class FundsAllocation:
    """
    Result of splitting total funds across buckets.

    Guarantees:
        ingredient + cooking + delivery == total_funds.
    """

    total_funds: Decimal
    ingredient: Decimal
    cooking: Decimal
    delivery: Decimal
    currency: str

    def bucket(self, name: str) -> Decimal:
        return {
            "ingredient": self.ingredient,
            "cooking": self.cooking,
            "delivery": self.delivery,
        }[name]

    def to_dict(self) -> dict[str, str]:
        return {
            "total_funds": str(self.total_funds),
            "ingredient": str(self.ingredient),
            "cooking": str(self.cooking),
            "delivery": str(self.delivery),
            "currency": self.currency,
        }


def _is_strict_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_split(pct_ingredient: Any, pct_cooking: Any, pct_delivery: Any) -> BudgetSplit:
    """
    Check that a percentage triple is allocatable.

    Raises:
        InvalidAllocationError: non-integer, negative, or sum != 100.
    """
    pcts = (pct_ingredient, pct_cooking, pct_delivery)
    if not all(_is_strict_int(p) for p in pcts):
        raise InvalidAllocationError("percentages must be integers", pcts)
    if any(p < 0 for p in pcts):
        raise InvalidAllocationError("percentages cannot be negative", pcts)
    if sum(pcts) != 100:
        raise InvalidAllocationError(f"percentages sum to {sum(pcts)}, expected 100", pcts)
    return BudgetSplit(pct_ingredient, pct_cooking, pct_delivery)


@traced_engine(
    "allocation", "1.0",
    fingerprint_fields=("total_funds", "pct_ingredient", "pct_cooking", "pct_delivery", "currency"),
)
def allocate(
    total_funds: Decimal,
    pct_ingredient: int,
    pct_cooking: int,
    pct_delivery: int,
    currency: str,
) -> FundsAllocation:
    """
    Split ``total_funds`` into the three buckets.

    Preconditions:
        total_funds >= 0; percentages validated by ``validate_split``.

    Postconditions:
        Sum of the buckets equals ``total_funds`` exactly.

    Raises:
        InvalidAllocationError: invalid percentages or negative funds.
        ValidationError: unsupported currency.
    """
    validate_split(pct_ingredient, pct_cooking, pct_delivery)
    if not isinstance(total_funds, Decimal) or not total_funds.is_finite():
        raise InvalidAllocationError("total funds must be a finite Decimal")
    if total_funds < 0:
        raise InvalidAllocationError("total funds cannot be negative")

    places = CurrencyRegistry.decimal_places(currency)
    if round_money(total_funds, places) != total_funds:
        raise InvalidAllocationError(
            f"total funds {total_funds} has more than {places} decimal places for {currency}"
        )
    hundred = Decimal(100)

    ingredient = round_money(total_funds * pct_ingredient / hundred, places)
    cooking = round_money(total_funds * pct_cooking / hundred, places)
    delivery = total_funds - ingredient - cooking
    if delivery < 0:
        # two half-up roundings overshot the total by one minor unit
        cooking += delivery
        delivery = Decimal(0).scaleb(-places)

    logger.debug(
        "funds_allocated",
        extra={
            "total_funds": str(total_funds),
            "ingredient": str(ingredient),
            "cooking": str(cooking),
            "delivery": str(delivery),
            "currency": currency,
        },
    )

    return FundsAllocation(
        total_funds=total_funds,
        ingredient=ingredient,
        cooking=cooking,
        delivery=delivery,
        currency=currency.upper(),
    )
