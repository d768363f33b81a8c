"""
Module: relief_engines.consumption
Responsibility:
    Track ingredient consumption by meal batches against the quantities
    requested on the phase's disbursed ingredient request.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The meal batch service
    loads requested quantities and prior usages and hands them in.

Invariants enforced:
    - For every line item, cumulative usage across all batches of the phase
      never exceeds the requested quantity.
    - Usage quantities are strictly positive.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from relief_kernel.exceptions import OverconsumptionError, ValidationError


@dataclass(frozen=True)
class UsageLine:
    """One ingredient usage: a request line item and the quantity consumed."""

    item_id: UUID
    quantity: Decimal


def usage_totals(usages: Iterable[UsageLine]) -> dict[UUID, Decimal]:
    """Sum usage quantities per line item."""
    totals: dict[UUID, Decimal] = defaultdict(Decimal)
    for usage in usages:
        totals[usage.item_id] += usage.quantity
    return dict(totals)


def remaining_quantities(
    requested: Mapping[UUID, Decimal],
    prior_usages: Iterable[UsageLine],
) -> dict[UUID, Decimal]:
    """Requested minus already used, per line item."""
    used = usage_totals(prior_usages)
    return {item_id: qty - used.get(item_id, Decimal(0)) for item_id, qty in requested.items()}


def check_consumption(
    requested: Mapping[UUID, Decimal],
    prior_usages: Iterable[UsageLine],
    new_usages: Iterable[UsageLine],
) -> None:
    """
    Verify that adding ``new_usages`` keeps every item within its request.

    Raises:
        ValidationError: unknown item or non-positive quantity.
        OverconsumptionError: cumulative usage would exceed the requested
            quantity for some item.
    """
    new_usages = list(new_usages)
    for idx, usage in enumerate(new_usages):
        if usage.item_id not in requested:
            raise ValidationError(
                f"ingredient_usages[{idx}].item_id",
                f"{usage.item_id} is not a line item of the disbursed ingredient request",
            )
        if usage.quantity <= 0:
            raise ValidationError(f"ingredient_usages[{idx}].quantity", "must be positive")

    already_used = usage_totals(prior_usages)
    attempted = usage_totals(new_usages)
    for item_id, qty in attempted.items():
        used = already_used.get(item_id, Decimal(0))
        if used + qty > requested[item_id]:
            raise OverconsumptionError(str(item_id), requested[item_id], used, qty)
