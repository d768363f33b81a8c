"""
Module: relief_engines.reconciliation
Responsibility:
    Pure budget reconciliation checks: request totals against allocated
    buckets, line totals against quantity x unit price, and expense-proof
    variance against the planned amount.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A request total must equal its bucket amount exactly whenever the
      bucket amount is defined and non-zero (configurable for operation
      requests via the match policy).
    - A line total must equal quantity x unit price at minor-unit precision.
    - Proof variance is never an error; it is measured and flagged.

Failure modes:
    - BudgetMismatchError from ``check_bucket_match`` and
      ``check_line_items``.
    - ValidationError from ``check_line_items`` on a non-positive quantity
      or negative price.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from relief_engines.tracer import traced_engine
from relief_kernel.db.types import round_money
from relief_kernel.exceptions import BudgetMismatchError, ValidationError
from relief_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

MATCH_EXACT = "exact"
MATCH_CEILING = "ceiling"
MATCH_NONE = "none"


@dataclass(frozen=True)
class LineAmount:
    """The monetary part of a request line item."""

    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class ProofVariance:
    """Divergence between a proof's claimed amount and the planned amount."""

    planned_amount: Decimal
    claimed_amount: Decimal
    variance_amount: Decimal
    variance_percent: Decimal
    variance_warning: bool


def check_bucket_match(
    bucket: str,
    bucket_amount: Decimal | None,
    total: Decimal,
    policy: str = MATCH_EXACT,
) -> None:
    """
    Reconcile a request total against its budget bucket.

    A bucket that is undefined (None) or zero imposes no constraint.

    Raises:
        BudgetMismatchError: ``exact`` and total != bucket, or ``ceiling``
            and total > bucket.
    """
    if bucket_amount is None or bucket_amount == 0 or policy == MATCH_NONE:
        return
    if policy == MATCH_CEILING:
        if total > bucket_amount:
            raise BudgetMismatchError(bucket, bucket_amount, total)
        return
    if total != bucket_amount:
        raise BudgetMismatchError(bucket, bucket_amount, total)


def check_line_items(lines: Sequence[LineAmount], decimal_places: int) -> Decimal:
    """
    Validate each line and return the sum of line totals.

    Raises:
        ValidationError: empty list, non-positive quantity, negative price.
        BudgetMismatchError: a line total differs from quantity x unit price.
    """
    if not lines:
        raise ValidationError("items", "at least one line item is required")
    total = Decimal(0)
    for idx, line in enumerate(lines):
        if line.quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity", "must be positive")
        if line.unit_price < 0:
            raise ValidationError(f"items[{idx}].unit_price", "cannot be negative")
        expected = round_money(line.quantity * line.unit_price, decimal_places)
        if line.line_total != expected:
            raise BudgetMismatchError(f"items[{idx}].line_total", expected, line.line_total)
        total += line.line_total
    return total


@traced_engine(
    "proof_variance", "1.0",
    fingerprint_fields=("planned_amount", "claimed_amount", "tolerance_percent"),
)
def compute_proof_variance(
    planned_amount: Decimal,
    claimed_amount: Decimal,
    tolerance_percent: Decimal = Decimal("0"),
) -> ProofVariance:
    """
    Measure how far a proof's claimed amount diverges from plan.

    variance_amount = claimed - planned; variance_percent is relative to
    planned (2 dp, 0 when planned is 0 and the amounts agree, 100 when
    planned is 0 and something was claimed).  The warning is raised when
    |variance_percent| exceeds ``tolerance_percent``.
    """
    variance_amount = claimed_amount - planned_amount
    if planned_amount == 0:
        variance_percent = Decimal("0.00") if variance_amount == 0 else Decimal("100.00")
    else:
        variance_percent = round_money(variance_amount / planned_amount * 100, 2)
    warning = abs(variance_percent) > tolerance_percent or (
        tolerance_percent == 0 and variance_amount != 0
    )

    if warning:
        logger.warning(
            "proof_variance_flagged",
            extra={
                "planned_amount": str(planned_amount),
                "claimed_amount": str(claimed_amount),
                "variance_percent": str(variance_percent),
                "tolerance_percent": str(tolerance_percent),
            },
        )

    return ProofVariance(
        planned_amount=planned_amount,
        claimed_amount=claimed_amount,
        variance_amount=variance_amount,
        variance_percent=variance_percent,
        variance_warning=warning,
    )
