"""
Module: relief_engines.campaign_status
Responsibility:
    Campaign-level aggregation over its phases: derived campaign status,
    funding progress and the authoritative current phase.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from relief_engines.phase_status import TERMINAL_STATUSES, PhaseStatus
from relief_kernel.db.types import round_money


class CampaignStatus(str, Enum):
    ACTIVE = "ACTIVE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class PhasePosition:
    id: UUID
    ordinal: int
    status: PhaseStatus


def derive_campaign_status(phase_statuses: Sequence[PhaseStatus]) -> CampaignStatus:
    """
    ACTIVE while no phase has left PLANNING, COMPLETED once every phase is
    COMPLETED, IN_PROGRESS otherwise (including cancelled or failed phases).
    """
    if not phase_statuses or all(s is PhaseStatus.PLANNING for s in phase_statuses):
        return CampaignStatus.ACTIVE
    if all(s is PhaseStatus.COMPLETED for s in phase_statuses):
        return CampaignStatus.COMPLETED
    return CampaignStatus.IN_PROGRESS


def funding_progress(received: Decimal, target: Decimal) -> Decimal:
    """received / target x 100 at 2 dp; 0 when there is no target."""
    if target <= 0:
        return Decimal("0.00")
    return round_money(received / target * 100, 2)


def select_current_phase(phases: Sequence[PhasePosition]) -> PhasePosition | None:
    """The lowest-ordinal phase that is not terminal, or None."""
    for phase in sorted(phases, key=lambda p: p.ordinal):
        if phase.status not in TERMINAL_STATUSES:
            return phase
    return None
