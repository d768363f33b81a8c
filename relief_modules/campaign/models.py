"""
Campaign Domain Models (``relief_modules.campaign.models``).

A campaign owns an ordered list of phases.  Its status is derived from the
phase statuses and cached on every phase status change.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from relief_engines.campaign_status import CampaignStatus
from relief_modules.phase.models import Phase, PhaseDraft


@dataclass(frozen=True)
class CampaignDraft:
    """Input for creating a campaign together with its phases."""
    title: str
    target_amount: Decimal
    currency: str
    phases: tuple[PhaseDraft, ...] = ()
    description: str | None = None


@dataclass(frozen=True)
class Campaign:
    id: UUID
    title: str
    target_amount: Decimal
    received_amount: Decimal
    currency: str
    status: CampaignStatus = CampaignStatus.ACTIVE
    description: str | None = None
    phases: tuple[Phase, ...] = field(default=())

    @property
    def total_phases(self) -> int:
        return len(self.phases)
