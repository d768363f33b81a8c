"""
Campaign Module Service (``relief_modules.campaign.service``).

Responsibility
--------------
Create campaigns with their phases, record received donations, keep the
cached campaign status in step with its phases, and answer the
current-phase query.

Architecture position
---------------------
**Modules layer** -- flush-only.  Status arithmetic lives in
``relief_engines.campaign_status``.

Invariants enforced
-------------------
* A campaign is COMPLETED only when every phase is COMPLETED.
* ``received_amount`` never decreases; each donation is added in SQL under
  a row lock, so concurrent donations all land.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from relief_engines.campaign_status import (
    CampaignStatus,
    PhasePosition,
    derive_campaign_status,
    select_current_phase,
)
from relief_engines.phase_status import PhaseStatus
from relief_kernel.db.types import round_money, to_decimal
from relief_kernel.domain.currency import CurrencyRegistry
from relief_kernel.exceptions import NotFoundError, ValidationError
from relief_kernel.logging_config import get_logger
from relief_kernel.services.base import BaseService
from relief_modules.campaign.models import CampaignDraft
from relief_modules.campaign.orm import CampaignModel
from relief_modules.phase.orm import PhaseModel
from relief_modules.phase.service import PhaseService

logger = get_logger("modules.campaign.service")


class CampaignService(BaseService):

    def create_campaign(self, draft: CampaignDraft, actor_id: UUID) -> CampaignModel:
        if not draft.title or not draft.title.strip():
            raise ValidationError("title", "cannot be empty")
        currency = CurrencyRegistry.get(draft.currency)
        target = to_decimal(draft.target_amount, "target_amount")
        if target < 0:
            raise ValidationError("target_amount", "cannot be negative")
        if round_money(target, currency.decimal_places) != target:
            raise ValidationError("target_amount", f"too many decimal places for {currency.code}")

        campaign = CampaignModel(
            title=draft.title.strip(),
            description=draft.description,
            target_amount=target,
            received_amount=Decimal("0"),
            currency=currency.code,
            status=CampaignStatus.ACTIVE.value,
            created_by_id=actor_id,
        )
        self.session.add(campaign)
        self.session.flush()

        phases = PhaseService(self.session, self.clock)
        for ordinal, phase_draft in enumerate(draft.phases, start=1):
            phase = phases.create_phase(campaign.id, ordinal, phase_draft, currency.code, actor_id)
            campaign.phases.append(phase)
        self.session.flush()

        logger.info(
            "campaign_created",
            extra={
                "campaign_id": str(campaign.id),
                "currency": currency.code,
                "target_amount": str(target),
                "phase_count": len(draft.phases),
            },
        )
        return campaign

    def get(self, campaign_id: UUID) -> CampaignModel:
        return self._get_or_raise(CampaignModel, campaign_id, "campaign")

    def lock(self, campaign_id: UUID) -> CampaignModel:
        """Reload a campaign holding a row lock (``SELECT ... FOR UPDATE``)."""
        campaign = self.session.execute(
            select(CampaignModel)
            .where(CampaignModel.id == campaign_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if campaign is None:
            raise NotFoundError("campaign", str(campaign_id))
        return campaign

    def record_received_amount(
        self,
        campaign_id: UUID,
        amount: Decimal,
        actor_id: UUID,
    ) -> CampaignModel:
        """Add a received donation amount to the campaign."""
        campaign = self.lock(campaign_id)
        amount = to_decimal(amount, "amount")
        if amount <= 0:
            raise ValidationError("amount", "must be positive")
        places = CurrencyRegistry.decimal_places(campaign.currency)
        if round_money(amount, places) != amount:
            raise ValidationError("amount", f"too many decimal places for {campaign.currency}")
        campaign.received_amount = CampaignModel.received_amount + amount
        campaign.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "campaign_received_amount_recorded",
            extra={
                "campaign_id": str(campaign.id),
                "amount": str(amount),
                "received_amount": str(campaign.received_amount),
            },
        )
        return campaign

    def refresh_status(self, campaign: CampaignModel) -> CampaignStatus:
        """Re-derive and cache the campaign status from its phases."""
        status = derive_campaign_status([PhaseStatus(p.status) for p in campaign.phases])
        if status.value != campaign.status:
            logger.info(
                "campaign_status_changed",
                extra={
                    "campaign_id": str(campaign.id),
                    "from_status": campaign.status,
                    "to_status": status.value,
                },
            )
            campaign.status = status.value
        return status

    def current_phase(self, campaign_id: UUID) -> PhaseModel | None:
        campaign = self.get(campaign_id)
        chosen = select_current_phase([
            PhasePosition(id=p.id, ordinal=p.ordinal, status=PhaseStatus(p.status))
            for p in campaign.phases
        ])
        if chosen is None:
            return None
        return next(p for p in campaign.phases if p.id == chosen.id)
