"""
Tests for CampaignService and PhaseService.

Covers:
- Campaign creation with ordered phases and allocated buckets
- Planned ingredients and meals
- Input validation (title, currency, target precision, phase name)
- Received donations, including one recorded through a stale session
- Cached campaign status refresh and current-phase selection
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from relief_engines.campaign_status import CampaignStatus
from relief_kernel.db.engine import session_scope
from relief_kernel.exceptions import InvalidAllocationError, NotFoundError, ValidationError
from relief_modules.campaign.models import CampaignDraft
from relief_modules.campaign.service import CampaignService
from relief_modules.phase.models import PhaseDraft, PlannedMealDraft


def draft_phase(name="P", split=(40, 35, 25), total="1000000", meals=()):
    return PhaseDraft(
        phase_name=name,
        location="Da Nang",
        ingredient_budget_percentage=split[0],
        cooking_budget_percentage=split[1],
        delivery_budget_percentage=split[2],
        total_funds=Decimal(total),
        planned_meals=tuple(meals),
    )


class TestCreateCampaign:

    def test_phases_are_numbered_in_order(self, campaign_model):
        assert [p.ordinal for p in campaign_model.phases] == [1, 2]
        assert [p.phase_name for p in campaign_model.phases] == ["Phase 1", "Phase 2"]

    def test_buckets_are_allocated(self, phase_model):
        assert phase_model.ingredient_fund_amount == Decimal("400000")
        assert phase_model.cooking_fund_amount == Decimal("350000")
        assert phase_model.delivery_fund_amount == Decimal("250000")
        assert phase_model.status == "PLANNING"
        assert phase_model.version == 1

    def test_plan_is_stored(self, phase_model):
        dto = phase_model.to_dto()

        assert [i.name for i in dto.planned_ingredients] == ["Gạo"]
        assert dto.planned_meals[0].quantity == 500

    def test_campaign_starts_active(self, campaign_model):
        dto = campaign_model.to_dto()

        assert dto.status is CampaignStatus.ACTIVE
        assert dto.received_amount == Decimal("0")
        assert dto.total_phases == 2

    def test_empty_title(self, campaign_service, actor_id):
        with pytest.raises(ValidationError) as exc_info:
            campaign_service.create_campaign(CampaignDraft("  ", Decimal("1"), "VND"), actor_id)

        assert exc_info.value.field == "title"

    def test_unsupported_currency(self, campaign_service, actor_id):
        with pytest.raises(ValidationError) as exc_info:
            campaign_service.create_campaign(CampaignDraft("T", Decimal("1"), "ABC"), actor_id)

        assert exc_info.value.field == "currency"

    def test_target_precision(self, campaign_service, actor_id):
        with pytest.raises(ValidationError):
            campaign_service.create_campaign(CampaignDraft("T", Decimal("10.5"), "VND"), actor_id)

    def test_float_target_is_refused(self, campaign_service, actor_id):
        with pytest.raises(ValidationError):
            campaign_service.create_campaign(CampaignDraft("T", 10.0, "VND"), actor_id)

    def test_invalid_split_in_phase(self, campaign_service, actor_id):
        with pytest.raises(InvalidAllocationError):
            campaign_service.create_campaign(
                CampaignDraft("T", Decimal("1"), "VND", phases=(draft_phase(split=(50, 50, 10)),)),
                actor_id,
            )

    def test_blank_phase_name(self, campaign_service, actor_id):
        with pytest.raises(ValidationError) as exc_info:
            campaign_service.create_campaign(
                CampaignDraft("T", Decimal("1"), "VND", phases=(draft_phase(name=" "),)),
                actor_id,
            )

        assert exc_info.value.field == "phase_name"

    def test_non_positive_planned_meal(self, campaign_service, actor_id):
        with pytest.raises(ValidationError):
            campaign_service.create_campaign(
                CampaignDraft("T", Decimal("1"), "VND", phases=(draft_phase(meals=[PlannedMealDraft("X", 0)]),)),
                actor_id,
            )

    def test_usd_campaign(self, campaign_service, actor_id):
        campaign = campaign_service.create_campaign(
            CampaignDraft("T", Decimal("500.00"), "usd", phases=(draft_phase(total="1000.01"),)),
            actor_id,
        )

        phase = campaign.phases[0]
        assert campaign.currency == "USD"
        assert phase.currency == "USD"
        assert phase.ingredient_fund_amount + phase.cooking_fund_amount + phase.delivery_fund_amount == Decimal("1000.01")


class TestReceivedAmount:

    def test_amounts_accumulate(self, campaign_service, campaign_model, actor_id):
        campaign_service.record_received_amount(campaign_model.id, "500000", actor_id)
        campaign = campaign_service.record_received_amount(campaign_model.id, Decimal("250000"), actor_id)

        assert campaign.received_amount == Decimal("750000")
        assert campaign.updated_by_id == actor_id

    @pytest.mark.parametrize("amount", ["0", "-1", "1.5"])
    def test_invalid_amount(self, campaign_service, campaign_model, actor_id, amount):
        with pytest.raises(ValidationError):
            campaign_service.record_received_amount(campaign_model.id, amount, actor_id)

    def test_unknown_campaign(self, campaign_service, actor_id):
        with pytest.raises(NotFoundError) as exc_info:
            campaign_service.record_received_amount(uuid4(), "1", actor_id)

        assert exc_info.value.entity_type == "campaign"

    def test_donation_through_stale_session_is_not_lost(self, database, clock, actor_id):
        with session_scope(database) as s:
            campaign_id = CampaignService(s, clock).create_campaign(
                CampaignDraft(title="Cháo sáng", target_amount=Decimal("1000000"), currency="VND"),
                actor_id,
            ).id

        stale = database()
        try:
            assert CampaignService(stale, clock).get(campaign_id).received_amount == 0
            with session_scope(database) as other:
                CampaignService(other, clock).record_received_amount(campaign_id, "500000", actor_id)

            campaign = CampaignService(stale, clock).record_received_amount(campaign_id, "250000", actor_id)
            stale.commit()
        finally:
            stale.close()

        assert campaign.received_amount == Decimal("750000")
        with session_scope(database) as s:
            assert CampaignService(s, clock).get(campaign_id).received_amount == Decimal("750000")


class TestStatusAndCurrentPhase:

    def test_refresh_follows_phases(self, campaign_service, campaign_model):
        campaign_model.phases[0].status = "COOKING"

        assert campaign_service.refresh_status(campaign_model) is CampaignStatus.IN_PROGRESS
        assert campaign_model.status == "IN_PROGRESS"

    def test_completed_when_every_phase_completed(self, campaign_service, campaign_model):
        for phase in campaign_model.phases:
            phase.status = "COMPLETED"

        assert campaign_service.refresh_status(campaign_model) is CampaignStatus.COMPLETED

    def test_current_phase_is_first_open_phase(self, campaign_service, campaign_model, session):
        campaign_model.phases[0].status = "CANCELLED"
        session.flush()

        current = campaign_service.current_phase(campaign_model.id)

        assert current.ordinal == 2

    def test_no_current_phase_when_all_terminal(self, campaign_service, campaign_model, session):
        campaign_model.phases[0].status = "COMPLETED"
        campaign_model.phases[1].status = "FAILED"
        session.flush()

        assert campaign_service.current_phase(campaign_model.id) is None


class TestPhaseLookups:

    def test_list_for_campaign(self, phase_service, campaign_model):
        phases = phase_service.list_for_campaign(campaign_model.id)

        assert [p.ordinal for p in phases] == [1, 2]

    def test_lock_returns_phase(self, phase_service, phase_model):
        assert phase_service.lock(phase_model.id) is phase_model

    def test_lock_unknown(self, phase_service):
        with pytest.raises(NotFoundError):
            phase_service.lock(uuid4())

    def test_planned_meal_from_other_phase(self, phase_service, phase_model, unfunded_phase):
        meal = phase_model.planned_meals[0]

        with pytest.raises(ValidationError):
            phase_service.planned_meal(unfunded_phase.id, meal.id)

        assert phase_service.planned_meal(phase_model.id, meal.id) is meal
