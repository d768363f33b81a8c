"""
Fixtures for module service tests.

Module services flush into the test session and never commit; the
``session`` fixture rolls everything back afterwards.  ``disbursed_request``
and ``ready_batch`` write child rows straight through the services, without
the orchestrator, so each module can be tested at the stage it cares about.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from relief_modules.budget.service import BudgetService
from relief_modules.campaign.models import CampaignDraft
from relief_modules.campaign.service import CampaignService
from relief_modules.delivery.service import DeliveryTaskService
from relief_modules.expense.service import ExpenseProofService
from relief_modules.ingredient.models import IngredientItemInput
from relief_modules.ingredient.service import IngredientRequestService
from relief_modules.meal_batch.models import IngredientUsageInput
from relief_modules.meal_batch.service import MealBatchService
from relief_modules.operation.service import OperationRequestService
from relief_modules.phase.models import PhaseDraft, PlannedIngredientDraft, PlannedMealDraft
from relief_modules.phase.service import PhaseService


@pytest.fixture
def actor_id():
    return uuid4()


@pytest.fixture
def campaign_service(session, clock):
    return CampaignService(session, clock)


@pytest.fixture
def phase_service(session, clock):
    return PhaseService(session, clock)


@pytest.fixture
def budget_service(session, clock):
    return BudgetService(session, clock)


@pytest.fixture
def ingredient_service(session, clock):
    return IngredientRequestService(session, clock)


@pytest.fixture
def operation_service(session, clock):
    return OperationRequestService(session, clock)


@pytest.fixture
def proof_service(session, clock):
    return ExpenseProofService(session, clock)


@pytest.fixture
def batch_service(session, clock):
    return MealBatchService(session, clock)


@pytest.fixture
def delivery_service(session, clock):
    return DeliveryTaskService(session, clock)


@pytest.fixture
def campaign_model(campaign_service, actor_id):
    draft = CampaignDraft(
        title="Bữa cơm miền Trung",
        target_amount=Decimal("2000000"),
        currency="VND",
        phases=(
            PhaseDraft(
                phase_name="Phase 1",
                location="Quang Tri",
                ingredient_budget_percentage=40,
                cooking_budget_percentage=35,
                delivery_budget_percentage=25,
                total_funds=Decimal("1000000"),
                planned_ingredients=(PlannedIngredientDraft("Gạo", Decimal("100"), "kg"),),
                planned_meals=(PlannedMealDraft("Cơm hộp", 500),),
            ),
            PhaseDraft(
                phase_name="Phase 2",
                location="Hue",
                ingredient_budget_percentage=50,
                cooking_budget_percentage=30,
                delivery_budget_percentage=20,
            ),
        ),
    )
    return campaign_service.create_campaign(draft, actor_id)


@pytest.fixture
def phase_model(campaign_model):
    return campaign_model.phases[0]


@pytest.fixture
def unfunded_phase(campaign_model):
    return campaign_model.phases[1]


STANDARD_LINES = (
    IngredientItemInput("Gạo", Decimal("100"), "kg", Decimal("3000")),
    IngredientItemInput("Dầu ăn", Decimal("20"), "l", Decimal("5000")),
)


@pytest.fixture
def standard_lines():
    return list(STANDARD_LINES)


@pytest.fixture
def kitchen_id():
    return uuid4()


@pytest.fixture
def admin_id():
    return uuid4()


@pytest.fixture
def disbursed_request(ingredient_service, phase_model, kitchen_id, admin_id):
    request = ingredient_service.submit(phase_model, kitchen_id, list(STANDARD_LINES))
    ingredient_service.approve(request.id, admin_id)
    return ingredient_service.disburse(request.id, admin_id)


@pytest.fixture
def ready_batch(batch_service, phase_model, disbursed_request, kitchen_id):
    rice = disbursed_request.items[0]
    batch = batch_service.create(
        phase_model, kitchen_id, "Cơm gà", 250,
        [IngredientUsageInput(rice.id, Decimal("50"))],
    )
    return batch_service.mark_ready(batch.id, kitchen_id, media_keys=["batches/1.jpg"])
