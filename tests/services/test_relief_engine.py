"""
End-to-end tests for the ReliefEngine facade.

Covers:
- The full phase lifecycle with one notification per status change
- Resubmission after rejected requests, proofs and failed deliveries
- Budget changes re-checked when a pending request is reviewed
- Terminated phases refusing every mutation
- Campaign views, donations and current phase
- Ownership checks, upload slots and "my" queries
- Conflict retry and notification failure handling
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from relief_config import EngineConfig
from relief_kernel.exceptions import (
    BudgetMismatchError,
    ConflictError,
    InvalidStateTransitionError,
    MissingEvidenceError,
    NotFoundError,
    OverconsumptionError,
    PhaseTerminatedError,
    UnauthorizedActorError,
    ValidationError,
)
from relief_modules.delivery.models import DeliveryTaskFilter
from relief_modules.ingredient.models import IngredientRequestFilter
from relief_modules.meal_batch.models import MealBatchFilter
from relief_services import ReliefEngine
from relief_services.phase_orchestrator import PhaseOrchestrator

LIFECYCLE = [
    ("PLANNING", "AWAITING_INGREDIENT_DISBURSEMENT"),
    ("AWAITING_INGREDIENT_DISBURSEMENT", "INGREDIENT_PURCHASE"),
    ("INGREDIENT_PURCHASE", "AWAITING_AUDIT"),
    ("AWAITING_AUDIT", "AWAITING_COOKING_DISBURSEMENT"),
    ("AWAITING_COOKING_DISBURSEMENT", "COOKING"),
    ("COOKING", "AWAITING_DELIVERY_DISBURSEMENT"),
    ("AWAITING_DELIVERY_DISBURSEMENT", "DELIVERY"),
    ("DELIVERY", "COMPLETED"),
]


class TestHappyPath:

    def test_full_lifecycle(self, engine, driver, notifier, campaign, admin):
        driver.advance_to("COMPLETED")

        assert notifier.transitions() == LIFECYCLE
        view = engine.get_phase(admin, driver.phase_id)
        assert view["status"] == "COMPLETED"
        assert view["needs_resubmission"] is False
        assert view["milestones"][-1] == "all_deliveries_completed"
        assert view["meal_batches"][0]["status"] == "COMPLETED"
        assert view["delivery_tasks"][0]["status"] == "COMPLETED"

    def test_completed_phase_moves_campaign_to_next_phase(self, engine, driver, campaign, admin):
        driver.advance_to("COMPLETED")

        view = engine.get_campaign(admin, UUID(campaign["id"]))

        assert view["status"] == "IN_PROGRESS"
        assert view["current_phase_id"] == campaign["phases"][1]["id"]

    def test_events_carry_actor_and_campaign(self, driver, notifier, campaign, kitchen):
        driver.submit_ingredients()

        event = notifier.events[0]
        assert event.actor_id == kitchen.actor_id
        assert str(event.campaign_id) == campaign["id"]
        assert event.needs_resubmission is False

    def test_each_step_reports_its_status(self, driver):
        assert driver.submit_ingredients()["status"] == "PENDING"
        assert driver.approve_ingredients()["status"] == "ACCEPTED"
        assert driver.disburse_ingredients()["status"] == "DISBURSED"
        proof = driver.submit_ingredient_proof(amount="420000")
        assert proof["variance_amount"] == "20000"
        assert proof["variance_percent"] == "5"
        assert proof["variance_warning"] is True
        assert driver.status() == "AWAITING_AUDIT"

    def test_completed_phase_is_locked(self, engine, driver, kitchen):
        driver.advance_to("COMPLETED")

        with pytest.raises(PhaseTerminatedError):
            engine.create_meal_batch(kitchen, driver.phase_id, "Cơm thêm", 10)

    def test_every_batch_must_be_delivered(self, engine, driver, kitchen):
        driver.advance_to("DELIVERY")
        engine.create_meal_batch(kitchen, driver.phase_id, "Canh chua", 50)
        driver.create_task()

        for status in ("ACCEPTED", "OUT_FOR_DELIVERY", "COMPLETED"):
            driver.move_task(status)

        assert driver.status() == "DELIVERY"


class TestBudget:

    def test_reference_split(self, engine, admin, phase_id):
        allocation = engine.get_phase(admin, phase_id)["funds_allocation"]

        assert allocation == {
            "total_funds": "1000000",
            "ingredient": "400000",
            "cooking": "350000",
            "delivery": "250000",
            "currency": "VND",
        }

    def test_one_dong_short(self, engine, kitchen, phase_id):
        items = [{"ingredient_name": "Gạo", "quantity": "1", "unit": "kg", "unit_price": "399999"}]

        with pytest.raises(BudgetMismatchError):
            engine.submit_ingredient_request(kitchen, phase_id, items)

        assert engine.get_phase(kitchen, phase_id)["status"] == "PLANNING"

    def test_split_update_before_submission(self, engine, admin, phase_id):
        result = engine.update_budget_split(admin, phase_id, 50, 30, 20)

        assert result["funds_allocation"]["ingredient"] == "500000"

    def test_funds_frozen_after_disbursement(self, engine, driver, admin):
        driver.advance_to("INGREDIENT_PURCHASE")

        with pytest.raises(InvalidStateTransitionError):
            engine.set_phase_funds(admin, driver.phase_id, "2000000")

    def test_set_funds_on_second_phase(self, engine, admin, campaign):
        phase_two = UUID(campaign["phases"][1]["id"])

        result = engine.set_phase_funds(admin, phase_two, "500000")

        assert result["funds_allocation"]["delivery"] == "125000"

    def test_funds_change_blocks_pending_ingredient_approval(self, engine, driver, admin):
        driver.submit_ingredients()
        engine.set_phase_funds(admin, driver.phase_id, "2000000")

        with pytest.raises(BudgetMismatchError) as exc_info:
            driver.approve_ingredients()

        assert exc_info.value.expected == Decimal("800000")
        view = engine.get_phase(admin, driver.phase_id)
        assert view["status"] == "AWAITING_INGREDIENT_DISBURSEMENT"
        assert view["ingredient_requests"][0]["status"] == "PENDING"

        engine.reject_ingredient_request(admin, driver.ids["request"], "Ngân sách đã đổi")
        driver.submit_ingredients(items=[
            {"ingredient_name": "Gạo", "quantity": "200", "unit": "kg", "unit_price": "4000"},
        ])
        assert driver.approve_ingredients()["status"] == "ACCEPTED"

    def test_split_change_blocks_early_cooking_request(self, engine, driver, admin):
        driver.submit_cooking()
        engine.update_budget_split(admin, driver.phase_id, 40, 40, 20)
        driver.advance_to("AWAITING_COOKING_DISBURSEMENT")

        with pytest.raises(BudgetMismatchError) as exc_info:
            driver.approve_cooking()

        assert exc_info.value.bucket == "cooking"
        assert exc_info.value.expected == Decimal("400000")
        assert driver.status() == "AWAITING_COOKING_DISBURSEMENT"


class TestResubmission:

    def test_rejected_ingredient_request(self, engine, driver, admin, notifier):
        driver.submit_ingredients()
        engine.reject_ingredient_request(admin, driver.ids["request"], "Đơn giá dầu ăn cao")

        view = engine.get_phase(admin, driver.phase_id)
        assert view["status"] == "AWAITING_INGREDIENT_DISBURSEMENT"
        assert view["needs_resubmission"] is True
        assert view["blocking_entity"] == "ingredient_request"

        driver.submit_ingredients()
        view = engine.get_phase(admin, driver.phase_id)
        assert view["needs_resubmission"] is False
        assert len(view["ingredient_requests"]) == 2
        assert len(notifier.events) == 1

    def test_rejected_proof(self, engine, driver, auditor, admin):
        driver.advance_to("AWAITING_AUDIT")
        engine.reject_expense_proof(auditor, driver.ids["proof"], "Hoá đơn không rõ")

        view = engine.get_phase(admin, driver.phase_id)
        assert view["blocking_entity"] == "expense_proof"

        driver.submit_ingredient_proof(media_keys=("proofs/receipt-2.jpg",))
        driver.approve_ingredient_proof()
        assert driver.status() == "AWAITING_COOKING_DISBURSEMENT"

    def test_rejected_cooking_request(self, engine, driver, admin):
        driver.advance_to("AWAITING_COOKING_DISBURSEMENT")
        driver.submit_cooking()
        engine.reject_operation_request(admin, driver.ids["cooking"], "Thiếu báo giá gas")

        assert engine.get_phase(admin, driver.phase_id)["blocking_entity"] == "operation_request"

        driver.submit_cooking()
        driver.approve_cooking()
        assert driver.status() == "COOKING"

    def test_failed_delivery_and_replacement(self, engine, driver, admin, other_courier):
        driver.advance_to("DELIVERY")
        driver.create_task()
        driver.move_task("ACCEPTED")
        driver.move_task("OUT_FOR_DELIVERY")
        driver.move_task("FAILED", note="Cầu sập")

        view = engine.get_phase(admin, driver.phase_id)
        assert view["blocking_entity"] == "delivery_task"

        failed_task = driver.ids["task"]
        replacement = engine.create_delivery_task(
            admin, driver.ids["batch"], other_courier.actor_id, replaces_task_id=failed_task,
        )
        assert replacement["replaces_task_id"] == str(failed_task)

        task_id = UUID(replacement["task_id"])
        for status in ("ACCEPTED", "OUT_FOR_DELIVERY", "COMPLETED"):
            engine.update_delivery_task_status(other_courier, task_id, status)

        assert driver.status() == "COMPLETED"

    def test_failure_requires_note(self, driver):
        driver.advance_to("DELIVERY")
        driver.create_task()
        driver.move_task("ACCEPTED")
        driver.move_task("OUT_FOR_DELIVERY")

        with pytest.raises(ValidationError):
            driver.move_task("FAILED")


class TestTermination:

    def test_cancel_then_mutate(self, engine, driver, admin, kitchen, notifier):
        driver.advance_to("COOKING")
        result = engine.cancel_phase(admin, driver.phase_id, "Bão số 5")

        assert result["status"] == "CANCELLED"
        assert notifier.transitions()[-1] == ("COOKING", "CANCELLED")
        with pytest.raises(PhaseTerminatedError) as exc_info:
            engine.create_meal_batch(kitchen, driver.phase_id, "Cơm", 10)
        assert exc_info.value.status == "CANCELLED"

    def test_cancelled_phase_refuses_reviews(self, engine, driver, admin):
        driver.submit_ingredients()
        engine.fail_phase(admin, driver.phase_id, "Nhà cung cấp phá sản")

        with pytest.raises(PhaseTerminatedError):
            driver.approve_ingredients()

    def test_cancelled_phase_refuses_any_batch_status(self, engine, driver, admin, kitchen):
        driver.advance_to("COOKING")
        driver.create_batch()
        engine.cancel_phase(admin, driver.phase_id, "Bão số 5")

        for status in ("PENDING", "READY"):
            with pytest.raises(PhaseTerminatedError):
                engine.update_meal_batch_status(kitchen, driver.ids["batch"], status)

    def test_terminal_view(self, engine, driver, admin):
        engine.cancel_phase(admin, driver.phase_id, "Trùng lịch")

        view = engine.get_phase(admin, driver.phase_id)

        assert view["status"] == "CANCELLED"
        assert view["terminal_reason"] == "Trùng lịch"
        assert view["terminated_by_id"] == str(admin.actor_id)

    def test_current_phase_skips_cancelled(self, engine, admin, campaign, phase_id):
        engine.cancel_phase(admin, phase_id, "Trùng lịch")

        current = engine.current_phase(admin, UUID(campaign["id"]))

        assert current["ordinal"] == 2


class TestCampaign:

    def test_campaign_view(self, campaign):
        assert campaign["status"] == "ACTIVE"
        assert campaign["total_phases"] == 2
        assert campaign["funding_progress"] == "0"
        assert campaign["current_phase_id"] == campaign["phases"][0]["id"]
        assert [p["status"] for p in campaign["phases"]] == ["PLANNING", "PLANNING"]

    def test_default_currency_from_config(self, engine, admin):
        view = engine.create_campaign(admin, "Cháo sáng", "100000")

        assert view["currency"] == "VND"
        assert view["phases"] == []
        assert view["current_phase_id"] is None

    def test_donations(self, engine, fundraiser, campaign):
        campaign_id = UUID(campaign["id"])
        engine.record_received_amount(fundraiser, campaign_id, "500000")

        result = engine.record_received_amount(fundraiser, campaign_id, 250000)

        assert result["received_amount"] == "750000"
        assert result["funding_progress"] == "37.5"

    def test_unknown_campaign(self, engine, admin):
        with pytest.raises(NotFoundError):
            engine.get_campaign(admin, uuid4())


class TestOwnershipAndUploads:

    def test_proof_only_by_request_owner(self, engine, driver, other_kitchen):
        driver.advance_to("INGREDIENT_PURCHASE")

        with pytest.raises(UnauthorizedActorError) as exc_info:
            engine.submit_expense_proof(other_kitchen, driver.ids["request"], ["p.jpg"], "400000")

        assert exc_info.value.reason == "not the owner of the request"

    def test_proof_without_media(self, engine, driver, kitchen):
        driver.advance_to("INGREDIENT_PURCHASE")

        with pytest.raises(MissingEvidenceError):
            engine.submit_expense_proof(kitchen, driver.ids["request"], [], "400000")

    def test_task_only_by_assignee(self, engine, driver, other_courier):
        driver.advance_to("DELIVERY")
        driver.create_task()

        with pytest.raises(UnauthorizedActorError):
            engine.update_delivery_task_status(other_courier, driver.ids["task"], "ACCEPTED")

    def test_expense_proof_upload_urls(self, engine, driver, kitchen, upload_issuer):
        driver.advance_to("INGREDIENT_PURCHASE")

        slots = engine.generate_expense_proof_upload_urls(kitchen, driver.ids["request"], 2, ["JPG", ".pdf"])

        request_id = driver.ids["request"]
        assert [s["file_key"] for s in slots] == [f"{request_id}/0.jpg", f"{request_id}/1.pdf"]
        assert upload_issuer.calls == [(request_id, 2, ("jpg", "pdf"))]

    def test_expense_proof_upload_by_stranger(self, engine, driver, other_kitchen, upload_issuer):
        driver.advance_to("INGREDIENT_PURCHASE")

        with pytest.raises(UnauthorizedActorError):
            engine.generate_expense_proof_upload_urls(other_kitchen, driver.ids["request"], 1, ["jpg"])

        assert upload_issuer.calls == []

    @pytest.mark.parametrize("count, types", [
        (0, []),
        (11, ["jpg"] * 11),
        (2, ["jpg"]),
        (1, ["exe"]),
        (True, ["jpg"]),
    ])
    def test_upload_validation(self, engine, kitchen, phase_id, count, types):
        with pytest.raises(ValidationError):
            engine.generate_meal_batch_upload_urls(kitchen, phase_id, count, types)

    def test_meal_batch_upload_urls(self, engine, kitchen, phase_id):
        slots = engine.generate_meal_batch_upload_urls(kitchen, phase_id, 1, ["mp4"])

        assert slots[0]["file_key"] == f"{phase_id}/0.mp4"
        assert slots[0]["upload_url"].startswith("https://uploads.example/")

    def test_meal_batch_pdf_refused(self, engine, kitchen, phase_id):
        with pytest.raises(ValidationError) as exc_info:
            engine.generate_meal_batch_upload_urls(kitchen, phase_id, 1, ["pdf"])

        assert exc_info.value.field == "file_types"

    def test_uploads_refused_on_cancelled_phase(self, engine, admin, kitchen, phase_id):
        engine.cancel_phase(admin, phase_id, "Hoãn")

        with pytest.raises(PhaseTerminatedError):
            engine.generate_meal_batch_upload_urls(kitchen, phase_id, 1, ["jpg"])


class TestMealBatches:

    def test_batch_needs_disbursed_ingredients(self, engine, driver, kitchen):
        with pytest.raises(InvalidStateTransitionError):
            engine.create_meal_batch(kitchen, driver.phase_id, "Cơm", 10)

    def test_overconsumption_across_batches(self, engine, driver, kitchen):
        driver.advance_to("COOKING")
        rice = driver.item_ids()[0]
        engine.create_meal_batch(kitchen, driver.phase_id, "Cơm 1", 100, [{"item_id": rice, "quantity": "60"}])
        engine.create_meal_batch(kitchen, driver.phase_id, "Cơm 2", 100, [{"item_id": rice, "quantity": "40"}])

        with pytest.raises(OverconsumptionError) as exc_info:
            engine.create_meal_batch(kitchen, driver.phase_id, "Cơm 3", 10, [{"item_id": rice, "quantity": "1"}])

        assert exc_info.value.already_used == Decimal("100")

    def test_add_usage_to_pending_batch(self, engine, driver, kitchen):
        driver.advance_to("COOKING")
        oil = driver.item_ids()[1]
        batch = engine.create_meal_batch(kitchen, driver.phase_id, "Rau xào", 80)

        view = engine.add_ingredient_usage(kitchen, UUID(batch["batch_id"]), [{"item_id": oil, "quantity": "5"}])

        assert view["ingredient_usages"][0]["quantity"] == "5"

    def test_only_ready_is_settable(self, engine, driver, kitchen):
        driver.advance_to("COOKING")
        driver.create_batch()

        with pytest.raises(InvalidStateTransitionError):
            engine.update_meal_batch_status(kitchen, driver.ids["batch"], "COMPLETED")

    def test_ready_without_media(self, driver):
        driver.advance_to("COOKING")
        driver.create_batch()

        with pytest.raises(MissingEvidenceError):
            driver.mark_ready(media_keys=())

    def test_ready_reports_cooked_date(self, driver, clock):
        driver.advance_to("COOKING")
        driver.create_batch()

        result = driver.mark_ready()

        assert result["status"] == "READY"
        assert result["cooked_date"] == clock.now().isoformat()

    def test_planned_meal_link(self, engine, driver, kitchen, campaign):
        driver.advance_to("COOKING")
        planned = campaign["phases"][0]["planned_meals"][0]["id"]

        engine.create_meal_batch(kitchen, driver.phase_id, "Cơm hộp", 500, planned_meal_id=UUID(planned))

        batches = engine.list_meal_batches(kitchen, MealBatchFilter(phase_id=driver.phase_id))
        assert batches[0]["planned_meal_id"] == planned


class TestQueries:

    def test_my_queries(self, engine, driver, kitchen, courier):
        driver.advance_to("DELIVERY")
        driver.create_task()

        assert [r["expense_type"] for r in engine.my_operation_requests(kitchen)] == ["COOKING"]
        assert [r["expense_type"] for r in engine.my_operation_requests(courier)] == ["DELIVERY"]
        assert len(engine.my_expense_proofs(kitchen)) == 1
        assert engine.my_expense_proofs(kitchen, "REJECTED") == []
        assert [t["status"] for t in engine.my_delivery_tasks(courier)] == ["PENDING"]
        assert engine.my_delivery_tasks(courier, "COMPLETED") == []

    def test_listings(self, engine, driver, admin, campaign):
        driver.advance_to("DELIVERY")
        driver.create_task()
        campaign_id = UUID(campaign["id"])

        requests = engine.list_ingredient_requests(admin, IngredientRequestFilter(campaign_id=campaign_id))
        tasks = engine.list_delivery_tasks(admin, DeliveryTaskFilter(batch_id=driver.ids["batch"]))

        assert requests[0]["total_cost"] == "400000"
        assert requests[0]["status"] == "DISBURSED"
        assert len(tasks) == 1

    def test_delivery_task_history(self, engine, driver, courier):
        driver.advance_to("DELIVERY")
        driver.create_task()
        driver.move_task("ACCEPTED")

        task = engine.get_delivery_task(courier, driver.ids["task"])

        assert [log["status"] for log in task["status_logs"]] == ["PENDING", "ACCEPTED"]


class TestReliability:

    def test_conflict_is_retried_once(self, engine, driver, monkeypatch, captured_logs):
        original = PhaseOrchestrator.run
        calls = []

        def flaky(self, phase_id, action, actor_id, mutation):
            calls.append(action)
            if len(calls) == 1:
                raise ConflictError("phase", str(phase_id))
            return original(self, phase_id, action, actor_id, mutation)

        monkeypatch.setattr(PhaseOrchestrator, "run", flaky)

        result = driver.submit_ingredients()

        assert result["status"] == "PENDING"
        assert calls == ["submit_ingredient_request", "submit_ingredient_request"]
        assert any(r["message"] == "engine_conflict_retry" for r in captured_logs())

    def test_conflict_surfaces_when_retries_exhausted(
        self, database, clock, notifier, upload_issuer, kitchen, phase_id, monkeypatch,
    ):
        engine = ReliefEngine(
            session_factory=database,
            config=EngineConfig(conflict_retries=0),
            clock=clock,
            notifier=notifier,
            upload_issuer=upload_issuer,
        )

        def always_conflict(self, phase_id, action, actor_id, mutation):
            raise ConflictError("phase", str(phase_id))

        monkeypatch.setattr(PhaseOrchestrator, "run", always_conflict)

        with pytest.raises(ConflictError):
            engine.submit_ingredient_request(
                kitchen, phase_id, [{"ingredient_name": "Gạo", "quantity": "1", "unit": "kg", "unit_price": "1"}],
            )

    def test_failed_call_writes_nothing(self, engine, kitchen, admin, phase_id):
        items = [{"ingredient_name": "Gạo", "quantity": "1", "unit": "kg", "unit_price": "1"}]

        with pytest.raises(BudgetMismatchError):
            engine.submit_ingredient_request(kitchen, phase_id, items)

        view = engine.get_phase(admin, phase_id)
        assert view["ingredient_requests"] == []
        assert view["version"] == 1

    def test_notifier_failure_does_not_undo_commit(self, engine, driver, admin, notifier, captured_logs):
        def explode(event):
            raise RuntimeError("push gateway down")

        notifier.phase_status_changed = explode

        driver.submit_ingredients()

        assert driver.status() == "AWAITING_INGREDIENT_DISBURSEMENT"
        failures = [r for r in captured_logs() if r["message"] == "notification_dispatch_failed"]
        assert failures[0]["exc_message"] == "push gateway down"

    def test_call_is_traced_with_context(self, engine, admin, phase_id, captured_logs):
        engine.set_phase_funds(admin, phase_id, "1000000")

        funds = [r for r in captured_logs() if r["message"] == "phase_funds_set"]
        assert funds[0]["actor_id"] == str(admin.actor_id)
        assert funds[0]["phase_id"] == str(phase_id)
        assert "correlation_id" in funds[0]
