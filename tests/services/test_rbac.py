"""
Tests for the facade's role table and collaborator defaults.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from relief_kernel.exceptions import UnauthorizedActorError
from relief_services import ActorContext, ActorRole
from relief_services.collaborators import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    PhaseStatusChanged,
    UnconfiguredUploadUrlIssuer,
    UploadUrlIssuer,
)
from relief_services.engine import ReliefEngine
from relief_services.rbac import ALL_ROLES, PERMISSIONS, authorize


def actor(role):
    return ActorContext(actor_id=uuid4(), role=role)


class TestAuthorize:

    @pytest.mark.parametrize("role, action", [
        (ActorRole.ADMIN, "set_phase_funds"),
        (ActorRole.FUNDRAISER, "record_received_amount"),
        (ActorRole.KITCHEN_STAFF, "submit_ingredient_request"),
        (ActorRole.DELIVERY_STAFF, "submit_operation_request"),
        (ActorRole.AUDITOR, "approve_expense_proof"),
        (ActorRole.KITCHEN_STAFF, "create_delivery_task"),
        (ActorRole.DELIVERY_STAFF, "update_delivery_task_status"),
        (ActorRole.DELIVERY_STAFF, "get_phase"),
    ])
    def test_allowed(self, role, action):
        authorize(actor(role), action)

    @pytest.mark.parametrize("role, action", [
        (ActorRole.KITCHEN_STAFF, "approve_ingredient_request"),
        (ActorRole.AUDITOR, "disburse_ingredient_request"),
        (ActorRole.FUNDRAISER, "cancel_phase"),
        (ActorRole.DELIVERY_STAFF, "create_meal_batch"),
        (ActorRole.ADMIN, "update_delivery_task_status"),
        (ActorRole.DELIVERY_STAFF, "list_delivery_tasks"),
        (ActorRole.ADMIN, "submit_expense_proof"),
    ])
    def test_refused(self, role, action):
        caller = actor(role)

        with pytest.raises(UnauthorizedActorError) as exc_info:
            authorize(caller, action)

        assert exc_info.value.actor_id == str(caller.actor_id)
        assert exc_info.value.role == role.value
        assert exc_info.value.action == action

    def test_role_given_as_string(self):
        authorize(ActorContext(actor_id=uuid4(), role="ADMIN"), "fail_phase")

    def test_unknown_role(self):
        with pytest.raises(UnauthorizedActorError) as exc_info:
            authorize(ActorContext(actor_id=uuid4(), role="VOLUNTEER"), "get_phase")

        assert exc_info.value.reason == "unknown role"

    def test_unknown_action_is_a_programming_error(self):
        with pytest.raises(KeyError):
            authorize(actor(ActorRole.ADMIN), "drop_database")

    def test_every_facade_method_has_an_entry(self):
        public = {
            name for name in vars(ReliefEngine)
            if not name.startswith("_") and callable(getattr(ReliefEngine, name))
        }

        assert public <= set(PERMISSIONS)

    def test_reads_open_to_everyone(self):
        assert PERMISSIONS["get_phase"] == ALL_ROLES
        assert PERMISSIONS["get_campaign"] == ALL_ROLES


class TestFacadeRefusesBeforeTouchingData:

    def test_wrong_role(self, engine, courier, phase_id, notifier):
        with pytest.raises(UnauthorizedActorError):
            engine.set_phase_funds(courier, phase_id, "1")

        assert notifier.events == []

    def test_unknown_phase_not_looked_up_for_wrong_role(self, engine, auditor):
        with pytest.raises(UnauthorizedActorError):
            engine.cancel_phase(auditor, uuid4(), "Không hợp lệ")


class TestCollaboratorDefaults:

    def test_protocols(self):
        assert isinstance(LoggingNotificationDispatcher(), NotificationDispatcher)
        assert isinstance(UnconfiguredUploadUrlIssuer(), UploadUrlIssuer)

    def test_logging_dispatcher(self, captured_logs):
        event = PhaseStatusChanged(
            phase_id=uuid4(),
            campaign_id=uuid4(),
            from_status="PLANNING",
            to_status="AWAITING_INGREDIENT_DISBURSEMENT",
            needs_resubmission=False,
            actor_id=uuid4(),
            occurred_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )

        LoggingNotificationDispatcher().phase_status_changed(event)

        record = next(r for r in captured_logs() if r["message"] == "phase_status_changed")
        assert record["to_status"] == "AWAITING_INGREDIENT_DISBURSEMENT"
        assert record["phase_id"] == str(event.phase_id)

    def test_unconfigured_issuer(self):
        with pytest.raises(RuntimeError):
            UnconfiguredUploadUrlIssuer().generate_upload_urls(uuid4(), 1, ["jpg"])
