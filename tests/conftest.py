"""
Pytest fixtures for the relief engine test suite.

Provides:
- A SQLite file database per test (tmp_path), tables created from the ORM
  registry
- Deterministic clock, actor contexts for every role
- Recording notification dispatcher and fake upload-URL issuer
- ``captured_logs`` for asserting on structured log records
- ``driver`` to walk a phase through its lifecycle via the facade

Environment Variables:
- RELIEF_TEST_DATABASE_URL: run against another database (e.g. PostgreSQL)
  instead of the per-test SQLite file.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from relief_config import EngineConfig
from relief_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from relief_kernel.domain.clock import DeterministicClock
from relief_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from relief_modules.phase.models import PhaseDraft, PlannedIngredientDraft, PlannedMealDraft
from relief_services import ActorContext, ActorRole, ReliefEngine, UploadSlot


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture relief_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.cancel_phase(...)
            assert any(r["message"] == "phase_terminated" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("relief_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database(tmp_path):
    """Fresh database with all tables; yields the session factory."""
    url = os.environ.get("RELIEF_TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'relief.db'}"
    init_engine_from_url(url)
    drop_tables()
    create_tables()
    yield get_session_factory()
    reset_engine()


@pytest.fixture
def session(database):
    """A session for module-level tests; rolled back afterwards."""
    s = database()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def clock():
    return DeterministicClock()


# =============================================================================
# Actors and collaborators
# =============================================================================


@pytest.fixture
def admin():
    return ActorContext(actor_id=uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def kitchen():
    return ActorContext(actor_id=uuid4(), role=ActorRole.KITCHEN_STAFF)


@pytest.fixture
def other_kitchen():
    return ActorContext(actor_id=uuid4(), role=ActorRole.KITCHEN_STAFF)


@pytest.fixture
def courier():
    return ActorContext(actor_id=uuid4(), role=ActorRole.DELIVERY_STAFF)


@pytest.fixture
def other_courier():
    return ActorContext(actor_id=uuid4(), role=ActorRole.DELIVERY_STAFF)


@pytest.fixture
def auditor():
    return ActorContext(actor_id=uuid4(), role=ActorRole.AUDITOR)


@pytest.fixture
def fundraiser():
    return ActorContext(actor_id=uuid4(), role=ActorRole.FUNDRAISER)


class RecordingNotifier:
    """Keeps every dispatched status change in order."""

    def __init__(self):
        self.events = []

    def phase_status_changed(self, event):
        self.events.append(event)

    def transitions(self):
        return [(e.from_status, e.to_status) for e in self.events]


class FakeUploadIssuer:
    """Returns deterministic upload slots and remembers each request."""

    def __init__(self):
        self.calls = []

    def generate_upload_urls(self, owner_id, file_count, file_types):
        self.calls.append((owner_id, file_count, tuple(file_types)))
        return [
            UploadSlot(
                upload_url=f"https://uploads.example/{owner_id}/{i}.{ext}?sig=test",
                file_key=f"{owner_id}/{i}.{ext}",
            )
            for i, ext in enumerate(file_types)
        ]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def upload_issuer():
    return FakeUploadIssuer()


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def engine(database, config, clock, notifier, upload_issuer):
    return ReliefEngine(
        session_factory=database,
        config=config,
        clock=clock,
        notifier=notifier,
        upload_issuer=upload_issuer,
    )


# =============================================================================
# Campaign / phase data
# =============================================================================


def make_phase_draft(
    name="Phase 1",
    total_funds="1000000",
    split=(40, 35, 25),
    planned_meals=(),
    planned_ingredients=(),
):
    return PhaseDraft(
        phase_name=name,
        location="Quang Tri",
        ingredient_budget_percentage=split[0],
        cooking_budget_percentage=split[1],
        delivery_budget_percentage=split[2],
        total_funds=Decimal(total_funds),
        planned_ingredients=tuple(planned_ingredients),
        planned_meals=tuple(planned_meals),
    )


@pytest.fixture
def phase_draft_factory():
    return make_phase_draft


@pytest.fixture
def campaign(engine, admin):
    """Two-phase VND campaign; phase 1 has 1,000,000 at 40/35/25."""
    return engine.create_campaign(
        admin,
        title="Bữa cơm miền Trung",
        target_amount="2000000",
        currency="VND",
        phases=[
            make_phase_draft(
                "Phase 1",
                planned_ingredients=[PlannedIngredientDraft("Gạo", Decimal("100"), "kg")],
                planned_meals=[PlannedMealDraft("Cơm hộp", 500)],
            ),
            make_phase_draft("Phase 2"),
        ],
    )


@pytest.fixture
def phase_id(campaign):
    return UUID(campaign["phases"][0]["id"])


STANDARD_ITEMS = (
    {"ingredient_name": "Gạo", "quantity": "100", "unit": "kg", "unit_price": "3000"},
    {"ingredient_name": "Dầu ăn", "quantity": "20", "unit": "l", "unit_price": "5000"},
)


@dataclass
class PhaseDriver:
    """Walks one phase through its lifecycle using the facade, step by step."""

    engine: ReliefEngine
    phase_id: UUID
    admin: ActorContext
    kitchen: ActorContext
    courier: ActorContext
    auditor: ActorContext
    ids: dict = field(default_factory=dict)

    def submit_ingredients(self, items=STANDARD_ITEMS, total_cost=None):
        result = self.engine.submit_ingredient_request(self.kitchen, self.phase_id, list(items), total_cost)
        self.ids["request"] = UUID(result["request_id"])
        return result

    def approve_ingredients(self):
        return self.engine.approve_ingredient_request(self.admin, self.ids["request"])

    def disburse_ingredients(self):
        return self.engine.disburse_ingredient_request(self.admin, self.ids["request"])

    def submit_ingredient_proof(self, amount="400000", media_keys=("proofs/receipt-1.jpg",)):
        result = self.engine.submit_expense_proof(self.kitchen, self.ids["request"], list(media_keys), amount)
        self.ids["proof"] = UUID(result["proof_id"])
        return result

    def approve_ingredient_proof(self):
        return self.engine.approve_expense_proof(self.auditor, self.ids["proof"])

    def submit_cooking(self, total_cost="350000"):
        result = self.engine.submit_operation_request(
            self.kitchen, self.phase_id, "COOKING", "Gas and kitchen staff", total_cost,
        )
        self.ids["cooking"] = UUID(result["request_id"])
        return result

    def approve_cooking(self):
        return self.engine.approve_operation_request(self.admin, self.ids["cooking"])

    def create_batch(self, quantity=250, usages=None):
        if usages is None:
            usages = [{"item_id": item, "quantity": Decimal("50")} for item in self.item_ids()[:1]]
        result = self.engine.create_meal_batch(self.kitchen, self.phase_id, "Cơm gà", quantity, usages)
        self.ids["batch"] = UUID(result["batch_id"])
        return result

    def mark_ready(self, media_keys=("batches/cooked-1.jpg",)):
        return self.engine.update_meal_batch_status(
            self.kitchen, self.ids["batch"], "READY", media_keys=list(media_keys),
        )

    def submit_delivery(self, total_cost="250000"):
        result = self.engine.submit_operation_request(
            self.courier, self.phase_id, "DELIVERY", "Truck rental", total_cost,
        )
        self.ids["delivery"] = UUID(result["request_id"])
        return result

    def approve_delivery(self):
        return self.engine.approve_operation_request(self.admin, self.ids["delivery"])

    def create_task(self, replaces_task_id=None):
        result = self.engine.create_delivery_task(
            self.admin, self.ids["batch"], self.courier.actor_id, replaces_task_id,
        )
        self.ids["task"] = UUID(result["task_id"])
        return result

    def move_task(self, status, note=None):
        return self.engine.update_delivery_task_status(self.courier, self.ids["task"], status, note)

    def item_ids(self):
        view = self.engine.get_phase(self.admin, self.phase_id)
        request = next(r for r in view["ingredient_requests"] if r["status"] == "DISBURSED")
        return [UUID(i["id"]) for i in request["items"]]

    def status(self):
        return self.engine.get_phase(self.admin, self.phase_id)["status"]

    def advance_to(self, target):
        """Run the happy path until the phase reaches ``target``."""
        steps = [
            ("AWAITING_INGREDIENT_DISBURSEMENT", [self.submit_ingredients]),
            ("INGREDIENT_PURCHASE", [self.approve_ingredients, self.disburse_ingredients]),
            ("AWAITING_AUDIT", [self.submit_ingredient_proof]),
            ("AWAITING_COOKING_DISBURSEMENT", [self.approve_ingredient_proof]),
            ("COOKING", [self.submit_cooking, self.approve_cooking]),
            ("AWAITING_DELIVERY_DISBURSEMENT", [self.create_batch, self.mark_ready]),
            ("DELIVERY", [self.submit_delivery, self.approve_delivery]),
            ("COMPLETED", [
                self.create_task,
                lambda: self.move_task("ACCEPTED"),
                lambda: self.move_task("OUT_FOR_DELIVERY"),
                lambda: self.move_task("COMPLETED"),
            ]),
        ]
        for reached, actions in steps:
            for action in actions:
                action()
            if reached == target:
                return
        raise AssertionError(f"unknown target status {target}")


@pytest.fixture
def driver(engine, phase_id, admin, kitchen, courier, auditor):
    return PhaseDriver(engine, phase_id, admin, kitchen, courier, auditor)
