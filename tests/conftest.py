"""
Shared pytest fixtures for the Depot M&R workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context + drop/recreate tables (autouse)
    - client: Flask test client (function-scoped)
    - admin / surveyor / clerk / approver / liner_user / washing_lead: Actor rows
    - container: a freshly gated-in container (liner MSC)
    - depot: ``DepotFlow`` helper that drives a container through the stages
"""

import pytest

from depot_mnr import create_app
from depot_mnr.models import db as _db
from depot_mnr.models.actor import USER_TYPE_EXTERNAL, USER_TYPE_INTERNAL, Actor
from depot_mnr.services import (
    container_service,
    estimate_service,
    inspection_service,
    repair_service,
    shunting_service,
    stacking_service,
    survey_service,
)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Actors ───────────────────────────────────────────────────────────────


def make_actor(username, *, user_type=USER_TYPE_INTERNAL, liner_code=None,
               groups=None, screens=None, screen_permissions=None, functions=None):
    actor = Actor(
        username=username,
        full_name=username.title(),
        user_type=user_type,
        liner_code=liner_code,
        groups=groups or [],
        screens=screens or [],
        screen_permissions=screen_permissions or {},
        functions=functions or [],
    )
    _db.session.add(actor)
    _db.session.commit()
    return actor


@pytest.fixture()
def admin():
    return make_actor("admin", groups=["admin"])


@pytest.fixture()
def surveyor():
    return make_actor("surveyor", screens=["survey"])


@pytest.fixture()
def clerk():
    """Internal staff with no decision capabilities."""
    return make_actor("clerk")


@pytest.fixture()
def approver():
    return make_actor(
        "approver",
        screen_permissions={"eor_detail": {"approve": True, "reject": True, "send": True}},
    )


@pytest.fixture()
def liner_user():
    return make_actor("msc_user", user_type=USER_TYPE_EXTERNAL, liner_code="MSC")


@pytest.fixture()
def washing_lead():
    return make_actor("washing_lead", screen_permissions={"washing": {"approve": True}})


# ── Domain helpers ───────────────────────────────────────────────────────

DAMAGE_ITEMS = [
    {"component": "Side panel", "damage": "Dent", "location": "L1"},
    {"component": "Door gasket", "damage": "Torn", "location": "DR"},
]

COSTLY_ITEMS = [
    {"description": "Straighten side panel", "quantity": 1, "unit_price": 180.0},
    {"description": "Replace door gasket", "quantity": 2, "unit_price": 35.0},
]   # 250.00, above the testing threshold of 100

CHEAP_ITEMS = [{"description": "Touch-up paint", "line_total": 40.0}]


class DepotFlow:
    """Drives a container through the stages with the service API."""

    def __init__(self, actor):
        self.actor = actor

    def container(self, number="MSCU1234567", liner="MSC", **extra):
        data = {"container_number": number, "liner": liner, "size": "20", "type": "GP", **extra}
        return container_service.register_container(data, self.actor)

    def survey(self, container_id, condition="DAMAGED", damage_items=None):
        created = survey_service.create_survey(container_id, {"survey_type": "GATE_IN"}, self.actor)
        items = DAMAGE_ITEMS if damage_items is None else damage_items
        return survey_service.transition_survey(
            created["id"], "complete", self.actor,
            initial_condition=condition,
            damage_items=items if condition == "DAMAGED" else [],
        )

    def estimate(self, container_id, items=None, **extra):
        data = {"repair_items": COSTLY_ITEMS if items is None else items, **extra}
        return estimate_service.create_estimate(container_id, data, self.actor)

    def approved_estimate(self, container_id, approver):
        created = self.estimate(container_id)
        return estimate_service.approve_estimate(created["id"], approver, notes="ok")

    def shunt(self, container_id, to_block="R"):
        created = shunting_service.create_shunting(container_id, {"to_block": to_block}, self.actor)
        shunting_service.transition_shunting(created["id"], "start", self.actor)
        return shunting_service.transition_shunting(created["id"], "complete", self.actor)

    def repair(self, container_id):
        created = repair_service.create_repair_order(container_id, {"assigned_team": "T1"}, self.actor)
        repair_service.transition_repair_order(created["id"], "start", self.actor)
        return repair_service.transition_repair_order(created["id"], "complete", self.actor)

    def inspect(self, container_id, passes=True, damage_count=len(DAMAGE_ITEMS)):
        created = inspection_service.create_pre_inspection(container_id, {}, self.actor)
        results = {
            inspection_service.damage_key(i): (passes or i > 0) for i in range(damage_count)
        }
        return inspection_service.transition_pre_inspection(
            created["id"], "complete", self.actor, damage_item_results=results,
        )

    def stack(self, container_id, block="S"):
        created = stacking_service.create_stacking(
            container_id, {"target_location": {"block": block, "row": "02", "tier": "3"}}, self.actor,
        )
        return stacking_service.transition_stacking(created["id"], "complete", self.actor)

    def to_repaired(self, container_id, approver):
        """Survey → approved estimate → shunting → completed repair."""
        self.survey(container_id)
        self.approved_estimate(container_id, approver)
        self.shunt(container_id)
        return self.repair(container_id)


@pytest.fixture()
def depot(admin):
    return DepotFlow(admin)


@pytest.fixture()
def container(depot):
    return depot.container()
