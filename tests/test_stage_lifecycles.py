"""
Stage lifecycle tests — survey, shunting, repair order and stacking.

Each stage is driven through its transition table with the service API;
container status is checked after every step that moves it.
"""
import pytest

from depot_mnr.core.exceptions import (
    DuplicateActiveJob,
    InvalidStateTransition,
    PreconditionNotMet,
    ValidationError,
)
from depot_mnr.models import db
from depot_mnr.models.container import Container
from depot_mnr.services import (
    estimate_service,
    repair_service,
    shunting_service,
    stacking_service,
    survey_service,
)

from tests.conftest import COSTLY_ITEMS, DAMAGE_ITEMS


def _status(container_id):
    return db.session.get(Container, container_id).status


# ═════════════════════════════════════════════════════════════════════════
# SURVEY
# ═════════════════════════════════════════════════════════════════════════

class TestSurvey:
    def test_create_opens_transaction(self, depot, container):
        result = survey_service.create_survey(container.id, {"survey_type": "GATE_IN"}, depot.actor)
        assert result["new_status"] == "DRAFT"
        assert result["id"].startswith("MSCU1234567-")
        assert result["job"]["transaction_id"] == result["id"]
        assert result["container_status"] == "DM"

    def test_second_active_survey_rejected(self, depot, container):
        survey_service.create_survey(container.id, {}, depot.actor)
        with pytest.raises(DuplicateActiveJob):
            survey_service.create_survey(container.id, {}, depot.actor)

    def test_start_update_complete(self, depot, container):
        created = survey_service.create_survey(container.id, {}, depot.actor)
        started = survey_service.transition_survey(created["id"], "start", depot.actor)
        assert started["new_status"] == "IN_PROGRESS"

        updated = survey_service.update_survey(
            created["id"], {"survey_type": "GATE_IN", "initial_condition": "damaged"}, depot.actor,
        )
        assert updated["job"]["initial_condition"] == "DAMAGED"

        done = survey_service.transition_survey(
            created["id"], "complete", depot.actor, damage_items=DAMAGE_ITEMS,
        )
        assert done["new_status"] == "COMPLETED"
        assert db.session.get(Container, container.id).last_survey_id == created["id"]

    def test_damaged_survey_needs_damage_items(self, depot, container):
        created = survey_service.create_survey(container.id, {"survey_type": "GATE_IN"}, depot.actor)
        with pytest.raises(ValidationError) as exc:
            survey_service.transition_survey(
                created["id"], "complete", depot.actor, initial_condition="DAMAGED",
            )
        assert "damage_items" in exc.value.details

    def test_complete_requires_condition(self, depot, container):
        created = survey_service.create_survey(container.id, {}, depot.actor)
        with pytest.raises(ValidationError) as exc:
            survey_service.transition_survey(created["id"], "complete", depot.actor)
        assert set(exc.value.details) == {"initial_condition", "survey_type"}

    def test_unknown_condition(self, depot, container):
        with pytest.raises(ValidationError):
            survey_service.create_survey(container.id, {"initial_condition": "BROKEN"}, depot.actor)

    def test_no_update_after_completion(self, depot, container):
        survey = depot.survey(container.id)
        with pytest.raises(InvalidStateTransition):
            survey_service.update_survey(survey["id"], {"notes": "late"}, depot.actor)

    def test_release_no_damage_only(self, depot, container):
        damaged = depot.survey(container.id)
        with pytest.raises(InvalidStateTransition):
            survey_service.transition_survey(damaged["id"], "release", depot.actor)

        other = depot.container("TGHU7654321")
        clean = depot.survey(other.id, condition="NO_DAMAGE")
        released = survey_service.transition_survey(clean["id"], "release", depot.actor)
        assert released["new_status"] == "RELEASED"
        assert released["container_status"] == "DM"

    def test_no_damage_survey_blocks_estimate(self, depot, container):
        depot.survey(container.id, condition="NO_DAMAGE")
        with pytest.raises(PreconditionNotMet):
            depot.estimate(container.id)


# ═════════════════════════════════════════════════════════════════════════
# SHUNTING
# ═════════════════════════════════════════════════════════════════════════

class TestShunting:
    @pytest.fixture()
    def approved(self, depot, container, approver):
        depot.survey(container.id)
        return depot.approved_estimate(container.id, approver)

    def test_requires_approved_estimate(self, depot, container):
        depot.survey(container.id)
        depot.estimate(container.id)
        with pytest.raises(PreconditionNotMet) as exc:
            shunting_service.create_shunting(container.id, {"to_block": "R"}, depot.actor)
        assert exc.value.missing == "approved estimate"

    def test_driver_on_create_dispatches(self, depot, container, approved):
        result = shunting_service.create_shunting(
            container.id, {"to_block": "r", "assigned_driver": "Ali"}, depot.actor,
        )
        assert result["new_status"] == "DISPATCHED"
        assert result["job"]["to_block"] == "R"
        assert result["job"]["transaction_id"] == approved["job"]["transaction_id"]

    def test_dispatch_needs_driver(self, depot, container, approved):
        created = shunting_service.create_shunting(container.id, {"to_block": "R"}, depot.actor)
        assert created["new_status"] == "NEW"
        with pytest.raises(ValidationError):
            shunting_service.transition_shunting(created["id"], "dispatch", depot.actor)
        dispatched = shunting_service.transition_shunting(
            created["id"], "dispatch", depot.actor, assigned_driver="Ali",
        )
        assert dispatched["new_status"] == "DISPATCHED"

    def test_complete_moves_container(self, depot, container, approved):
        result = depot.shunt(container.id, to_block="R")
        assert result["new_status"] == "COMPLETED"
        assert result["container_status"] == "AR"
        assert db.session.get(Container, container.id).yard_location == {
            "block": "R", "row": "01", "tier": "1",
        }

    def test_complete_requires_start(self, depot, container, approved):
        created = shunting_service.create_shunting(container.id, {"to_block": "R"}, depot.actor)
        with pytest.raises(InvalidStateTransition):
            shunting_service.transition_shunting(created["id"], "complete", depot.actor)

    def test_validation(self, depot, container, approved):
        with pytest.raises(ValidationError):
            shunting_service.create_shunting(container.id, {}, depot.actor)
        with pytest.raises(ValidationError):
            shunting_service.create_shunting(
                container.id, {"to_block": "R", "priority": "ASAP"}, depot.actor,
            )


# ═════════════════════════════════════════════════════════════════════════
# REPAIR ORDER
# ═════════════════════════════════════════════════════════════════════════

class TestRepairOrder:
    def test_requires_shunting(self, depot, container, approver):
        depot.survey(container.id)
        depot.approved_estimate(container.id, approver)
        with pytest.raises(PreconditionNotMet) as exc:
            repair_service.create_repair_order(container.id, {}, depot.actor)
        assert exc.value.missing == "shunting request"

    def test_lifecycle_copies_work_items(self, depot, container, approver):
        depot.survey(container.id)
        estimate = depot.approved_estimate(container.id, approver)
        depot.shunt(container.id)

        created = repair_service.create_repair_order(container.id, {"assigned_team": "T1"}, depot.actor)
        assert created["new_status"] == "PENDING"
        assert created["container_status"] == "REPAIR"
        assert created["job"]["eor_id"] == estimate["id"]
        assert [w["description"] for w in created["job"]["work_items"]] == [
            i["description"] for i in COSTLY_ITEMS
        ]

        with pytest.raises(InvalidStateTransition):
            repair_service.transition_repair_order(created["id"], "complete", depot.actor)

        repair_service.transition_repair_order(created["id"], "start", depot.actor)
        done = repair_service.transition_repair_order(created["id"], "complete", depot.actor)
        assert done["new_status"] == "COMPLETED"
        assert done["job"]["completed_by"] == "admin"
        assert done["container_status"] == "REPAIR"


# ═════════════════════════════════════════════════════════════════════════
# STACKING
# ═════════════════════════════════════════════════════════════════════════

class TestStacking:
    @pytest.fixture()
    def inspected(self, depot, container, approver):
        depot.to_repaired(container.id, approver)
        return depot.inspect(container.id)

    def test_requires_accepted_inspection(self, depot, container, approver):
        depot.to_repaired(container.id, approver)
        with pytest.raises(PreconditionNotMet):
            stacking_service.create_stacking(
                container.id, {"target_location": {"block": "S"}}, depot.actor,
            )

    def test_requires_target_block(self, depot, container, inspected):
        with pytest.raises(ValidationError):
            stacking_service.create_stacking(container.id, {}, depot.actor)

    def test_release_issues_gate_pass(self, depot, container, inspected):
        assert inspected["container_status"] == "COMPLETED"
        created = stacking_service.create_stacking(
            container.id, {"target_location": {"block": "s", "row": "02"}}, depot.actor,
        )
        assert created["new_status"] == "NEW"
        assert created["container_status"] == "COMPLETED"
        assert created["job"]["target_location"] == {"block": "S", "row": "02", "tier": "1"}

        done = stacking_service.transition_stacking(created["id"], "complete", depot.actor)
        assert done["container_status"] == "AV"
        gate_pass = done["job"]["gate_pass_number"]
        assert gate_pass.startswith("GP-") and len(gate_pass) == 11
        assert done["job"]["released_by"] == "admin"
        assert db.session.get(Container, container.id).yard_location == {
            "block": "S", "row": "02", "tier": "1",
        }

    def test_full_cycle_keeps_one_transaction(self, depot, container, approver):
        depot.to_repaired(container.id, approver)
        depot.inspect(container.id)
        done = depot.stack(container.id)
        survey_tid = db.session.get(Container, container.id).last_survey_id
        assert done["job"]["transaction_id"] == survey_tid
        assert _status(container.id) == "AV"


class TestEstimateEdits:
    def test_update_only_in_draft(self, depot, container, approver):
        depot.survey(container.id)
        draft = depot.estimate(container.id, draft=True)
        assert draft["new_status"] == "DRAFT"
        updated = estimate_service.update_estimate(
            draft["id"], {"repair_items": [{"description": "x", "line_total": 5}]}, depot.actor,
        )
        assert updated["job"]["total_cost"] == 5.0

        estimate_service.transition_estimate(draft["id"], "send", approver)
        with pytest.raises(InvalidStateTransition):
            estimate_service.update_estimate(draft["id"], {"repair_items": []}, depot.actor)
