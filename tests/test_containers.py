"""
Container service tests — gate-in, search, statistics, workflow progress
and the runtime settings.
"""
import pytest

from depot_mnr.core.exceptions import ConflictError, NotFoundError, PermissionDenied, ValidationError
from depot_mnr.models.audit import AuditLog
from depot_mnr.services import approval_policy, container_service, washing_service
from depot_mnr.services.container_service import workflow_progress
from depot_mnr.services.status_resolver import resolve_container_status


class TestRegister:
    def test_defaults(self, depot):
        container = depot.container("mscu1234567")
        assert container.container_number == "MSCU1234567"
        assert container.status == "STACKING"
        assert container.rework_count == 0
        assert container.yard_location == {"block": "A", "row": "01", "tier": "1"}
        log = AuditLog.query.filter_by(action="container.register").one()
        assert log.container_id == container.id

    def test_pending_wash_and_location(self, depot):
        container = depot.container(pending_wash=True, yard_location={"block": "W"})
        assert container.status == "PENDING_WASH"
        assert container.yard_location["block"] == "W"

    def test_duplicate_number(self, depot, container):
        with pytest.raises(ConflictError):
            depot.container(container.container_number.lower())

    def test_validation(self, depot):
        with pytest.raises(ValidationError):
            container_service.register_container({}, depot.actor)
        with pytest.raises(ValidationError):
            depot.container(size="30")


class TestLookup:
    def test_get_and_by_number(self, container):
        assert container_service.get_container(container.id) is container
        assert container_service.get_container_by_number("mscu1234567").id == container.id
        with pytest.raises(NotFoundError):
            container_service.get_container("nope")
        with pytest.raises(NotFoundError):
            container_service.get_container_by_number("ZZZU0000000")

    def test_search(self, depot):
        depot.container("MSCU0000001", booking="BK-77")
        depot.container("TGHU0000002", liner="ONE")
        assert {c.container_number for c in container_service.search_containers(q="mscu")} == {
            "MSCU0000001",
        }
        assert container_service.search_containers(q="BK-7").count() == 1
        assert container_service.search_containers(q="A-01").count() == 2
        assert container_service.search_containers(liner="ONE").count() == 1
        assert container_service.search_containers(status="dm").count() == 0

    def test_stats(self, depot, approver):
        first = depot.container("MSCU0000001")
        depot.container("MSCU0000002")
        depot.survey(first.id)
        stats = container_service.container_stats()
        assert stats["total"] == 2
        assert stats["by_status"]["DM"] == 1
        assert stats["by_status"]["STACKING"] == 1
        assert stats["by_status"]["AV"] == 0
        assert stats["with_rework"] == 0


class TestProgress:
    def test_fresh_container(self, container):
        progress = container_service.get_workflow_progress(container.id)
        assert progress["total_steps"] == 11
        assert progress["completed_steps"] == 1
        assert progress["current_step"] == "survey_created"
        assert progress["next_action"] == "Create Survey"
        assert progress["status"] == "STACKING"

    def test_washing_skipped_after_repair(self, depot, container, approver):
        depot.to_repaired(container.id, approver)
        progress = container_service.get_workflow_progress(container.id)
        states = {s["key"]: s["state"] for s in progress["steps"]}
        assert states["repair_completed"] == "completed"
        assert states["washing"] == "skipped"
        assert progress["current_step"] == "inspection_passed"
        assert progress["completed_steps"] == 9

    def test_active_washing_is_current(self, depot, container, approver):
        depot.to_repaired(container.id, approver)
        washing_service.create_washing_order(container.id, {}, depot.actor)
        progress = container_service.get_workflow_progress(container.id)
        assert progress["current_step"] == "washing"
        assert progress["next_action"] == "Complete Washing"

    def test_released(self, depot, container, approver):
        depot.to_repaired(container.id, approver)
        depot.inspect(container.id)
        depot.stack(container.id)
        progress = container_service.get_workflow_progress(container.id)
        assert progress["current_step"] is None
        assert progress["completed_steps"] == 11

    def test_no_jobs(self):
        progress = workflow_progress([])
        assert [s["state"] for s in progress["steps"][:3]] == ["completed", "current", "pending"]


class TestResolveOperation:
    def test_resolution_is_idempotent(self, depot, container):
        depot.survey(container.id)
        first = resolve_container_status(container.id, depot.actor)
        assert first == {
            "container_id": container.id,
            "container_number": "MSCU1234567",
            "previous_status": "DM",
            "status": "DM",
        }
        changes = AuditLog.query.filter_by(action="container.status_change").count()
        resolve_container_status(container.id, depot.actor)
        assert AuditLog.query.filter_by(action="container.status_change").count() == changes


class TestThresholdSetting:
    def test_default_from_config(self):
        assert approval_policy.get_auto_approval_threshold() == 100.0

    def test_update_is_audited(self, admin):
        result = approval_policy.set_auto_approval_threshold("250", admin)
        assert result == {"threshold": 250.0, "updated_by": "admin"}
        assert approval_policy.get_auto_approval_threshold() == 250.0
        log = AuditLog.query.filter_by(action="setting.update").one()
        assert log.diff["value"] == {"old": None, "new": "250.0"}

    def test_update_requires_capability(self, clerk):
        with pytest.raises(PermissionDenied):
            approval_policy.set_auto_approval_threshold(50, clerk)

    @pytest.mark.parametrize("value", [-1, "abc", None])
    def test_invalid_values(self, admin, value):
        with pytest.raises(ValidationError):
            approval_policy.set_auto_approval_threshold(value, admin)
