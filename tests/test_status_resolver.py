"""
Status resolver unit tests.

Tests cover:
  - Each of the ten rules in isolation
  - Highest stage wins over any lower stage
  - Washing orders never affect the projection
  - Idempotence of resolve over an unchanged job set
  - apply_resolved_status audit behaviour
"""
from types import SimpleNamespace

import pytest

from depot_mnr.models.audit import AuditLog
from depot_mnr.models.stages import (
    STAGE_ESTIMATE,
    STAGE_PRE_INSPECTION,
    STAGE_REPAIR,
    STAGE_SHUNTING,
    STAGE_STACKING,
    STAGE_SURVEY,
    STAGE_WASHING,
)
from depot_mnr.services.status_resolver import (
    apply_resolved_status,
    resolve_container_status,
    resolve_status,
)


def job(stage, status="NEW", result=None):
    return SimpleNamespace(stage_type=stage, status=status, result=result)


# ═════════════════════════════════════════════════════════════════════════
# PURE RULES
# ═════════════════════════════════════════════════════════════════════════

class TestResolveRules:
    @pytest.mark.parametrize("jobs,expected", [
        ([job(STAGE_STACKING, "COMPLETED")], "AV"),
        ([job(STAGE_STACKING, "NEW")], "COMPLETED"),
        ([job(STAGE_STACKING, "IN_PROGRESS")], "COMPLETED"),
        ([job(STAGE_PRE_INSPECTION, "COMPLETED", "ACCEPTED")], "COMPLETED"),
        ([job(STAGE_PRE_INSPECTION, "PLANNED", "PENDING")], "REPAIR"),
        ([job(STAGE_PRE_INSPECTION, "PENDING_REWORK", "REWORK")], "REPAIR"),
        ([job(STAGE_REPAIR, "PENDING")], "REPAIR"),
        ([job(STAGE_REPAIR, "COMPLETED")], "REPAIR"),
        ([job(STAGE_SHUNTING, "COMPLETED")], "AR"),
        ([job(STAGE_ESTIMATE, "APPROVED")], "AR"),
        ([job(STAGE_ESTIMATE, "AUTO_APPROVED")], "AR"),
        ([job(STAGE_ESTIMATE, "PENDING")], "DM"),
        ([job(STAGE_ESTIMATE, "REJECTED")], "DM"),
        ([job(STAGE_SURVEY, "DRAFT")], "DM"),
        ([], "STACKING"),
    ])
    def test_single_rule(self, jobs, expected):
        assert resolve_status(jobs) == expected

    def test_uncompleted_shunting_alone_falls_through(self):
        # Rule 6 needs COMPLETED; an active shunting job with a pending
        # estimate resolves from the estimate.
        jobs = [job(STAGE_SHUNTING, "IN_PROGRESS"), job(STAGE_ESTIMATE, "PENDING")]
        assert resolve_status(jobs) == "DM"

    def test_highest_stage_wins(self):
        jobs = [
            job(STAGE_SURVEY, "COMPLETED"),
            job(STAGE_ESTIMATE, "APPROVED"),
            job(STAGE_SHUNTING, "COMPLETED"),
            job(STAGE_REPAIR, "COMPLETED"),
            job(STAGE_PRE_INSPECTION, "COMPLETED", "ACCEPTED"),
            job(STAGE_STACKING, "COMPLETED"),
        ]
        assert resolve_status(jobs) == "AV"

    def test_order_of_input_is_irrelevant(self):
        jobs = [
            job(STAGE_PRE_INSPECTION, "PLANNED", "PENDING"),
            job(STAGE_SURVEY, "COMPLETED"),
            job(STAGE_ESTIMATE, "APPROVED"),
        ]
        assert resolve_status(jobs) == resolve_status(list(reversed(jobs))) == "REPAIR"

    def test_washing_does_not_participate(self):
        assert resolve_status([job(STAGE_WASHING, "COMPLETED")]) == "STACKING"
        jobs = [job(STAGE_SURVEY, "COMPLETED"), job(STAGE_WASHING, "IN_PROGRESS")]
        assert resolve_status(jobs) == "DM"

    def test_idempotent(self):
        jobs = [job(STAGE_ESTIMATE, "APPROVED"), job(STAGE_SURVEY, "COMPLETED")]
        first = resolve_status(jobs)
        assert resolve_status(jobs) == first


# ═════════════════════════════════════════════════════════════════════════
# PERSISTED APPLY
# ═════════════════════════════════════════════════════════════════════════

class TestApplyResolvedStatus:
    def test_writes_status_and_audit_on_change(self, container):
        status = apply_resolved_status(container, [job(STAGE_SURVEY, "DRAFT")], "tester")
        assert status == "DM"
        assert container.status == "DM"
        log = AuditLog.query.filter_by(
            container_id=container.id, action="container.status_change",
        ).one()
        assert log.actor == "tester"
        assert log.diff["status"] == {"old": "STACKING", "new": "DM"}

    def test_no_audit_when_unchanged(self, container):
        apply_resolved_status(container, [], "tester")
        assert AuditLog.query.filter_by(action="container.status_change").count() == 0

    def test_resolve_container_status_operation(self, depot, container):
        depot.survey(container.id)
        result = resolve_container_status(container.id)
        assert result["status"] == "DM"
        assert result["previous_status"] == "DM"
        assert result["container_number"] == "MSCU1234567"
