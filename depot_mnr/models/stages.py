"""
Depot M&R Workflow Engine
Stage job models.

Seven job types share one envelope (``StageJobMixin``): id, owning
container (by id and by number), transaction id, local status and
created/completed stamps. Each type adds its own payload and carries a
``stage_type`` tag so resolver, ordering table and deletion guard can
treat a mixed job list uniformly.

Models:
    - Survey
    - EstimateOfRepair
    - ShuntingRequest
    - RepairOrder
    - WashingOrder
    - PreInspection
    - StackingRequest
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from depot_mnr.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def created_sort_key(job):
    """Naive-UTC creation time; SQLite hands back naive datetimes."""
    ts = job.created_at or datetime.min
    return ts.replace(tzinfo=None)


# ── Stage identifiers ────────────────────────────────────────────────────────

STAGE_SURVEY = "survey"
STAGE_ESTIMATE = "estimate"
STAGE_SHUNTING = "shunting"
STAGE_REPAIR = "repair_order"
STAGE_WASHING = "washing_order"
STAGE_PRE_INSPECTION = "pre_inspection"
STAGE_STACKING = "stacking"

STAGE_TYPES = (
    STAGE_SURVEY,
    STAGE_ESTIMATE,
    STAGE_SHUNTING,
    STAGE_REPAIR,
    STAGE_WASHING,
    STAGE_PRE_INSPECTION,
    STAGE_STACKING,
)

STAGE_LABELS = {
    STAGE_SURVEY: "Survey",
    STAGE_ESTIMATE: "Estimate",
    STAGE_SHUNTING: "Shunting",
    STAGE_REPAIR: "RepairOrder",
    STAGE_WASHING: "WashingOrder",
    STAGE_PRE_INSPECTION: "PreInspection",
    STAGE_STACKING: "StackingRequest",
}


# ── Local status values ──────────────────────────────────────────────────────

SURVEY_STATUSES = {"DRAFT", "IN_PROGRESS", "COMPLETED", "RELEASED"}
SURVEY_CONDITIONS = {"DAMAGED", "NO_DAMAGE"}

ESTIMATE_STATUSES = {"DRAFT", "PENDING", "SENT", "APPROVED", "AUTO_APPROVED", "REJECTED"}
ESTIMATE_APPROVED_STATUSES = {"APPROVED", "AUTO_APPROVED"}
ESTIMATE_DECIDABLE_STATUSES = {"PENDING", "SENT"}

SHUNTING_STATUSES = {"NEW", "DISPATCHED", "IN_PROGRESS", "COMPLETED"}
SHUNTING_PRIORITIES = {"NORMAL", "URGENT"}

REPAIR_STATUSES = {"PENDING", "IN_PROGRESS", "COMPLETED"}

WASHING_STATUSES = {
    "PENDING_APPROVAL", "PENDING_SCHEDULE", "SCHEDULED", "IN_PROGRESS",
    "PENDING_QC", "REWORK", "COMPLETED", "REJECTED",
}

INSPECTION_STATUSES = {"PLANNED", "IN_PROGRESS", "PENDING_REWORK", "COMPLETED"}
INSPECTION_RESULTS = {"ACCEPTED", "REWORK", "PENDING"}

STACKING_STATUSES = {"NEW", "IN_PROGRESS", "COMPLETED"}


# ── Transition tables ────────────────────────────────────────────────────────
# action → {"from": [allowed current statuses], "to": target}
# A ``None`` target means the service decides (e.g. QC pass vs fail).

SURVEY_TRANSITIONS = {
    "start": {"from": ["DRAFT"], "to": "IN_PROGRESS"},
    "complete": {"from": ["DRAFT", "IN_PROGRESS"], "to": "COMPLETED"},
    "release": {"from": ["COMPLETED"], "to": "RELEASED"},
}

ESTIMATE_TRANSITIONS = {
    "send": {"from": ["DRAFT"], "to": "SENT"},
    "approve": {"from": ["PENDING", "SENT"], "to": "APPROVED"},
    "reject": {"from": ["PENDING", "SENT"], "to": "REJECTED"},
}

SHUNTING_TRANSITIONS = {
    "dispatch": {"from": ["NEW"], "to": "DISPATCHED"},
    "start": {"from": ["NEW", "DISPATCHED"], "to": "IN_PROGRESS"},
    "complete": {"from": ["IN_PROGRESS"], "to": "COMPLETED"},
}

REPAIR_TRANSITIONS = {
    "start": {"from": ["PENDING"], "to": "IN_PROGRESS"},
    "complete": {"from": ["IN_PROGRESS"], "to": "COMPLETED"},
}

WASHING_TRANSITIONS = {
    "approve": {"from": ["PENDING_APPROVAL"], "to": "PENDING_SCHEDULE"},
    "reject": {"from": ["PENDING_APPROVAL"], "to": "REJECTED"},
    "schedule": {"from": ["PENDING_SCHEDULE"], "to": "SCHEDULED"},
    "start": {"from": ["SCHEDULED", "REWORK"], "to": "IN_PROGRESS"},
    "finish": {"from": ["IN_PROGRESS"], "to": "PENDING_QC"},
    "qc": {"from": ["PENDING_QC"], "to": None},
}

INSPECTION_TRANSITIONS = {
    "start": {"from": ["PLANNED"], "to": "IN_PROGRESS"},
    "complete": {"from": ["PLANNED", "IN_PROGRESS"], "to": None},
}

STACKING_TRANSITIONS = {
    "start": {"from": ["NEW"], "to": "IN_PROGRESS"},
    "complete": {"from": ["NEW", "IN_PROGRESS"], "to": "COMPLETED"},
}


# ── Shared envelope ──────────────────────────────────────────────────────────


class StageJobMixin:
    """Common columns and helpers for every stage job."""

    stage_type = ""
    transitions = {}
    terminal_statuses = frozenset()

    id = db.Column(db.String(40), primary_key=True, default=_uuid)
    container_number = db.Column(db.String(20), nullable=False, index=True)
    transaction_id = db.Column(db.String(40), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)

    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_by = db.Column(db.String(100), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    @declared_attr
    def container_id(cls):
        # Nullable: jobs imported from older records may carry only the number.
        return db.Column(
            db.String(36),
            db.ForeignKey("containers.id", ondelete="CASCADE"),
            nullable=True,
            index=True,
        )

    @property
    def is_active(self) -> bool:
        return self.status not in self.terminal_statuses

    def envelope(self) -> dict:
        return {
            "id": self.id,
            "stage_type": self.stage_type,
            "container_id": self.container_id,
            "container_number": self.container_number,
            "transaction_id": self.transaction_id,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "completed_by": self.completed_by,
            "completed_at": _iso(self.completed_at),
            "updated_by": self.updated_by,
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<{type(self).__name__} {self.id} [{self.status}]>"


# ── Stage 1: Survey ──────────────────────────────────────────────────────────


class Survey(StageJobMixin, db.Model):
    """Damage survey. Its id is the workflow's transaction id."""

    __tablename__ = "surveys"

    stage_type = STAGE_SURVEY
    transitions = SURVEY_TRANSITIONS
    terminal_statuses = frozenset({"COMPLETED", "RELEASED"})

    survey_type = db.Column(db.String(30), nullable=True)
    initial_condition = db.Column(db.String(20), nullable=True)
    damage_items = db.Column(db.JSON, default=list)
    notes = db.Column(db.Text, nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        d = self.envelope()
        d.update({
            "survey_type": self.survey_type,
            "initial_condition": self.initial_condition,
            "damage_items": self.damage_items or [],
            "notes": self.notes,
            "started_at": _iso(self.started_at),
        })
        return d


# ── Stage 2: Estimate of Repair ──────────────────────────────────────────────


class EstimateOfRepair(StageJobMixin, db.Model):
    """Costed list of repair line items awaiting (auto-)approval."""

    __tablename__ = "estimates_of_repair"

    stage_type = STAGE_ESTIMATE
    transitions = ESTIMATE_TRANSITIONS
    terminal_statuses = frozenset({"APPROVED", "AUTO_APPROVED", "REJECTED"})

    survey_id = db.Column(db.String(40), nullable=True, index=True)
    liner = db.Column(db.String(20), nullable=True, index=True)
    repair_items = db.Column(db.JSON, default=list)
    total_cost = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(5), nullable=False, default="RM")
    need_approval = db.Column(db.Boolean, nullable=False, default=True)
    auto_approved = db.Column(db.Boolean, nullable=False, default=False)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_by = db.Column(db.String(100), nullable=True)
    sent_to = db.Column(db.String(200), nullable=True)
    sent_method = db.Column(db.String(20), nullable=True)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(100), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(100), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    @property
    def is_approved(self) -> bool:
        return self.status in ESTIMATE_APPROVED_STATUSES

    def to_dict(self) -> dict:
        d = self.envelope()
        d.update({
            "survey_id": self.survey_id,
            "liner": self.liner,
            "repair_items": self.repair_items or [],
            "total_cost": self.total_cost,
            "currency": self.currency,
            "need_approval": self.need_approval,
            "auto_approved": self.auto_approved,
            "sent_at": _iso(self.sent_at),
            "sent_by": self.sent_by,
            "sent_to": self.sent_to,
            "sent_method": self.sent_method,
            "approved_at": _iso(self.approved_at),
            "approved_by": self.approved_by,
            "approval_notes": self.approval_notes,
            "rejected_at": _iso(self.rejected_at),
            "rejected_by": self.rejected_by,
            "rejection_reason": self.rejection_reason,
        })
        return d


# ── Stage 3: Shunting ────────────────────────────────────────────────────────


class ShuntingRequest(StageJobMixin, db.Model):
    """Move of a container inside the yard, normally to a repair bay."""

    __tablename__ = "shunting_requests"

    stage_type = STAGE_SHUNTING
    transitions = SHUNTING_TRANSITIONS
    terminal_statuses = frozenset({"COMPLETED"})

    from_location = db.Column(db.JSON, default=dict)
    to_block = db.Column(db.String(10), nullable=False)
    assigned_driver = db.Column(db.String(100), nullable=True)
    priority = db.Column(db.String(10), nullable=False, default="NORMAL")
    notes = db.Column(db.Text, nullable=True)
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        d = self.envelope()
        d.update({
            "from_location": self.from_location or {},
            "to_block": self.to_block,
            "assigned_driver": self.assigned_driver,
            "priority": self.priority,
            "notes": self.notes,
            "dispatched_at": _iso(self.dispatched_at),
            "started_at": _iso(self.started_at),
        })
        return d


# ── Stage 4: Repair order ────────────────────────────────────────────────────


class RepairOrder(StageJobMixin, db.Model):
    """Physical repair work. Reopened in place by inspection rework."""

    __tablename__ = "repair_orders"

    stage_type = STAGE_REPAIR
    transitions = REPAIR_TRANSITIONS
    terminal_statuses = frozenset({"COMPLETED"})

    eor_id = db.Column(db.String(40), nullable=True, index=True)
    assigned_team = db.Column(db.String(100), nullable=True)
    work_items = db.Column(db.JSON, default=list)
    notes = db.Column(db.Text, nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)

    rework_required = db.Column(db.Boolean, nullable=False, default=False)
    rework_count = db.Column(db.Integer, nullable=False, default=0)
    rework_notes = db.Column(db.Text, nullable=True)
    rework_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rework_requested_by = db.Column(db.String(100), nullable=True)
    failed_checks = db.Column(db.JSON, default=list)

    def to_dict(self) -> dict:
        d = self.envelope()
        d.update({
            "eor_id": self.eor_id,
            "assigned_team": self.assigned_team,
            "work_items": self.work_items or [],
            "notes": self.notes,
            "started_at": _iso(self.started_at),
            "rework_required": self.rework_required,
            "rework_count": self.rework_count,
            "rework_notes": self.rework_notes,
            "rework_requested_at": _iso(self.rework_requested_at),
            "rework_requested_by": self.rework_requested_by,
            "failed_checks": self.failed_checks or [],
        })
        return d


# ── Stage 5: Washing order ───────────────────────────────────────────────────


class WashingOrder(StageJobMixin, db.Model):
    """Cleaning job with its own QC loop and certificate."""

    __tablename__ = "washing_orders"

    stage_type = STAGE_WASHING
    transitions = WASHING_TRANSITIONS
    terminal_statuses = frozenset({"COMPLETED", "REJECTED"})

    cleaning_program = db.Column(db.String(50), nullable=True)
    contamination_level = db.Column(db.String(20), nullable=True)
    assigned_bay = db.Column(db.String(20), nullable=True)
    assigned_worker = db.Column(db.String(100), nullable=True)
    assigned_team = db.Column(db.String(100), nullable=True)
    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    checklist_results = db.Column(db.JSON, default=dict)
    worker_notes = db.Column(db.Text, nullable=True)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(100), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(100), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    qc_result = db.Column(db.String(10), nullable=True)
    qc_notes = db.Column(db.Text, nullable=True)
    qc_checklist_results = db.Column(db.JSON, default=dict)
    qc_inspected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    qc_inspected_by = db.Column(db.String(100), nullable=True)

    rework_count = db.Column(db.Integer, nullable=False, default=0)
    rework_reasons = db.Column(db.JSON, default=list)
    certificate_number = db.Column(db.String(20), nullable=True, unique=True)
    certificate_issued_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        d = self.envelope()
        d.update({
            "cleaning_program": self.cleaning_program,
            "contamination_level": self.contamination_level,
            "assigned_bay": self.assigned_bay,
            "assigned_worker": self.assigned_worker,
            "assigned_team": self.assigned_team,
            "scheduled_at": _iso(self.scheduled_at),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "checklist_results": self.checklist_results or {},
            "worker_notes": self.worker_notes,
            "approved_at": _iso(self.approved_at),
            "approved_by": self.approved_by,
            "rejected_at": _iso(self.rejected_at),
            "rejected_by": self.rejected_by,
            "rejection_reason": self.rejection_reason,
            "qc_result": self.qc_result,
            "qc_notes": self.qc_notes,
            "qc_checklist_results": self.qc_checklist_results or {},
            "qc_inspected_at": _iso(self.qc_inspected_at),
            "qc_inspected_by": self.qc_inspected_by,
            "rework_count": self.rework_count,
            "rework_reasons": self.rework_reasons or [],
            "certificate_number": self.certificate_number,
            "certificate_issued_at": _iso(self.certificate_issued_at),
        })
        return d


# ── Stage 6: Pre-inspection ──────────────────────────────────────────────────


class PreInspection(StageJobMixin, db.Model):
    """Post-repair quality check against the survey's damage items."""

    __tablename__ = "pre_inspections"

    stage_type = STAGE_PRE_INSPECTION
    transitions = INSPECTION_TRANSITIONS
    terminal_statuses = frozenset({"COMPLETED"})

    survey_transaction_id = db.Column(db.String(40), nullable=True, index=True)
    result = db.Column(db.String(10), nullable=False, default="PENDING")
    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)

    damage_item_results = db.Column(db.JSON, default=dict)
    checklist_results = db.Column(db.JSON, default=dict)
    cleaning_checklist_results = db.Column(db.JSON, default=dict)
    failed_checks = db.Column(db.JSON, default=list)
    failed_damage_items = db.Column(db.JSON, default=list)
    inspection_notes = db.Column(db.Text, nullable=True)

    rework_count = db.Column(db.Integer, nullable=False, default=0)
    last_inspected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_inspected_by = db.Column(db.String(100), nullable=True)

    def to_dict(self) -> dict:
        d = self.envelope()
        d.update({
            "survey_transaction_id": self.survey_transaction_id,
            "result": self.result,
            "scheduled_date": _iso(self.scheduled_date),
            "started_at": _iso(self.started_at),
            "damage_item_results": self.damage_item_results or {},
            "checklist_results": self.checklist_results or {},
            "cleaning_checklist_results": self.cleaning_checklist_results or {},
            "failed_checks": self.failed_checks or [],
            "failed_damage_items": self.failed_damage_items or [],
            "inspection_notes": self.inspection_notes,
            "rework_count": self.rework_count,
            "last_inspected_at": _iso(self.last_inspected_at),
            "last_inspected_by": self.last_inspected_by,
        })
        return d


# ── Stage 7: Stacking / release ──────────────────────────────────────────────


class StackingRequest(StageJobMixin, db.Model):
    """Final yard placement and gate pass for an available container."""

    __tablename__ = "stacking_requests"

    stage_type = STAGE_STACKING
    transitions = STACKING_TRANSITIONS
    terminal_statuses = frozenset({"COMPLETED"})

    from_location = db.Column(db.JSON, default=dict)
    target_location = db.Column(db.JSON, default=dict)
    gate_pass_number = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)
    released_by = db.Column(db.String(100), nullable=True)

    def to_dict(self) -> dict:
        d = self.envelope()
        d.update({
            "from_location": self.from_location or {},
            "target_location": self.target_location or {},
            "gate_pass_number": self.gate_pass_number,
            "notes": self.notes,
            "started_at": _iso(self.started_at),
            "released_at": _iso(self.released_at),
            "released_by": self.released_by,
        })
        return d


# ── Registry ─────────────────────────────────────────────────────────────────

STAGE_MODELS = {
    STAGE_SURVEY: Survey,
    STAGE_ESTIMATE: EstimateOfRepair,
    STAGE_SHUNTING: ShuntingRequest,
    STAGE_REPAIR: RepairOrder,
    STAGE_WASHING: WashingOrder,
    STAGE_PRE_INSPECTION: PreInspection,
    STAGE_STACKING: StackingRequest,
}
