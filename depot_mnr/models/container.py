"""
Depot M&R Workflow Engine
Container aggregate.

A container is registered once at gate-in and never deleted. Its
``status`` is a projection of the stage jobs that exist for it and is
written only by ``services.status_resolver``.
"""

import uuid
from datetime import datetime, timezone

from depot_mnr.models import db


# ── Status constants ─────────────────────────────────────────────────────────

STATUS_STACKING = "STACKING"
STATUS_DAMAGED = "DM"
STATUS_AWAITING_REPAIR = "AR"
STATUS_REPAIR = "REPAIR"
STATUS_COMPLETED = "COMPLETED"
STATUS_AVAILABLE = "AV"
STATUS_PENDING_WASH = "PENDING_WASH"

CONTAINER_STATUSES = {
    STATUS_STACKING,
    STATUS_DAMAGED,
    STATUS_AWAITING_REPAIR,
    STATUS_REPAIR,
    STATUS_COMPLETED,
    STATUS_AVAILABLE,
    STATUS_PENDING_WASH,
}

CONTAINER_SIZES = {"20", "40", "45"}

DEFAULT_YARD_LOCATION = {"block": "A", "row": "01", "tier": "1"}


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Container(db.Model):
    """A shipping container tracked through the depot repair workflow."""

    __tablename__ = "containers"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    container_number = db.Column(db.String(20), nullable=False, unique=True, index=True)
    liner = db.Column(db.String(20), nullable=True, index=True)
    size = db.Column(db.String(10), nullable=True)
    container_type = db.Column(db.String(10), nullable=True)
    booking = db.Column(db.String(50), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=STATUS_STACKING, index=True)
    rework_count = db.Column(db.Integer, nullable=False, default=0)

    yard_block = db.Column(db.String(10), nullable=False, default=DEFAULT_YARD_LOCATION["block"])
    yard_row = db.Column(db.String(10), nullable=False, default=DEFAULT_YARD_LOCATION["row"])
    yard_tier = db.Column(db.String(10), nullable=False, default=DEFAULT_YARD_LOCATION["tier"])

    last_survey_id = db.Column(db.String(40), nullable=True)
    gate_in_date = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    @property
    def yard_location(self) -> dict:
        return {"block": self.yard_block, "row": self.yard_row, "tier": self.yard_tier}

    def move_to(self, location: dict) -> None:
        """Set the yard slot. Missing keys keep their current value."""
        self.yard_block = location.get("block") or self.yard_block
        self.yard_row = location.get("row") or self.yard_row
        self.yard_tier = location.get("tier") or self.yard_tier

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "container_number": self.container_number,
            "liner": self.liner,
            "size": self.size,
            "type": self.container_type,
            "booking": self.booking,
            "status": self.status,
            "rework_count": self.rework_count,
            "yard_location": self.yard_location,
            "last_survey_id": self.last_survey_id,
            "gate_in_date": self.gate_in_date.isoformat() if self.gate_in_date else None,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Container {self.container_number} [{self.status}]>"
