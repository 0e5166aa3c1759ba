"""
Depot M&R Workflow Engine
Runtime key/value settings that override static configuration.
"""

from datetime import datetime, timezone

from depot_mnr.models import db

AUTO_APPROVAL_THRESHOLD_KEY = "auto_approval_threshold"


class SystemSetting(db.Model):
    __tablename__ = "system_settings"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.String(500), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
