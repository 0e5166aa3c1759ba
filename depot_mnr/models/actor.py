"""
Depot M&R Workflow Engine
Actor model — depot staff and liner users.

Authentication is handled upstream; this record only carries what the
capability predicate needs (type, liner binding, groups, permissions).
"""

from datetime import datetime, timezone

from depot_mnr.models import db

USER_TYPE_INTERNAL = "INTERNAL"
USER_TYPE_EXTERNAL = "EXTERNAL"
USER_TYPES = {USER_TYPE_INTERNAL, USER_TYPE_EXTERNAL}

ADMIN_GROUP = "admin"

SYSTEM_ACTOR = "SYSTEM"


class Actor(db.Model):
    __tablename__ = "actors"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(200), nullable=True)
    user_type = db.Column(db.String(10), nullable=False, default=USER_TYPE_INTERNAL)
    liner_code = db.Column(
        db.String(20), nullable=True,
        comment="Liner an EXTERNAL actor is bound to",
    )
    groups = db.Column(db.JSON, default=list)
    screens = db.Column(db.JSON, default=list)
    screen_permissions = db.Column(
        db.JSON, default=dict,
        comment="{screen: {action: bool}}",
    )
    functions = db.Column(db.JSON, default=list, comment="Legacy flat function list")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_internal(self) -> bool:
        return self.user_type == USER_TYPE_INTERNAL

    @property
    def is_external(self) -> bool:
        return self.user_type == USER_TYPE_EXTERNAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "user_type": self.user_type,
            "liner_code": self.liner_code,
            "groups": self.groups or [],
            "screens": self.screens or [],
            "screen_permissions": self.screen_permissions or {},
            "functions": self.functions or [],
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Actor {self.username} [{self.user_type}]>"


def actor_name(actor) -> str:
    """Username to stamp on records; ``SYSTEM`` when no actor is present."""
    if actor is None:
        return SYSTEM_ACTOR
    return getattr(actor, "username", None) or str(actor)
