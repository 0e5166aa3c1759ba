"""
Canonical exception types for the depot workflow engine.

Services raise these and never return error tuples. Blueprints register
one handler per type (see ``depot_mnr.blueprints.register_error_handlers``)
so every endpoint maps the same failure to the same HTTP status.

Usage:
    from depot_mnr.core.exceptions import NotFoundError, PreconditionNotMet

    raise NotFoundError(resource="Container", resource_id=container_id)
    raise PreconditionNotMet("shunting", "approved estimate")
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Container", "RepairOrder").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422. Malformed input (missing JSON body, wrong types) is
    rejected in the blueprint with 400 before the service is called.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field name.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised on a unique-key clash or when a container unit cannot be acquired.

    Maps to HTTP 409.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


# ── Workflow taxonomy ────────────────────────────────────────────────────────


class WorkflowError(Exception):
    """Base class for stage-ordering and state-machine failures."""

    def to_details(self) -> dict:
        return {}


class PreconditionNotMet(WorkflowError):
    """A stage job was requested before its required predecessor qualified."""

    def __init__(self, stage: str, missing: str) -> None:
        self.stage = stage
        self.missing = missing
        super().__init__(f"Cannot create {stage}: requires {missing}")

    def to_details(self) -> dict:
        return {"stage": self.stage, "missing": self.missing}


class InvalidStateTransition(WorkflowError):
    """A mutation was attempted from a status that does not allow it."""

    def __init__(
        self,
        entity: str,
        entity_id: str | None,
        action: str,
        current: str | None,
        reason: str | None = None,
    ) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.action = action
        self.current_status = current
        self.reason = reason
        msg = f"Cannot '{action}' {entity} {entity_id} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_details(self) -> dict:
        return {
            "entity": self.entity,
            "entity_id": self.entity_id,
            "action": self.action,
            "current_status": self.current_status,
        }


class PermissionDenied(WorkflowError):
    """The actor lacks the capability or the liner binding for an action."""

    def __init__(
        self,
        actor: str | None,
        screen: str,
        action: str,
        reason: str | None = None,
    ) -> None:
        self.actor = actor or "anonymous"
        self.screen = screen
        self.action = action
        self.reason = reason
        msg = f"User {self.actor} does not have permission for '{screen}/{action}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_details(self) -> dict:
        return {"screen": self.screen, "action": self.action}


class BlockedByDownstreamJob(WorkflowError):
    """A job was deleted while a later-stage job still exists."""

    def __init__(self, stage: str, job_id: str, blocking_stage: str) -> None:
        self.stage = stage
        self.job_id = job_id
        self.blocking_stage = blocking_stage
        super().__init__(
            f"Cannot delete {stage} {job_id}: a {blocking_stage} job exists downstream"
        )

    def to_details(self) -> dict:
        return {"stage": self.stage, "job_id": self.job_id, "blocking_stage": self.blocking_stage}


class DuplicateActiveJob(WorkflowError):
    """A second active job was requested for a stage that already has one."""

    def __init__(self, stage: str, container_id: str, existing_id: str) -> None:
        self.stage = stage
        self.container_id = container_id
        self.existing_id = existing_id
        super().__init__(
            f"Container {container_id} already has an active {stage} ({existing_id})"
        )

    def to_details(self) -> dict:
        return {"stage": self.stage, "existing_id": self.existing_id}
