"""
Routing-core exception hierarchy.

Every service in the core raises one of these types. The transport layer
(outside this package) maps them to response codes once:

    NotFoundError      -> 404
    AccessDeniedError  -> 403
    ValidationError    -> 400
    InvalidStateError  -> 409
    ConflictError      -> 409

Usage:
    from docflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Workflow", resource_id=42)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a referenced workflow/action/goal/user does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Workflow", "Goal").
        resource_id: The PK that was looked up. Included in logs.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class AccessDeniedError(Exception):
    """Raised when the actor may not touch a resource.

    Two situations raise it: the actor's company differs from the resource's
    company and the actor lacks the Master override, or a non-privileged
    actor initiates a cross-company routing/assignment.

    Args:
        message: Explanation, safe to show to the caller.
        actor_id: Acting user id (None for system actors). Logged only.
        company_id: Company scope that was enforced. Logged only.
    """

    def __init__(
        self,
        message: str,
        actor_id: int | None = None,
        company_id: int | None = None,
    ) -> None:
        self.actor_id = actor_id
        self.company_id = company_id
        super().__init__(message)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Typical causes: required fields missing (incomplete action assignee,
    goal without assignee type), or an unresolvable routing target such as
    "route to secretary" when no secretary exists.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when an operation is not permitted in the current lifecycle state.

    Args:
        resource: Entity name.
        current_state: The state that blocked the operation.
        reason: What was attempted and why it is rejected.
    """

    def __init__(self, resource: str, current_state: str | None, reason: str) -> None:
        self.resource = resource
        self.current_state = current_state
        super().__init__(f"{resource} (status={current_state}): {reason}")


class ConflictError(Exception):
    """Raised when a concurrent writer changed the resource first.

    Surfaces optimistic-lock failures (stale ``version``) and duplicate
    routing sequence numbers. The caller should reload and retry.

    Args:
        resource: Entity name.
        resource_id: PK of the conflicting row, if known.
        reason: Short description of the conflict.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        reason: str = "modified concurrently",
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += f" {reason}"
        super().__init__(msg)
