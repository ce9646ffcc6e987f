"""
Committee-wide exception hierarchy.

All services raise these types; blueprints register one handler per type
and get consistent HTTP status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="StagedCompetency", resource_id=stage_id)
    raise ValidationError("Name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    For ballots and merges this is the expected outcome of a race: the
    staged proposal was merged (or rejected) by a concurrent call.

    Args:
        resource: Human-readable entity name (e.g. "Proposal", "Tag").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidReferenceError(ValidationError):
    """Raised when input refers to an id that does not exist.

    Distinct from NotFoundError: the *target* of the request exists, but
    one of the ids it carries (a tag, the target competency, a media row)
    is dangling.

    Args:
        resource: Model name of the dangling reference.
        resource_id: The id that could not be resolved.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} id={resource_id} does not exist",
            details={"resource": resource, "id": resource_id},
        )


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PermissionDeniedError(Exception):
    """Raised when a committee member attempts a chair-only operation.

    Maps to HTTP 403.
    """

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Only the committee chair may {action}")
