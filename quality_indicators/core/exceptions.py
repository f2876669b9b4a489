"""
Engine-wide exception hierarchy.

Every service raises one of these types; blueprints register handlers
against them once (``utils/errors.register_error_handlers``) and get
consistent HTTP status codes everywhere.

Usage:
    from quality_indicators.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="IndicatorEntry", resource_id=42)
    raise ValidationError("items must not be empty", details={"items": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the actor's scope.

    Used for BOTH genuinely missing records AND records outside the actor's
    visible units, so a caller cannot discover entries of other units.

    Args:
        resource: Human-readable model name (e.g. "IndicatorEntry", "Unit").
        resource_id: The key that was looked up. Included in logs.
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
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation collides with existing state.

    Covers duplicate unique values (entry code, entry period), writes to a
    finished entry, and status transitions lost to a concurrent update.
    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field in conflict ("code", "period", "status").
        value: The conflicting value.
        message: Optional override for the default "already exists" text.
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


class AuthorizationError(Exception):
    """Raised when the actor's role or unit scope forbids the operation.

    Maps to HTTP 403.

    Args:
        message: Human-readable explanation.
        allowed: Optional list of values the actor *is* allowed to use
                 (e.g. the statuses a role may set).
    """

    def __init__(self, message: str, allowed: list | None = None) -> None:
        self.allowed = list(allowed) if allowed else []
        super().__init__(message)
