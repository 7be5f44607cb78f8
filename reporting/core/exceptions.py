"""
Platform-wide exception hierarchy.

Services raise these canonical types; blueprints register handlers against
them once and get consistent HTTP status codes everywhere.

Usage:
    from reporting.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Committee", resource_id=42)
    raise ValidationError("min_chairman_office_rank must be positive")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    ``mark_as_confidential`` raises it as its precondition failure when the
    marking committee is missing. Most read paths return None/False instead.

    Args:
        resource: Human-readable model/entity name (e.g. "Committee", "Report").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
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

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write loses a race against a unique constraint.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field group) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PreviewCancelledError(Exception):
    """Raised when an impact preview is cancelled or exceeds its deadline.

    Maps to HTTP 503. Nothing is written, so the caller may simply retry later.

    Args:
        processed: Number of users classified before the pass stopped.
        reason: "timeout" or "cancelled".
    """

    def __init__(self, processed: int, reason: str = "timeout") -> None:
        self.processed = processed
        self.reason = reason
        super().__init__(f"Impact preview {reason} after {processed} user(s)")
