"""
Review API exception hierarchy.

Services raise these types; blueprints and the application-level error
handlers translate them to HTTP responses through ``utils.errors``.
Nothing in the service layer catches one of these to downgrade it.

Usage:
    from review_api.core.exceptions import NotFoundError, ForbiddenError

    raise NotFoundError(resource="ReviewApplication", resource_id=app_id)
    raise ForbiddenError("Only the comment author can update it")
"""


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Submission").
        resource_id: The identifier that was looked up.
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
    """Raised for malformed input or a referential mismatch.

    Examples: an application role that does not match the opportunity type,
    a workflow referencing an inactive scorecard, an immutable field in an
    update body.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique record.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class InvalidTransitionError(Exception):
    """Raised when a status change is not allowed from the current status.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, resource_id: str, action: str, current: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.action = action
        self.current = current
        super().__init__(f"Cannot {action} {resource} {resource_id} (status={current})")


class ForbiddenError(Exception):
    """Raised when an authorization rule denies the operation.

    Maps to HTTP 403.
    """

    def __init__(self, message: str = "Insufficient permissions", details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(Exception):
    """Raised when a guarded route is called without a usable identity.

    Maps to HTTP 401.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class UpstreamError(Exception):
    """Raised when a required external service call failed.

    Maps to HTTP 502.

    Args:
        service: Logical name of the collaborator ("challenge", "storage", ...).
        message: Error text returned by the gateway.
    """

    def __init__(self, service: str, message: str | None = None) -> None:
        self.service = service
        super().__init__(f"{service} service error: {message or 'unavailable'}")


class StorageError(UpstreamError):
    """Object storage is misconfigured or the call failed. Maps to HTTP 502."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__("storage", message)
