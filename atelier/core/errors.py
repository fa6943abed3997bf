from __future__ import annotations


class AtelierError(Exception):
    """Base error for the access layer.

    Subclasses carry a stable machine-readable ``code`` and the HTTP status the
    API maps it to, so handlers never have to inspect messages.
    """

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthenticatedError(AtelierError):
    """No verified principal is attached to the request."""

    code = "UNAUTHENTICATED"
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(AtelierError):
    """Principal is known but lacks the authority for the operation."""

    code = "FORBIDDEN"
    status_code = 403
    default_message = "Access denied"


class NotFoundError(AtelierError):
    """Target entity is absent or outside the caller's visibility."""

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"

    @classmethod
    def for_entity(cls, entity: str) -> "NotFoundError":
        return cls(f"{entity} not found")


class ConflictError(AtelierError):
    """Operation is invalid given the current state."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Conflict with current state"


class ValidationFailedError(AtelierError):
    """Malformed input."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Request validation failed"


class InternalError(AtelierError):
    """Unexpected store failure; details stay in server logs."""
