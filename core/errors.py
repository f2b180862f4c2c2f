"""Domain error taxonomy shared by services and the API layer."""


class DomainError(Exception):
    """Base class for errors raised by the domain services.

    ``message`` is safe to show to the end user; ``code`` is a stable
    machine-readable identifier.
    """

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class Unauthenticated(DomainError):
    """No valid session, or credentials were rejected."""

    status_code = 401
    code = "unauthenticated"


class PermissionDenied(DomainError):
    """The actor is authenticated but may not act on this entity."""

    status_code = 403
    code = "permission_denied"


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class Conflict(DomainError):
    """The operation clashes with the current state (already matched, blocked, ...)."""

    status_code = 409
    code = "conflict"


class PreconditionFailed(DomainError):
    """A referenced entity the operation depends on does not exist."""

    status_code = 412
    code = "precondition_failed"


class InvalidInput(DomainError):
    status_code = 422
    code = "invalid_input"


class RateLimited(DomainError):
    status_code = 429
    code = "rate_limited"


def require_actor(actor_id: str | None) -> str:
    """Fail closed when an operation is invoked without an authenticated actor."""
    if not actor_id:
        raise Unauthenticated("Sign in to continue")
    return actor_id
