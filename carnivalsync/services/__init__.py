"""Service layer: business rules over the DAOs, failing with typed errors."""


class ServiceError(Exception):
    """Base of every failure a service reports to its caller.

    ``code`` is the stable identifier clients switch on; ``status`` is the
    HTTP status the API maps it to.
    """

    code = "internal"
    status = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    code, status = "bad_request", 400


class AuthenticationError(ServiceError):
    code, status = "unauthenticated", 401


class ForbiddenError(ServiceError):
    """The caller is known but may not act on this carnival."""

    code, status = "forbidden", 403


class NotFoundError(ServiceError):
    code, status = "not_found", 404


class ConflictError(ServiceError):
    """The carnival or sync log is not in a state that allows the transition."""

    code, status = "conflict", 409


class GoneError(ServiceError):
    """The carnival exists but has been retired."""

    code, status = "gone", 410


class ValidationError(ServiceError):
    code, status = "validation_error", 422
