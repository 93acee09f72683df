"""
Error taxonomy shared by every RepairMate service.

Each error carries the HTTP status it is surfaced with; the handlers in
``shared.responses`` turn them into the uniform response envelope.
"""


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(AppError):
    status_code = 400
    default_message = "Bad request"


class ValidationError(BadRequest):
    """Malformed or missing input."""

    default_message = "Invalid request"


class InvalidTransition(BadRequest):
    """The operation is not legal from the booking's current status."""

    default_message = "Invalid status transition"


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(AppError):
    status_code = 403
    default_message = "Access forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Internal(AppError):
    status_code = 500
    default_message = "Internal server error"


_ERRORS_BY_STATUS = {
    400: BadRequest,
    401: Unauthenticated,
    403: Forbidden,
    404: NotFound,
}


def error_for_status(status_code: int, message: str | None = None) -> AppError:
    error_cls = _ERRORS_BY_STATUS.get(status_code)
    if error_cls is None:
        error_cls = BadRequest if 400 <= status_code < 500 else Internal
    return error_cls(message)
