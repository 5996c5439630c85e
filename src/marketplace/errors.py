"""Domain errors raised by the service layer.

Each error carries the HTTP status code it maps to and a message that is safe
to show to clients. Internal details belong in the logs, never in ``message``.
"""


class ServiceError(Exception):
    """Base class for errors reported to API clients."""

    status_code = 500
    default_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid input."


class InvalidCredentials(ServiceError):
    status_code = 401
    default_message = "Invalid username or password."


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Access denied."


class PendingApproval(ServiceError):
    status_code = 403
    default_message = "Your vendor account is pending approval."


class NotFound(ServiceError):
    status_code = 404
    default_message = "Resource not found."


class IntegrityError(ServiceError):
    """A related row that must exist is missing."""

    status_code = 404
    default_message = "Vendor profile not found. Please contact support."


class MethodNotAllowed(ServiceError):
    status_code = 405
    default_message = "Invalid request method. Only POST is accepted."


class ConflictError(ServiceError):
    status_code = 409
    default_message = "The request conflicts with existing data."


class InvalidTransition(ConflictError):
    default_message = "The requested status change is not allowed."


class PersistenceError(ServiceError):
    status_code = 500
    default_message = "A database error occurred."
