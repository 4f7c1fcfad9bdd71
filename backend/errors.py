"""Application error taxonomy.

Every error carries the HTTP status it is rendered with at the API boundary
(see the exception handlers in main.py).
"""


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class BadRequest(AppError):
    status_code = 400
    message = "Bad request"


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class FormClosed(AppError):
    status_code = 403
    message = "Form is not accepting responses"


class DuplicateResponse(AppError):
    status_code = 409
    message = "A response from this client has already been recorded"


class ValidationFailed(AppError):
    """Field-indexed validation failure: `errors` maps field id -> message."""

    status_code = 422
    message = "Validation failed"

    def __init__(self, errors: dict[str, str]):
        super().__init__()
        self.errors = errors


class PersistenceError(AppError):
    status_code = 500
    message = "Internal server error"
