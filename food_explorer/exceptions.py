"""
Application errors.

Every error raised by the CRUD layer derives from ``AppError`` and carries the
HTTP status the API answers with. ``main.create_app`` installs a handler that
renders them as ``{"detail": message}``.

AppError
├── NotFoundError          404
├── ConflictError          409
├── ValidationError        400
├── AuthError              401
└── PermissionDeniedError  403
"""


class AppError(Exception):
    """
    Base class for errors surfaced to API clients.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status returned to the client
        details: Optional dict with additional context (entity IDs, fields)
    """

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        if self.details:
            details_str = ', '.join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.__class__.__name__}('{self.message}', {details_str})"
        return f"{self.__class__.__name__}('{self.message}')"


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class ValidationError(AppError):
    status_code = 400


class AuthError(AppError):
    status_code = 401


class PermissionDeniedError(AppError):
    status_code = 403
