"""
Error taxonomy for the ordering API.

Every domain rule violation is raised as one of these classes. The Flask
error handlers in ``Flask_app`` turn them into the JSON error envelope using
the class-level ``status_code``.
"""


class AppError(Exception):
    """Base class for errors that are safe to show to API callers."""

    status_code = 400

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(AppError):
    """Malformed or out-of-range input. Carries a list of messages."""

    status_code = 422

    def __init__(self, errors, message="Validation failed"):
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(message, list(errors))


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """Duplicates, cross-vendor carts, invalid state transitions."""

    status_code = 400


class AuthorizationError(AppError):
    status_code = 403

    def __init__(self, message="Access denied"):
        super().__init__(message)


class AuthenticationError(AppError):
    status_code = 401

    def __init__(self, message="Access denied. Please log in."):
        super().__init__(message)


class InternalError(AppError):
    status_code = 500

    def __init__(self, message="Something went wrong. Please try again."):
        super().__init__(message)
