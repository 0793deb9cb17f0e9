"""Business error taxonomy shared by the engines and the API layer."""


class StorefrontError(Exception):
    """Base class for errors raised by the storefront engines."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Malformed or missing input."""

    status_code = 400


class ForbiddenError(StorefrontError):
    """Caller is authenticated but not entitled to the operation."""

    status_code = 403


class NotFoundError(StorefrontError):
    """Referenced entity does not exist."""

    status_code = 404


class ConflictError(StorefrontError):
    """Request is well-formed but the entity's current state forbids it."""

    status_code = 409


class InternalError(StorefrontError):
    """Persistence or transaction failure."""

    status_code = 500
