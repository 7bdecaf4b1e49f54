class AppError(Exception):
    """Base class for all application exceptions."""
    code = "internal_error"

    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised when a leave request is malformed or breaks a date rule."""
    code = "validation_error"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class ConflictError(AppError):
    """Raised when a leave request overlaps one the worker already holds."""
    code = "conflict"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class AuthorizationError(AppError):
    """Raised when the actor lacks the role or ownership an operation needs."""
    code = "forbidden"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=403, details=details)


class NotFoundError(AppError):
    """Raised when a requested resource is not found."""
    code = "not_found"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class InvalidStateError(AppError):
    """Raised when a transition is attempted from a status that does not allow it."""
    code = "invalid_state"

    def __init__(self, message: str, *, current_status: str, details: dict = None):
        merged = {"current_status": current_status}
        merged.update(details or {})
        super().__init__(message, status_code=409, details=merged)


class InfrastructureError(AppError):
    """Raised when the backing store fails; the caller may retry later."""
    code = "storage_unavailable"

    def __init__(self, message: str = "The data store is temporarily unavailable. Please retry shortly."):
        super().__init__(message, status_code=503)
