class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ScheduleGenerationError(AppError):
    """Raised when a configuration cannot produce a schedule."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )

class AccessDeniedError(AppError):
    """Raised when a resource exists but belongs to another user."""
    def __init__(self, resource_type: str, resource_id):
        super().__init__(
            f"{resource_type} with id {resource_id} is not accessible",
            status_code=403,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )

class ScheduleConflictError(AppError):
    """Raised when writing events would place two events in one date and period cell."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)
