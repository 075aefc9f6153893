class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class PlacementRejectedError(AppError):
    """Raised when a candidate placement cannot be admitted into the timetable."""
    def __init__(self, kind: str, message: str):
        status_code = 422 if kind == "ValidationError" else 409
        super().__init__(message, status_code=status_code, details={"kind": kind})
        self.kind = kind

class StaleSnapshotError(AppError):
    """Raised when the timetable kept changing underneath every commit attempt."""
    def __init__(self, attempts: int):
        super().__init__(
            f"Timetable changed while the placement was being saved ({attempts} attempt(s)). Please retry.",
            status_code=409,
            details={"kind": "StaleSnapshot", "attempts": attempts},
        )

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)
