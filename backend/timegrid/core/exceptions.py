class AppError(Exception):
    """Base class for all timetable core exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class TimetableError(AppError):
    """Raised when an edit would leave a timetable in an invalid state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested subclass or cell is not loaded."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConfigurationError(AppError):
    """Raised when settings cannot produce a working gateway."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class CatalogLoadError(AppError):
    """Raised when a required catalog (classes, subjects, teachers, ...) cannot be fetched."""
    def __init__(self, entity: str, message: str, status_code: int = 502):
        super().__init__(message, status_code=status_code, details={"entity": entity})
        self.entity = entity

class PersistenceError(AppError):
    """Raised when the timetable backend cannot be reached or returns an unusable response."""
    def __init__(self, message: str, status_code: int = 502, details: dict = None):
        super().__init__(message, status_code=status_code, details=details)
