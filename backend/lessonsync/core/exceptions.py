class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when the schedule pipeline encounters a logical error or invalid state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class UnplaceableStudentsError(SchedulerError):
    """Raised when bounded overflow leaves students without a lesson slot."""
    def __init__(self, unplaced_by_teacher: dict[str, list[str]]):
        count = sum(len(ids) for ids in unplaced_by_teacher.values())
        super().__init__(
            f"{count} student(s) could not be placed within block tolerance",
            details={"unplaced": unplaced_by_teacher, "count": count},
        )
        self.unplaced_by_teacher = unplaced_by_teacher

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
