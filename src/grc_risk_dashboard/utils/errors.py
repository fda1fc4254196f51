from typing import Optional


class DashboardError(Exception):
    """Base class for recoverable dashboard errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DataServiceError(DashboardError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RecordNotFoundError(DataServiceError):
    pass


class BatchUnavailableError(DataServiceError):
    """The data service cannot perform an atomic multi-row update."""


class InvalidDropTargetError(DashboardError):
    pass
