"""
Error taxonomy for the trail service.

The client raises these; the trail store catches them and turns them into
a visible error message while keeping the last known good state.
"""


class TrailServiceError(Exception):
    """Base class for every failure reported by the trail service layer."""

    user_message = "Something went wrong with your trails"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TrailServiceError):
    """Raised when a trail, module or lesson does not exist (or is not the learner's)."""

    user_message = "Not found"


class QuotaExceededError(TrailServiceError):
    """Raised when generating would exceed the active-trail limit."""

    user_message = "You already have the maximum number of active trails"

    def __init__(self, message: str, *, limit: int | None = None, status_code: int | None = None):
        super().__init__(message, status_code=status_code)
        self.limit = limit


class ConflictError(TrailServiceError):
    """Raised when progress is reported against a lesson that is not generated yet."""

    user_message = "This lesson is not ready yet"


class NetworkOrServerError(TrailServiceError):
    """Raised on transport failures, timeouts and 5xx responses."""

    user_message = "Could not reach the trail service"
