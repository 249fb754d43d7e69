"""
Error taxonomy for the rollout orchestrator.

Client-facing errors carry the HTTP status they are rendered with by
``rollout.middleware``. ``ProgressInvariantError`` is a programming error and
is deliberately not part of that hierarchy.
"""


class RolloutError(Exception):
    """Base class for errors returned synchronously to callers."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(RolloutError):
    """Malformed or empty rollout options; no job is created."""

    status_code = 400


class NotFound(RolloutError):
    """Unknown job identifier."""

    status_code = 404

    def __init__(self, job_id: str):
        super().__init__(f"job {job_id} not found")
        self.job_id = job_id


class ResourceExhausted(RolloutError):
    """Too many active jobs to accept another one."""

    status_code = 429
    retryable = True


class DestinationFailure(Exception):
    """Raised by an executor when a single destination could not be updated."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ProgressInvariantError(RuntimeError):
    """Progress counters would violate 0 <= completed <= started <= total."""
