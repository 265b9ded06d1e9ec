"""
Error taxonomy for resume generation jobs.

Everything raised by the job core derives from GenerationJobError so the
HTTP layer (or any other caller) can map failures with one except clause.
"""

from typing import Optional


class GenerationJobError(Exception):
    """Base class for job orchestration errors."""
    pass


class JobValidationError(GenerationJobError):
    """Raised when a submit or callback payload is malformed. Nothing is persisted."""
    pass


class PersistenceError(GenerationJobError):
    """Raised when the job store cannot be reached or rejects a write."""
    pass


class DuplicateJobError(PersistenceError):
    """Raised when a job is created with an id that already exists."""

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} already exists")
        self.job_id = job_id


class JobNotFoundError(GenerationJobError):
    """
    Raised when a job does not exist or belongs to a different owner.

    The message is the same in both cases so callers cannot probe for
    other tenants' job ids.
    """

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidTransitionError(GenerationJobError):
    """Raised when a status change is not allowed from the job's current status."""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Job {job_id} cannot move from '{current}' to '{target}'")
        self.job_id = job_id
        self.current = current
        self.target = target


class ConcurrentUpdateError(InvalidTransitionError):
    """Raised when another writer changed the job's status between read and write."""

    def __init__(self, job_id: str, expected: str, target: str):
        super().__init__(job_id, expected, target)
        self.args = (
            f"Job {job_id} is no longer '{expected}'; concurrent update won the race",
        )
        self.expected = expected


class PublishError(GenerationJobError):
    """
    Raised when a work item cannot be handed to the broker.

    When raised from submit, job_id names the persisted job that was
    marked failed with QUEUE_ERROR, so the caller can still poll it.
    """

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id
