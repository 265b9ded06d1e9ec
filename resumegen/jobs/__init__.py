"""
Resume generation job orchestration.

Components:
- GenerationJob / WorkItem: job record and the broker message
- JobStore: durable job storage (SQLite here, Supabase in resumegen.database)
- GenerationJobService: submit, poll, and the worker callbacks
  (resumegen.jobs.service, which also wires the broker in)

Usage:
    # In FastAPI startup
    from resumegen.jobs.service import get_service, close_service
    service = await get_service()

    # Queue a resume
    job_id = await service.submit(user_id, job_description, {"lang": "en"})

    # Check status
    job = await service.get_status(job_id, user_id)
"""

from resumegen.jobs.errors import (
    GenerationJobError,
    JobValidationError,
    PersistenceError,
    DuplicateJobError,
    JobNotFoundError,
    InvalidTransitionError,
    ConcurrentUpdateError,
    PublishError,
)
from resumegen.jobs.models import (
    GenerationJob,
    JobPayload,
    ErrorInfo,
    JobStatus,
    WorkItem,
    QUEUE_ERROR,
    GENERATION_ERROR,
)
from resumegen.jobs.database import JobStore, SQLiteJobStore

__all__ = [
    # Errors
    "GenerationJobError",
    "JobValidationError",
    "PersistenceError",
    "DuplicateJobError",
    "JobNotFoundError",
    "InvalidTransitionError",
    "ConcurrentUpdateError",
    "PublishError",

    # Models
    "GenerationJob",
    "JobPayload",
    "ErrorInfo",
    "JobStatus",
    "WorkItem",
    "QUEUE_ERROR",
    "GENERATION_ERROR",

    # Storage
    "JobStore",
    "SQLiteJobStore",
]
