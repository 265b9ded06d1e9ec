"""
Job data models and wire contracts.

GenerationJob is immutable: every status change goes through one of the
mark_* methods, which check the transition table and return a new record.
The model validator enforces the outcome invariants, so a Completed job
without a result_ref (or a Failed job without error info) cannot exist.
"""

import json
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from resumegen.jobs.errors import InvalidTransitionError


# Error codes recorded on failed jobs
QUEUE_ERROR = "QUEUE_ERROR"
GENERATION_ERROR = "GENERATION_ERROR"

QUEUE_ERROR_MESSAGE = "Failed to queue job for processing"

# Fixed-width UTC format so stored timestamps sort lexicographically
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


class JobStatus(str, Enum):
    """Status values for resume generation jobs"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({
        JobStatus.PROCESSING,
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    }),
    JobStatus.PROCESSING: frozenset({
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    }),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _next_timestamp(previous: datetime) -> datetime:
    # updated_at never goes backwards, even if the wall clock does
    now = utc_now()
    if now > previous:
        return now
    return previous + timedelta(microseconds=1)


class JobPayload(BaseModel):
    """The generation request: a job description plus caller-owned metadata."""

    model_config = ConfigDict(frozen=True)

    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("description")
    @classmethod
    def _non_empty_description(cls, v: str) -> str:
        # Stored exactly as submitted; whitespace only counts for emptiness
        if not v.strip():
            raise ValueError("description must not be empty")
        return v

    @field_validator("metadata", mode="before")
    @classmethod
    def _json_metadata(cls, v: Any) -> Dict[str, Any]:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("metadata must be an object")
        try:
            # Round-trip detaches the snapshot from the caller's dict
            return json.loads(json.dumps(v))
        except (TypeError, ValueError) as e:
            raise ValueError(f"metadata must be JSON-serializable: {e}")


class ErrorInfo(BaseModel):
    """Why a job failed."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(min_length=1)
    code: str = Field(min_length=1)


class GenerationJob(BaseModel):
    """Persistent representation of one resume generation request."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str = Field(min_length=1)
    payload: JobPayload
    status: JobStatus = JobStatus.PENDING
    result_ref: Optional[str] = Field(default=None, min_length=1)
    error: Optional[ErrorInfo] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_outcome(self) -> "GenerationJob":
        if (self.result_ref is not None) != (self.status == JobStatus.COMPLETED):
            raise ValueError("result_ref is set if and only if the job is completed")
        if (self.error is not None) != (self.status == JobStatus.FAILED):
            raise ValueError("error is set if and only if the job has failed")
        return self

    @classmethod
    def new(cls, owner_id: str, payload: JobPayload) -> "GenerationJob":
        now = utc_now()
        return cls(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            payload=payload,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    # ── Transitions ──────────────────────────────────────────────────

    def _transition(self, target: JobStatus, **changes: Any) -> "GenerationJob":
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        data = self.model_dump()
        data.update(changes)
        data["status"] = target
        data["updated_at"] = _next_timestamp(self.updated_at)
        return GenerationJob.model_validate(data)

    def mark_processing(self) -> "GenerationJob":
        return self._transition(JobStatus.PROCESSING)

    def mark_completed(self, result_ref: str) -> "GenerationJob":
        """Link the generated resume and clear any earlier error."""
        return self._transition(JobStatus.COMPLETED, result_ref=result_ref, error=None)

    def mark_failed(self, message: str, code: str) -> "GenerationJob":
        return self._transition(
            JobStatus.FAILED,
            result_ref=None,
            error={"message": message, "code": code},
        )

    def mark_cancelled(self) -> "GenerationJob":
        return self._transition(JobStatus.CANCELLED, result_ref=None, error=None)

    # ── Storage rows ─────────────────────────────────────────────────

    def to_row(self) -> Dict[str, Any]:
        """Flat column mapping shared by the SQLite and Supabase stores."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "description": self.payload.description,
            "metadata": dict(self.payload.metadata),
            "status": self.status.value,
            "result_ref": self.result_ref,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "GenerationJob":
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        error = None
        if row.get("error_message") is not None or row.get("error_code") is not None:
            error = {"message": row.get("error_message"), "code": row.get("error_code")}

        return cls(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            payload=JobPayload(description=row["description"], metadata=metadata),
            status=JobStatus(row["status"]),
            result_ref=row.get("result_ref"),
            error=error,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class WorkItem(BaseModel):
    """
    Message published to the broker for the resume worker.

    A snapshot of the job at publish time. It is never updated; the job
    record is the source of truth after publish.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    job_id: str = Field(alias="jobId")
    owner_id: str = Field(alias="ownerId")
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_job(cls, job: GenerationJob) -> "WorkItem":
        return cls(
            job_id=job.id,
            owner_id=job.owner_id,
            description=job.payload.description,
            metadata=dict(job.payload.metadata),
        )

    def to_message(self) -> Dict[str, Any]:
        """JSON body as consumed by the worker."""
        return self.model_dump(by_alias=True)
