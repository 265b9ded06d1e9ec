"""
Supabase Job Store

Resume generation jobs stored in Supabase (Postgres). Each status write
carries a precondition on the current status, so Postgres row-level
locking serializes racing callbacks on the same job.
"""

import uuid
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from resumegen.config import config
from resumegen.jobs.database import JobStore
from resumegen.jobs.errors import (
    ConcurrentUpdateError,
    DuplicateJobError,
    JobNotFoundError,
    PersistenceError,
)
from resumegen.jobs.models import GenerationJob, JobStatus

from .client import SupabaseClientError, get_supabase_admin_client


# Postgres unique_violation
UNIQUE_VIOLATION = "23505"
# Postgres invalid_text_representation (e.g. a malformed uuid)
INVALID_TEXT_REPRESENTATION = "22P02"

STORE_ERRORS = (APIError, httpx.HTTPError)


class SupabaseJobStore(JobStore):
    """
    JobStore backed by the resume_jobs table in Supabase.

    The schema lives in supabase/migrations/001_resume_jobs.sql.
    """

    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self._client = client
        self.table = table or config.SUPABASE_JOBS_TABLE

    @property
    def client(self) -> Client:
        if self._client is None:
            try:
                self._client = get_supabase_admin_client()
            except SupabaseClientError as e:
                raise PersistenceError(f"Supabase job store unavailable: {e}") from e
        return self._client

    def _jobs(self):
        return self.client.table(self.table)

    # =========================================================================
    # Job Creation
    # =========================================================================

    async def create(self, job: GenerationJob) -> None:
        try:
            self._jobs().insert(job.to_row()).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateJobError(job.id) from e
            raise PersistenceError(f"Failed to create job {job.id}: {e.message}") from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"Failed to create job {job.id}: {e}") from e

    # =========================================================================
    # Job Retrieval
    # =========================================================================

    def _first(self, query) -> Optional[Dict[str, Any]]:
        try:
            result = query.limit(1).execute()
        except APIError as e:
            if e.code == INVALID_TEXT_REPRESENTATION:
                # No row can have an id Postgres refuses to parse
                return None
            raise PersistenceError(f"Job lookup failed: {e.message}") from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"Job lookup failed: {e}") from e
        return result.data[0] if result.data else None

    @staticmethod
    def _is_job_id(job_id: str) -> bool:
        try:
            uuid.UUID(str(job_id))
        except ValueError:
            return False
        return True

    async def get(self, job_id: str, owner_id: str) -> GenerationJob:
        if not self._is_job_id(job_id):
            raise JobNotFoundError(job_id)
        row = self._first(
            self._jobs()
            .select("*")
            .eq("id", job_id)
            .eq("owner_id", owner_id)
        )
        if row is None:
            raise JobNotFoundError(job_id)
        return GenerationJob.from_row(row)

    async def get_by_id(self, job_id: str) -> GenerationJob:
        if not self._is_job_id(job_id):
            raise JobNotFoundError(job_id)
        row = self._first(self._jobs().select("*").eq("id", job_id))
        if row is None:
            raise JobNotFoundError(job_id)
        return GenerationJob.from_row(row)

    async def list_for_owner(self, owner_id: str) -> List[GenerationJob]:
        try:
            result = (
                self._jobs()
                .select("*")
                .eq("owner_id", owner_id)
                .order("created_at", desc=True)
                .execute()
            )
        except STORE_ERRORS as e:
            raise PersistenceError(f"Failed to list jobs: {e}") from e
        return [GenerationJob.from_row(row) for row in result.data]

    # =========================================================================
    # Job Status Updates
    # =========================================================================

    async def update(
        self,
        job: GenerationJob,
        expected_status: Optional[JobStatus] = None
    ) -> None:
        update_data = job.to_row()
        update_data.pop("id")

        query = self._jobs().update(update_data).eq("id", job.id)
        if expected_status is not None:
            query = query.eq("status", expected_status.value)

        try:
            result = query.execute()
        except STORE_ERRORS as e:
            raise PersistenceError(f"Failed to update job {job.id}: {e}") from e

        if result.data:
            return

        # Nothing matched: either the job is gone or its status moved on
        existing = self._first(self._jobs().select("id, status").eq("id", job.id))
        if existing is None or expected_status is None:
            raise JobNotFoundError(job.id)
        raise ConcurrentUpdateError(job.id, expected_status.value, job.status.value)
