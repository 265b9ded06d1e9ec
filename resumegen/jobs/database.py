"""
Job storage for resume generation jobs.

JobStore is the contract the service depends on. SQLiteJobStore is the
local/default backend, using aiosqlite for async SQLite operations; the
Supabase backend lives in resumegen.database.jobs.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional

import aiosqlite

from resumegen.jobs.errors import (
    ConcurrentUpdateError,
    DuplicateJobError,
    JobNotFoundError,
    PersistenceError,
)
from resumegen.jobs.models import GenerationJob, JobStatus


class JobStore(ABC):
    """
    Durable CRUD for job records.

    Implementations must make update() with expected_status atomic per
    record, so two callbacks racing on the same job cannot both apply.
    """

    async def connect(self) -> None:
        """Open connections / create schema. No-op by default."""

    async def close(self) -> None:
        """Release connections. No-op by default."""

    @abstractmethod
    async def create(self, job: GenerationJob) -> None:
        """Persist a new job. Raises DuplicateJobError if the id exists."""

    @abstractmethod
    async def get(self, job_id: str, owner_id: str) -> GenerationJob:
        """Fetch a job scoped to its owner. Raises JobNotFoundError otherwise."""

    @abstractmethod
    async def get_by_id(self, job_id: str) -> GenerationJob:
        """Fetch a job without owner scoping (worker callbacks)."""

    @abstractmethod
    async def update(
        self,
        job: GenerationJob,
        expected_status: Optional[JobStatus] = None
    ) -> None:
        """
        Replace the stored record with job.

        If expected_status is given the write only applies while the stored
        status still equals it; otherwise ConcurrentUpdateError is raised.
        Raises JobNotFoundError for unknown ids.
        """

    @abstractmethod
    async def list_for_owner(self, owner_id: str) -> List[GenerationJob]:
        """All jobs of one owner, newest first."""


class SQLiteJobStore(JobStore):
    """Handles resume job database operations on a local SQLite file"""

    def __init__(self, db_path: str = "resume_jobs.db"):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self):
        """Connect to database and create tables if needed"""
        if self._conn is not None:
            return

        db_file = Path(self.db_path)
        db_dir = db_file.parent
        if self.db_path != ":memory:" and str(db_dir) != "." and not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._create_tables()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not open job database {self.db_path}: {e}") from e

    async def _create_tables(self):
        """Create required tables"""
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS resume_jobs (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT UNIQUE NOT NULL,
                owner_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',

                -- Input data
                description TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',

                -- Outcome (result_ref when completed, error_* when failed)
                result_ref TEXT,
                error_message TEXT,
                error_code TEXT,

                -- Timestamps (fixed-width UTC ISO-8601)
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_resume_jobs_owner
            ON resume_jobs(owner_id, created_at)
        """)

        await self._conn.commit()

    async def _db(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.connect()
        return self._conn

    async def create(self, job: GenerationJob) -> None:
        conn = await self._db()
        row = job.to_row()
        try:
            await conn.execute("""
                INSERT INTO resume_jobs
                (id, owner_id, status, description, metadata,
                 result_ref, error_message, error_code, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                row["id"],
                row["owner_id"],
                row["status"],
                row["description"],
                json.dumps(row["metadata"]),
                row["result_ref"],
                row["error_message"],
                row["error_code"],
                row["created_at"],
                row["updated_at"],
            ))
            await conn.commit()
        except aiosqlite.IntegrityError as e:
            await conn.rollback()
            raise DuplicateJobError(job.id) from e
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to create job {job.id}: {e}") from e

    async def _fetch_one(self, query: str, params: tuple) -> Optional[Any]:
        conn = await self._db()
        try:
            async with conn.execute(query, params) as cursor:
                return await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Job lookup failed: {e}") from e

    async def get(self, job_id: str, owner_id: str) -> GenerationJob:
        row = await self._fetch_one(
            "SELECT * FROM resume_jobs WHERE id = ? AND owner_id = ?",
            (job_id, owner_id),
        )
        if row is None:
            raise JobNotFoundError(job_id)
        return GenerationJob.from_row(dict(row))

    async def get_by_id(self, job_id: str) -> GenerationJob:
        row = await self._fetch_one("SELECT * FROM resume_jobs WHERE id = ?", (job_id,))
        if row is None:
            raise JobNotFoundError(job_id)
        return GenerationJob.from_row(dict(row))

    async def update(
        self,
        job: GenerationJob,
        expected_status: Optional[JobStatus] = None
    ) -> None:
        conn = await self._db()
        row = job.to_row()
        query = """
            UPDATE resume_jobs
            SET owner_id = ?, status = ?, description = ?, metadata = ?,
                result_ref = ?, error_message = ?, error_code = ?,
                created_at = ?, updated_at = ?
            WHERE id = ?
        """
        params: List[Any] = [
            row["owner_id"],
            row["status"],
            row["description"],
            json.dumps(row["metadata"]),
            row["result_ref"],
            row["error_message"],
            row["error_code"],
            row["created_at"],
            row["updated_at"],
            row["id"],
        ]
        if expected_status is not None:
            # Single conditional UPDATE: the status check and the write are one statement
            query += " AND status = ?"
            params.append(expected_status.value)

        try:
            cursor = await conn.execute(query, params)
            await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to update job {job.id}: {e}") from e

        if cursor.rowcount == 0:
            exists = await self._fetch_one("SELECT status FROM resume_jobs WHERE id = ?", (job.id,))
            if exists is None or expected_status is None:
                raise JobNotFoundError(job.id)
            raise ConcurrentUpdateError(job.id, expected_status.value, job.status.value)

    async def list_for_owner(self, owner_id: str) -> List[GenerationJob]:
        conn = await self._db()
        try:
            async with conn.execute("""
                SELECT * FROM resume_jobs
                WHERE owner_id = ?
                ORDER BY created_at DESC, seq DESC
            """, (owner_id,)) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to list jobs: {e}") from e
        return [GenerationJob.from_row(dict(row)) for row in rows]

    async def close(self):
        """Close database connection"""
        if self._conn:
            await self._conn.close()
            self._conn = None
