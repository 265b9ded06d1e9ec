"""
Resume generation job service.

Composes a JobStore and a WorkItemPublisher into the submit / poll /
callback operations and enforces the job state machine.

Submit is deliberately two-step: the job is persisted first, then
published. If publishing fails the job is marked Failed with QUEUE_ERROR
so it never sits in Pending with no worker coming for it.

Usage:
    # In FastAPI startup
    from resumegen.jobs.service import get_service
    service = await get_service()

    # In an endpoint
    job_id = await service.submit(user_id, description, metadata)
    job = await service.get_status(job_id, user_id)

    # From the worker
    await service.mark_processing(job_id)
    await service.complete(job_id, resume_id)
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from kombu import Connection
from pydantic import ValidationError

from resumegen.config import config
from resumegen.jobs.database import JobStore, SQLiteJobStore
from resumegen.jobs.errors import (
    GenerationJobError,
    JobValidationError,
    PublishError,
)
from resumegen.jobs.models import (
    GENERATION_ERROR,
    QUEUE_ERROR,
    QUEUE_ERROR_MESSAGE,
    GenerationJob,
    JobPayload,
    WorkItem,
)
from resumegen.queue.connection import close_broker_connection, get_broker_connection
from resumegen.queue.publisher import WorkItemPublisher, create_publisher
from resumegen.utils.logging import AppLogger, job_logger


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first['msg']}" if field else first["msg"]


class GenerationJobService:
    """
    Orchestrates resume generation jobs.

    Holds no mutable state of its own: the store and the publisher are
    shared resources injected at process start, so one instance serves
    all concurrent requests.
    """

    def __init__(
        self,
        store: JobStore,
        publisher: WorkItemPublisher,
        logger: Optional[AppLogger] = None,
        max_description_length: Optional[int] = None
    ):
        self.store = store
        self.publisher = publisher
        self.logger = logger or job_logger
        self.max_description_length = max_description_length or config.MAX_DESCRIPTION_LENGTH

    async def initialize(self):
        await self.store.connect()

    async def close(self):
        await self.publisher.close()
        await self.store.close()

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit(
        self,
        owner_id: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Create a Pending job and queue it for a worker.

        Returns:
            job_id of the new job

        Raises:
            JobValidationError: Bad input, nothing persisted
            PersistenceError: The job could not be stored, nothing published
            PublishError: The job was stored but not queued; it is now
                Failed with QUEUE_ERROR and e.job_id names it
        """
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise JobValidationError("owner_id is required")
        if isinstance(description, str) and len(description) > self.max_description_length:
            raise JobValidationError(
                f"description exceeds {self.max_description_length} characters"
            )

        try:
            payload = JobPayload(description=description, metadata=metadata)
        except ValidationError as e:
            raise JobValidationError(_validation_message(e)) from e

        job = GenerationJob.new(owner_id, payload)
        await self.store.create(job)
        self.logger.info("Job created", job_id=job.id, owner_id=owner_id)

        try:
            await self.publisher.publish(WorkItem.from_job(job))
        except Exception as e:
            # Any publisher failure, not only PublishError, must not leave the job Pending
            self.logger.error("Failed to queue job", job_id=job.id, error=str(e))
            await self._record_queue_failure(job)
            raise PublishError(f"Failed to queue job {job.id}: {e}", job_id=job.id) from e

        self.logger.info("Job queued", job_id=job.id, owner_id=owner_id)
        return job.id

    async def _record_queue_failure(self, job: GenerationJob):
        failed = job.mark_failed(QUEUE_ERROR_MESSAGE, QUEUE_ERROR)
        try:
            await self.store.update(failed, expected_status=job.status)
        except GenerationJobError as e:
            # The publish error still reaches the caller; this one is only logged
            self.logger.error(
                "Failed to record queue failure on job",
                job_id=job.id,
                error=str(e)
            )

    # =========================================================================
    # Polling
    # =========================================================================

    async def get_status(self, job_id: str, owner_id: str) -> GenerationJob:
        """
        Get a job owned by owner_id.

        Raises:
            JobNotFoundError: Unknown id, or the job belongs to someone else
        """
        return await self.store.get(job_id, owner_id)

    async def list_jobs(self, owner_id: str) -> List[GenerationJob]:
        """All jobs of owner_id, most recent first."""
        return await self.store.list_for_owner(owner_id)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _apply(
        self,
        job: GenerationJob,
        transition: Callable[[GenerationJob], GenerationJob]
    ) -> GenerationJob:
        try:
            updated = transition(job)
        except ValidationError as e:
            raise JobValidationError(_validation_message(e)) from e
        # Compare-and-swap on the status we read; a racing callback loses
        await self.store.update(updated, expected_status=job.status)
        return updated

    async def mark_processing(self, job_id: str) -> GenerationJob:
        """Worker callback: the job was picked up (Pending -> Processing)."""
        job = await self.store.get_by_id(job_id)
        updated = await self._apply(job, lambda j: j.mark_processing())
        self.logger.info("Job processing", job_id=job_id)
        return updated

    async def complete(self, job_id: str, result_ref: str) -> GenerationJob:
        """
        Worker callback: generation succeeded.

        Sets result_ref and clears any earlier error. Calling it again on a
        Completed job raises InvalidTransitionError and changes nothing.
        """
        if not isinstance(result_ref, str) or not result_ref.strip():
            raise JobValidationError("result_ref is required")

        job = await self.store.get_by_id(job_id)
        updated = await self._apply(job, lambda j: j.mark_completed(result_ref))
        self.logger.info("Job completed", job_id=job_id, result_ref=result_ref)
        return updated

    async def fail(
        self,
        job_id: str,
        message: str,
        code: Optional[str] = None
    ) -> GenerationJob:
        """Worker callback: generation failed. Recorded as is, never retried."""
        if not isinstance(message, str) or not message.strip():
            raise JobValidationError("error message is required")
        code = code or GENERATION_ERROR

        job = await self.store.get_by_id(job_id)
        updated = await self._apply(job, lambda j: j.mark_failed(message, code))
        self.logger.info("Job failed", job_id=job_id, error_code=code, error=message)
        return updated

    async def cancel(self, job_id: str, owner_id: str) -> GenerationJob:
        """
        Cancel a Pending or Processing job owned by owner_id.

        A worker that already holds the work item still runs; its callback
        is then rejected because Cancelled is terminal.
        """
        job = await self.store.get(job_id, owner_id)
        updated = await self._apply(job, lambda j: j.mark_cancelled())
        self.logger.info("Job cancelled", job_id=job_id, owner_id=owner_id)
        return updated


# =========================================================================
# Process-wide instance
# =========================================================================

_service: Optional[GenerationJobService] = None


def build_store() -> JobStore:
    """Build the job store selected by JOB_STORE_BACKEND."""
    if config.JOB_STORE_BACKEND == "supabase":
        from resumegen.database.jobs import SupabaseJobStore
        return SupabaseJobStore()
    return SQLiteJobStore(config.JOBS_DB_PATH)


def _connect_broker() -> Optional[Connection]:
    if not config.broker_configured:
        return None
    try:
        return get_broker_connection()
    except ConnectionError as e:
        job_logger.warning("Broker unreachable at startup", error=str(e))
        return None


async def get_service() -> GenerationJobService:
    """
    Get the process-wide job service, creating it on first use.

    A missing or unreachable broker does not stop startup: the service
    runs with the no-op publisher instead.
    """
    global _service
    if _service is None:
        store = build_store()
        connection = await asyncio.to_thread(_connect_broker)
        publisher = await asyncio.to_thread(create_publisher, connection)

        service = GenerationJobService(store, publisher)
        await service.initialize()
        _service = service
        job_logger.info(
            "Job service ready",
            store=type(store).__name__,
            publisher=type(publisher).__name__
        )
    return _service


async def close_service():
    """Release the publisher channel, the store and the broker connection."""
    global _service
    if _service is not None:
        await _service.close()
        _service = None
    await asyncio.to_thread(close_broker_connection)
