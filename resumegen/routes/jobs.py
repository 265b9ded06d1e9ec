"""
Resume Job API Routes

Submit resume generation jobs and poll their status. The work itself is
done by an external worker that reports back through the job service
callbacks, not through these endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from resumegen.config import config
from resumegen.database.client import SupabaseClientError, get_supabase_admin_client
from resumegen.jobs.errors import (
    GenerationJobError,
    InvalidTransitionError,
    JobNotFoundError,
    JobValidationError,
    PublishError,
)
from resumegen.jobs.models import QUEUE_ERROR, GenerationJob
from resumegen.jobs.service import GenerationJobService
from resumegen.utils.logging import api_logger as logger


router = APIRouter(prefix="/api/resume-jobs", tags=["resume-jobs"])


# =============================================================================
# Request / Response Models
# =============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmitJobRequest(CamelModel):
    """Request to generate a resume for a job description."""
    description: str
    metadata: Optional[Dict[str, Any]] = None


class SubmitJobResponse(CamelModel):
    """Response after queuing resume generation."""
    job_id: str
    status: str


class JobResponse(CamelModel):
    """Single job status."""
    job_id: str
    owner_id: str
    status: str
    description: str
    metadata: Dict[str, Any]
    result_ref: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: GenerationJob) -> "JobResponse":
        return cls(
            job_id=job.id,
            owner_id=job.owner_id,
            status=job.status.value,
            description=job.payload.description,
            metadata=dict(job.payload.metadata),
            result_ref=job.result_ref,
            error_message=job.error_message,
            error_code=job.error_code,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class JobListResponse(CamelModel):
    """Jobs of the current user, newest first."""
    jobs: List[JobResponse]
    total: int


# =============================================================================
# Dependencies
# =============================================================================

async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> str:
    """
    Extract and verify user ID from Authorization header.

    In dev mode with DEV_MODE=true, requests without a header run as
    'dev-user-id'.
    """
    if config.DEV_MODE and not authorization:
        return "dev-user-id"

    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required"
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format. Use 'Bearer <token>'"
        )

    try:
        user_response = get_supabase_admin_client().auth.get_user(parts[1])
    except SupabaseClientError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Authentication service unavailable: {str(e)}"
        )
    except Exception as e:
        raise HTTPException(
            status_code=401,
            detail=f"Token verification failed: {str(e)}"
        )

    if not user_response or not user_response.user:
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token"
        )
    return str(user_response.user.id)


def get_job_service(request: Request) -> GenerationJobService:
    """The service created at startup (see resumegen.api.main)."""
    service = getattr(request.app.state, "job_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Job service not initialized")
    return service


def _raise_http(e: GenerationJobError) -> NoReturn:
    if isinstance(e, JobValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, JobNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidTransitionError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PublishError):
        raise HTTPException(
            status_code=503,
            detail={
                "error": str(e),
                "jobId": e.job_id,
                "errorCode": QUEUE_ERROR,
            }
        )
    raise HTTPException(status_code=503, detail=f"Job store unavailable: {str(e)}")


# =============================================================================
# Job Routes
# =============================================================================

@router.post("", response_model=SubmitJobResponse, status_code=202)
async def submit_job(
    body: SubmitJobRequest,
    user_id: str = Depends(get_current_user_id),
    service: GenerationJobService = Depends(get_job_service)
):
    """
    Queue resume generation for a job description.

    Returns immediately with the job id; poll GET /api/resume-jobs/{jobId}.
    If the job was stored but could not be queued the response is 503 and
    the detail carries the jobId of the failed job.
    """
    try:
        job_id = await service.submit(user_id, body.description, body.metadata)
    except GenerationJobError as e:
        logger.warning("Job submission rejected", user_id=user_id, error=str(e))
        _raise_http(e)

    return SubmitJobResponse(job_id=job_id, status="pending")


@router.get("", response_model=JobListResponse)
async def list_jobs(
    user_id: str = Depends(get_current_user_id),
    service: GenerationJobService = Depends(get_job_service)
):
    """Get the user's jobs, newest first."""
    try:
        jobs = await service.list_jobs(user_id)
    except GenerationJobError as e:
        _raise_http(e)

    return JobListResponse(
        jobs=[JobResponse.from_job(job) for job in jobs],
        total=len(jobs),
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GenerationJobService = Depends(get_job_service)
):
    """Get one job's status."""
    try:
        job = await service.get_status(job_id, user_id)
    except GenerationJobError as e:
        _raise_http(e)

    return JobResponse.from_job(job)


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GenerationJobService = Depends(get_job_service)
):
    """Cancel a pending or processing job."""
    try:
        job = await service.cancel(job_id, user_id)
    except GenerationJobError as e:
        _raise_http(e)

    return JobResponse.from_job(job)
