"""Job CRUD endpoints.

Handlers are plain ``def`` functions: they run in the threadpool and call the
lifecycle manager synchronously.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from app.core.config import settings
from app.services.scheduling import JobLifecycleManager

from .job_schemas import (
    JobCreateRequest,
    JobListResponse,
    JobReplaceRequest,
    JobResponse,
    JobView,
    PageMeta,
)

router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_lifecycle(request: Request) -> JobLifecycleManager:
    return request.app.state.lifecycle


def valid_job_id(job_id: str = Path(alias="jobID")) -> str:
    """Job IDs are UUIDv4 strings."""
    try:
        parsed = uuid.UUID(job_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid jobID: {job_id}") from exc
    if parsed.version != 4:
        raise HTTPException(status_code=400, detail=f"jobID must be a UUIDv4: {job_id}")
    return str(parsed)


def _view(job) -> JobView:
    return JobView.from_job(job, settings.SCHEDULER_TIMEZONE)


@router.post("", response_model=JobResponse, response_model_by_alias=True)
def create_job(
    body: JobCreateRequest,
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
):
    job = lifecycle.create_job(body.data.to_fields())
    return {"data": _view(job)}


@router.get("", response_model=JobListResponse, response_model_by_alias=True)
def list_jobs(
    offset: int = Query(default=0, ge=0, alias="from"),
    size: int = Query(default=0, ge=0),
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
):
    """List jobs; ``size=0`` returns every job from ``from`` on."""
    jobs, total = lifecycle.list_jobs(offset=offset, size=size)
    return {
        "data": [_view(job) for job in jobs],
        "meta": PageMeta(from_=offset, size=len(jobs), total=total),
    }


@router.get("/{jobID}", response_model=JobResponse, response_model_by_alias=True)
def get_job(
    job_id: str = Depends(valid_job_id),
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
):
    return {"data": _view(lifecycle.get_job(job_id))}


@router.put("/{jobID}", response_model=JobResponse, response_model_by_alias=True)
def replace_job(
    body: JobReplaceRequest,
    job_id: str = Depends(valid_job_id),
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
):
    job = lifecycle.replace_job(job_id, body.desire.to_fields())
    return {"data": _view(job)}


@router.delete("/{jobID}")
def delete_job(
    job_id: str = Depends(valid_job_id),
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict:
    lifecycle.delete_job(job_id)
    return {}


@router.delete("")
def delete_all_jobs(lifecycle: JobLifecycleManager = Depends(get_lifecycle)) -> dict:
    lifecycle.delete_all_jobs()
    return {}
