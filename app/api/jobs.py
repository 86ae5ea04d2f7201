"""Job API: reads, status transitions, assignment, checklists and completion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import crud
from app.db.engine import get_db
from app.dependencies import (
    get_optional_session, get_completion_service, get_status_service, get_assignment_service,
    get_settings_dep,
)
from app.config import Settings
from app.schemas.job import (
    JobStatus, JobCompleteResponse, JobStatusResponse, JobAssignResponse, ChecklistResponse,
    JobRead, PaymentRead, StatusHistoryRead,
)
from app.services.auth import AuthContext
from app.services.authorization import authorize
from app.services.job_access import require_session, ensure_valid_job_id, load_job, read_json_body
from app.services.job_assignment import JobAssignmentService
from app.services.job_checklist import get_checklist, update_checklist
from app.services.job_completion import JobCompletionService
from app.services.job_status import JobStatusService

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


async def _readable_job(job_id: str, auth: AuthContext | None, db: AsyncSession):
    auth = require_session(auth)
    authorize(auth, "job:read")
    ensure_valid_job_id(job_id)
    job = await load_job(db, job_id)
    authorize(auth, "job:read", job)
    return job


@router.get("", response_model=list[JobRead])
async def list_jobs(
    status: JobStatus | None = None,
    auth: AuthContext | None = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    """Jobs visible to the caller: the agency's jobs, or an engineer's own."""
    auth = require_session(auth)
    authorize(auth, "job:read")
    if auth.role == "engineer":
        jobs = await crud.list_jobs_for_engineer(db, auth.user_id)
        if status:
            jobs = [j for j in jobs if j.status == status]
    elif auth.agency_id:
        jobs = await crud.list_jobs_for_agency(db, auth.agency_id, status=status)
    else:
        jobs = []
    return [JobRead.model_validate(j) for j in jobs]


@router.get("/{job_id}", response_model=JobRead)
async def get_job(
    job_id: str,
    auth: AuthContext | None = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    job = await _readable_job(job_id, auth, db)
    return JobRead.model_validate(job)


@router.get("/{job_id}/history", response_model=list[StatusHistoryRead])
async def get_job_history(
    job_id: str,
    auth: AuthContext | None = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    job = await _readable_job(job_id, auth, db)
    history = await crud.list_status_history(db, job.id, limit=settings.completion.history_limit)
    return [StatusHistoryRead.model_validate(h) for h in history]


@router.get("/{job_id}/payments", response_model=list[PaymentRead])
async def get_job_payments(
    job_id: str,
    auth: AuthContext | None = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    job = await _readable_job(job_id, auth, db)
    authorize(auth, "payment:read")
    payments = await crud.list_payments_for_job(db, job.id)
    return [PaymentRead.model_validate(p) for p in payments]


@router.patch("/{job_id}/status", response_model=JobStatusResponse)
async def update_job_status(
    job_id: str,
    request: Request,
    auth: AuthContext | None = Depends(get_optional_session),
    service: JobStatusService = Depends(get_status_service),
):
    return await service.update_status(job_id, await read_json_body(request), auth)


@router.post("/{job_id}/complete", response_model=JobCompleteResponse)
async def complete_job(
    job_id: str,
    request: Request,
    auth: AuthContext | None = Depends(get_optional_session),
    service: JobCompletionService = Depends(get_completion_service),
):
    result = await service.complete(job_id, await read_json_body(request), auth)
    return result.to_response()


@router.post("/{job_id}/assign", response_model=JobAssignResponse)
async def assign_job(
    job_id: str,
    request: Request,
    auth: AuthContext | None = Depends(get_optional_session),
    service: JobAssignmentService = Depends(get_assignment_service),
):
    return await service.assign(job_id, await read_json_body(request), auth)


@router.get("/{job_id}/checklist", response_model=ChecklistResponse)
async def read_checklist(
    job_id: str,
    auth: AuthContext | None = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    return await get_checklist(db, job_id, auth)


@router.patch("/{job_id}/checklist", response_model=ChecklistResponse)
async def patch_checklist(
    job_id: str,
    request: Request,
    auth: AuthContext | None = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    return await update_checklist(db, job_id, await read_json_body(request), auth)
