"""Service checklist tracking while an engineer is on site."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import crud
from app.errors import Conflict, DatabaseError, Forbidden, InvalidStatus
from app.models.base import utcnow
from app.schemas.job import ChecklistItem, ChecklistResponse, ChecklistStats, ChecklistUpdate
from app.services.auth import AuthContext
from app.services.authorization import authorize
from app.services.job_access import require_session, ensure_valid_job_id, load_job, parse_payload

logger = logging.getLogger(__name__)


def checklist_stats(items: list[ChecklistItem]) -> ChecklistStats:
    total = len(items)
    completed = sum(1 for i in items if i.completed)
    return ChecklistStats(
        total_items=total,
        completed_items=completed,
        pending_items=total - completed,
        completion_percentage=round(completed * 100 / total) if total else 0,
        all_completed=completed == total,
    )


def completion_enabled(status: str, stats: ChecklistStats) -> bool:
    # Mirrors validate_completion: an empty checklist does not block completion
    return status == "onsite" and stats.all_completed


async def get_checklist(db: AsyncSession, job_id: str, session: AuthContext | None) -> ChecklistResponse:
    session = require_session(session)
    authorize(session, "job:read")
    ensure_valid_job_id(job_id)
    job = await load_job(db, job_id)
    authorize(session, "job:read", job)

    items = [ChecklistItem.model_validate(i) for i in job.service_checklist or []]
    stats = checklist_stats(items)
    return ChecklistResponse(
        job_id=job.id,
        status=job.status,
        checklist=items,
        stats=stats,
        completion_enabled=completion_enabled(job.status, stats),
    )


async def update_checklist(db: AsyncSession, job_id: str, payload, session: AuthContext | None) -> ChecklistResponse:
    """Replace the checklist of an on-site job. Only the assigned engineer may do this."""
    session = require_session(session)
    authorize(session, "job:write")
    if session.role != "engineer":
        raise Forbidden("Only engineers can update service checklists")
    ensure_valid_job_id(job_id)
    job = await load_job(db, job_id)
    authorize(session, "job:write", job)

    if job.status != "onsite":
        raise InvalidStatus(
            'Checklist can only be updated when job status is "onsite"',
            {"status": [f'Current status is "{job.status}", must be "onsite"']},
        )
    request = parse_payload(ChecklistUpdate, payload)

    try:
        updated = await crud.update_job_if_status(
            db, job.id, "onsite",
            service_checklist=[i.model_dump(exclude_none=True) for i in request.checklist],
            updated_at=utcnow(),
        )
    except SQLAlchemyError:
        logger.exception(f"Error updating checklist of job {job_id}")
        raise DatabaseError("Failed to update checklist")
    if updated is None:
        raise Conflict("Job status changed while updating the checklist; reload the job and retry")

    stats = checklist_stats(request.checklist)
    enabled = completion_enabled(updated.status, stats)
    return ChecklistResponse(
        job_id=updated.id,
        status=updated.status,
        checklist=request.checklist,
        stats=stats,
        completion_enabled=enabled,
        message=(
            "All checklist items completed. Job completion is now enabled."
            if enabled else
            "Checklist updated. Complete all items to enable job completion."
        ),
    )
