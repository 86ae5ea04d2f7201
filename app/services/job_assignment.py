"""Engineer assignment.

Assigning a job reserves the engineer: the job moves to ``assigned`` and the
engineer to ``on_job``. If the engineer cannot be reserved the job is put back
the way it was, so a job is never assigned to an engineer who is still marked
available.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import crud
from app.errors import Conflict, DatabaseError, Forbidden, NotFound
from app.models import Engineer, Job
from app.models.base import utcnow
from app.schemas.job import (
    AssignmentInfo, EngineerSummary, JobAssignRequest, JobAssignResponse, JobRead,
)
from app.services.auth import AuthContext
from app.services.authorization import authorize
from app.services.job_access import require_session, ensure_valid_job_id, load_job, parse_payload
from app.services.job_status import validate_transition
from app.services.realtime import RealtimeBroadcaster, job_channel, engineer_channel

logger = logging.getLogger(__name__)


def ensure_assignable(job: Job, engineer: Engineer) -> None:
    if job.assigned_engineer_id:
        raise Conflict(
            "Job is already assigned to an engineer",
            {"job": ["This job has already been assigned"]},
        )
    validate_transition(job.status, "assigned")
    if engineer.agency_id != job.assigned_agency_id:
        raise Forbidden("Engineer does not belong to the assigned agency")
    if engineer.availability_status != "available":
        raise Conflict(
            f"Engineer is not available for assignment. Current status: {engineer.availability_status}",
            {"engineer_id": [
                f"Engineer availability status is '{engineer.availability_status}', must be 'available'"
            ]},
        )


async def assign_engineer(db: AsyncSession, job: Job, engineer_id: str, now: datetime) -> Job:
    """Move `job` to assigned and mark the engineer on_job.

    Raises Conflict when either row changed since it was read, DatabaseError
    when a write fails. On any failure after the job update, the job is
    restored to its previous status.
    """
    job_id = job.id
    previous = job.status
    try:
        updated = await crud.update_job_if_status(
            db, job_id, previous,
            assigned_engineer_id=engineer_id, status="assigned",
            assigned_at=now, updated_at=now,
        )
    except SQLAlchemyError:
        logger.exception(f"Error assigning engineer {engineer_id} to job {job_id}")
        raise DatabaseError("Failed to assign engineer to job")
    if updated is None:
        raise Conflict("Job status changed while assigning; reload the job and retry")

    try:
        reserved = await crud.set_engineer_availability(
            db, engineer_id, "on_job", expected_status="available",
        )
    except SQLAlchemyError:
        logger.exception(f"Error updating availability of engineer {engineer_id}")
        await _release(db, job_id, previous, now)
        raise DatabaseError("Failed to update engineer availability")
    if not reserved:
        await _release(db, job_id, previous, now)
        raise Conflict(
            "Engineer is no longer available for assignment",
            {"engineer_id": ["Engineer availability changed during assignment"]},
        )
    return updated


async def _release(db: AsyncSession, job_id: str, previous: str, now: datetime) -> None:
    await db.rollback()
    try:
        await crud.update_job_if_status(
            db, job_id, "assigned",
            assigned_engineer_id=None, status=previous, assigned_at=None, updated_at=now,
        )
    except SQLAlchemyError:
        logger.exception(f"Failed to roll back assignment of job {job_id}")


class JobAssignmentService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: RealtimeBroadcaster,
    ):
        self._session_factory = session_factory
        self._broadcaster = broadcaster

    async def assign(self, job_id: str, payload, session: AuthContext | None) -> JobAssignResponse:
        session = require_session(session)
        authorize(session, "job:assign")
        ensure_valid_job_id(job_id)
        request = parse_payload(JobAssignRequest, payload)

        async with self._session_factory() as db:
            job = await load_job(db, job_id)
            authorize(session, "job:assign", job)
            engineer = await self._load_engineer(db, request.engineer_id)
            ensure_assignable(job, engineer)

            now = utcnow()
            updated = await assign_engineer(db, job, engineer.id, now)
            job_read = JobRead.model_validate(updated)
            summary = EngineerSummary(
                id=engineer.id, name=engineer.name, phone=engineer.phone,
                availability_status="on_job",
            )

            try:
                await crud.add_status_history(
                    db, job_id, "assigned", session.user_id, notes=f"Assigned to {summary.name}",
                )
            except Exception as e:
                logger.error(f"Error recording status history for job {job_id}: {e}")
                await db.rollback()

        await self._send(job_channel(job_id), "status_update", {
            "job_id": job_id,
            "status": "assigned",
            "timestamp": now.isoformat(),
            "changed_by": session.user_id,
        })
        notification_sent = await self._send(engineer_channel(summary.id), "job_assigned", {
            "job_id": job_id,
            "job_number": job_read.job_number,
            "client_name": job_read.client_name,
            "site_address": job_read.site_address,
            "assigned_at": now.isoformat(),
        })

        return JobAssignResponse(
            job=job_read,
            engineer=summary,
            assignment=AssignmentInfo(assigned_at=now, assigned_by=session.user_id),
            notification_sent=notification_sent,
        )

    async def _load_engineer(self, db: AsyncSession, engineer_id: str) -> Engineer:
        try:
            engineer = await crud.get_engineer(db, engineer_id)
        except SQLAlchemyError:
            logger.exception(f"Error fetching engineer {engineer_id}")
            raise DatabaseError("Failed to fetch engineer details")
        if engineer is None:
            raise NotFound("Engineer not found")
        return engineer

    async def _send(self, channel: str, event: str, payload: dict) -> bool:
        try:
            await self._broadcaster.broadcast(channel, event, payload)
        except Exception as e:
            logger.error(f"Broadcast of {event} on {channel} failed: {e}")
            return False
        return True
