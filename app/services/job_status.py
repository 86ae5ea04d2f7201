"""Job status transitions outside the completion workflow."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import CompletionConfig
from app.db import crud
from app.errors import Conflict, DatabaseError, InvalidTransition
from app.models.base import utcnow
from app.schemas.job import (
    JobStatusUpdate, JobStatusResponse, JobRead, StatusHistoryRead, StatusUpdateMetadata,
)
from app.services.auth import AuthContext
from app.services.authorization import authorize
from app.services.job_access import require_session, ensure_valid_job_id, load_job, parse_payload
from app.services.realtime import RealtimeBroadcaster, job_channel, engineer_channel

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("assigned", "cancelled"),
    "assigned": ("accepted", "cancelled"),
    "accepted": ("travelling", "cancelled"),
    "travelling": ("onsite", "cancelled"),
    "onsite": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}

TIMESTAMP_FIELDS = {
    "assigned": "assigned_at",
    "accepted": "accepted_at",
    "onsite": "started_at",
    "completed": "completed_at",
}


def validate_transition(current: str, new: str) -> None:
    allowed = VALID_TRANSITIONS.get(current, ())
    if new not in allowed:
        raise InvalidTransition(
            f"Invalid status transition from '{current}' to '{new}'. "
            f"Allowed transitions: {', '.join(allowed) or 'none'}"
        )


class JobStatusService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: RealtimeBroadcaster,
        config: CompletionConfig | None = None,
    ):
        self._session_factory = session_factory
        self._broadcaster = broadcaster
        self._config = config or CompletionConfig()

    async def update_status(self, job_id: str, payload: dict | None, session: AuthContext | None) -> JobStatusResponse:
        session = require_session(session)
        authorize(session, "job:write")
        ensure_valid_job_id(job_id)
        request = parse_payload(JobStatusUpdate, payload)
        new_status = request.status
        location = request.location.model_dump() if request.location else None

        async with self._session_factory() as db:
            job = await load_job(db, job_id)
            authorize(session, "job:write", job)
            previous = job.status
            validate_transition(previous, new_status)
            if new_status == "assigned" and not job.assigned_engineer_id:
                raise InvalidTransition(
                    "A job without an engineer is assigned through POST /api/jobs/{id}/assign"
                )

            now = utcnow()
            fields = {"status": new_status, "updated_at": now}
            timestamp_field = TIMESTAMP_FIELDS.get(new_status)
            if timestamp_field:
                fields[timestamp_field] = now

            try:
                updated = await crud.update_job_if_status(db, job_id, previous, **fields)
            except SQLAlchemyError:
                logger.exception(f"Error updating status of job {job_id}")
                raise DatabaseError("Failed to update job status")
            if updated is None:
                raise Conflict("Job status changed concurrently; reload the job and retry")
            job_read = JobRead.model_validate(updated)
            engineer_id = job.assigned_engineer_id
            job_number = job.job_number

            try:
                await crud.add_status_history(
                    db, job_id, new_status, session.user_id, notes=request.notes, location=location,
                )
            except Exception as e:
                logger.error(f"Error recording status history for job {job_id}: {e}")
                await db.rollback()

            broadcast_sent = await self._send(job_channel(job_id), "status_update", {
                "job_id": job_id,
                "status": new_status,
                "timestamp": now.isoformat(),
                "location": location,
                "changed_by": session.user_id,
            })

            if engineer_id and new_status == "travelling":
                await self._send(engineer_channel(engineer_id), "start_location_tracking", {
                    "job_id": job_id,
                    "job_number": job_number,
                    "timestamp": now.isoformat(),
                })
            elif engineer_id and new_status in ("completed", "cancelled"):
                await self._send(engineer_channel(engineer_id), "stop_location_tracking", {
                    "job_id": job_id,
                    "timestamp": now.isoformat(),
                })

            if engineer_id and new_status == "cancelled":
                await self._release_engineer(db, job_id, engineer_id)

            try:
                history = await crud.list_status_history(db, job_id, limit=self._config.history_limit)
            except SQLAlchemyError as e:
                logger.error(f"Error loading status history for job {job_id}: {e}")
                history = []

        return JobStatusResponse(
            job=job_read,
            status_history=[StatusHistoryRead.model_validate(h) for h in history],
            metadata=StatusUpdateMetadata(
                previous_status=previous,
                new_status=new_status,
                transition_valid=True,
                timestamp_recorded=now if timestamp_field else None,
                location_recorded=location is not None,
                realtime_broadcast_sent=broadcast_sent,
            ),
        )

    async def _release_engineer(self, db: AsyncSession, job_id: str, engineer_id: str) -> None:
        try:
            await crud.set_engineer_availability(db, engineer_id, "available", expected_status="on_job")
        except Exception as e:
            logger.error(f"Failed to release engineer {engineer_id} from cancelled job {job_id}: {e}")
            await db.rollback()

    async def _send(self, channel: str, event: str, payload: dict) -> bool:
        try:
            await self._broadcaster.broadcast(channel, event, payload)
        except Exception as e:
            logger.error(f"Broadcast of {event} on {channel} failed: {e}")
            return False
        return True
