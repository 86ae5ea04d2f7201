"""Job completion workflow.

Completing a job runs strictly in order:

1. authorize the caller (``job:write`` + ownership of the job)
2. validate the job state and the checklist
3. validate the client signature reference
4. transition the job to ``completed`` in a single conditional update
5. side effects: restore engineer availability, create the pending payment,
   append status history and broadcast realtime events

Only a failure in step 4 fails the request. Side-effect failures are logged
and surface as ``False`` flags in the response metadata.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import CompletionConfig
from app.db import crud
from app.errors import Conflict, ValidationFailed, DatabaseError
from app.models import Job, Payment
from app.models.base import utcnow
from app.schemas.job import (
    ChecklistItem, JobCompleteRequest, JobCompleteResponse, CompletionMetadata,
    JobRead, PaymentRead,
)
from app.services.auth import AuthContext
from app.services.authorization import authorize
from app.services.job_access import require_session, ensure_valid_job_id, load_job, parse_payload
from app.services.realtime import RealtimeBroadcaster, job_channel, engineer_channel
from app.services.signature import validate_signature_url

logger = logging.getLogger(__name__)


def ensure_completable(status: str) -> None:
    if status == "completed":
        raise Conflict("Job is already completed")
    if status == "cancelled":
        raise Conflict("Cannot complete a cancelled job")


def validate_completion(status: str, checklist: list[ChecklistItem] | None = None) -> None:
    """Raise Conflict/ValidationFailed if a job in `status` may not be completed.

    Status conflicts win over checklist problems. A missing or empty
    checklist never blocks completion.
    """
    ensure_completable(status)
    if not checklist:
        return
    incomplete = [item for item in checklist if not item.completed]
    if incomplete:
        message = f"Cannot complete job: {len(incomplete)} checklist item(s) are incomplete"
        raise ValidationFailed(message, {"checklist": [message]})


@dataclass
class CompletionResult:
    job: Job
    payment: Payment | None
    completed_at: datetime
    completed_by: str
    checklist_validated: bool
    engineer_availability_restored: bool

    @property
    def payment_created(self) -> bool:
        return self.payment is not None

    def to_response(self) -> JobCompleteResponse:
        return JobCompleteResponse(
            job=JobRead.model_validate(self.job),
            payment=PaymentRead.model_validate(self.payment) if self.payment else None,
            metadata=CompletionMetadata(
                completed_at=self.completed_at,
                completed_by=self.completed_by,
                signature_uploaded=True,
                checklist_validated=self.checklist_validated,
                engineer_availability_restored=self.engineer_availability_restored,
                payment_created=self.payment_created,
            ),
        )


class JobCompletionService:
    """Completes jobs. One instance per process, injected into request handlers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: RealtimeBroadcaster,
        config: CompletionConfig | None = None,
    ):
        self._session_factory = session_factory
        self._broadcaster = broadcaster
        self._config = config or CompletionConfig()

    async def complete(self, job_id: str, payload: dict | None, session: AuthContext | None) -> CompletionResult:
        session = require_session(session)
        authorize(session, "job:write")
        ensure_valid_job_id(job_id)

        async with self._session_factory() as db:
            job = await load_job(db, job_id)
            authorize(session, "job:write", job)

            ensure_completable(job.status)
            request = parse_payload(JobCompleteRequest, payload)
            validate_completion(job.status, request.checklist)
            signature_url = validate_signature_url(
                request.signature_url, self._config.signature_allowed_hosts,
            )

            # Captured before the transition; side effects act on these
            engineer_id = job.assigned_engineer_id
            agency_id = job.assigned_agency_id
            service_fee = job.service_fee

            now = utcnow()
            updated = await self._transition(db, job, request, signature_url, now)

        restored, payment, _ = await asyncio.gather(
            self._restore_engineer(job_id, engineer_id),
            self._create_payment(job_id, agency_id, service_fee),
            self._announce(job_id, engineer_id, session.user_id, now),
        )

        return CompletionResult(
            job=updated,
            payment=payment,
            completed_at=now,
            completed_by=session.user_id,
            checklist_validated=request.checklist is not None,
            engineer_availability_restored=restored,
        )

    async def _transition(
        self, db: AsyncSession, job: Job, request: JobCompleteRequest,
        signature_url: str, now: datetime,
    ) -> Job:
        fields = {
            "status": "completed",
            "completed_at": now,
            "updated_at": now,
            "client_signature_url": signature_url,
        }
        if request.checklist is not None:
            fields["service_checklist"] = [i.model_dump(exclude_none=True) for i in request.checklist]
        if request.parts_used is not None:
            fields["parts_used"] = [p.model_dump() for p in request.parts_used]
        if request.engineer_notes is not None:
            fields["engineer_notes"] = request.engineer_notes

        try:
            updated = await crud.update_job_if_status(db, job.id, job.status, **fields)
        except SQLAlchemyError:
            logger.exception(f"Error completing job {job.id}")
            raise DatabaseError("Failed to complete job")

        if updated is None:
            raise Conflict("Job status changed while completing; reload the job and retry")
        return updated

    async def _restore_engineer(self, job_id: str, engineer_id: str | None) -> bool:
        if not engineer_id:
            return False
        try:
            async with self._session_factory() as db:
                restored = await crud.set_engineer_availability(db, engineer_id, "available")
        except Exception as e:
            logger.error(f"Failed to restore availability of engineer {engineer_id} after job {job_id}: {e}")
            return False
        if not restored:
            logger.warning(f"Engineer {engineer_id} for job {job_id} not found; availability unchanged")
        return restored

    async def _create_payment(self, job_id: str, agency_id: str | None, service_fee: float | None) -> Payment | None:
        if not service_fee or service_fee <= 0:
            return None
        if not agency_id:
            logger.warning(f"Job {job_id} has a service fee but no agency; payment skipped")
            return None
        try:
            async with self._session_factory() as db:
                return await crud.create_payment(db, agency_id=agency_id, job_id=job_id, amount=service_fee)
        except Exception as e:
            logger.error(f"Failed to create payment record for job {job_id}: {e}")
            return None

    async def _announce(self, job_id: str, engineer_id: str | None, actor: str, now: datetime) -> None:
        try:
            async with self._session_factory() as db:
                await crud.add_status_history(
                    db, job_id, "completed", actor, notes=self._config.completion_note,
                )
        except Exception as e:
            logger.error(f"Error recording status history for job {job_id}: {e}")

        await self._send(job_channel(job_id), "job_completed", {
            "job_id": job_id,
            "completed_at": now.isoformat(),
            "completed_by": actor,
        })
        if engineer_id:
            await self._send(engineer_channel(engineer_id), "stop_location_tracking", {
                "job_id": job_id,
                "timestamp": now.isoformat(),
            })

    async def _send(self, channel: str, event: str, payload: dict) -> bool:
        try:
            await self._broadcaster.broadcast(channel, event, payload)
        except Exception as e:
            logger.error(f"Broadcast of {event} on {channel} failed: {e}")
            return False
        return True
