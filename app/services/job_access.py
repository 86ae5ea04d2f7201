"""Shared request guards for job endpoints: session, id format, job lookup."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from fastapi import Request
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import crud
from app.errors import Unauthorized, Forbidden, InvalidId, NotFound, DatabaseError, ValidationFailed
from app.models import Job
from app.services.auth import AuthContext
from app.services.authorization import authorize, can_access_engineer

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def require_session(session: AuthContext | None) -> AuthContext:
    if session is None:
        raise Unauthorized("Authentication required")
    return session


def ensure_valid_job_id(job_id: str) -> None:
    if not _UUID_RE.match(job_id):
        raise InvalidId("Invalid job ID format")


async def load_job(db: AsyncSession, job_id: str) -> Job:
    try:
        job = await crud.get_job(db, job_id)
    except SQLAlchemyError:
        logger.exception(f"Error fetching job {job_id}")
        raise DatabaseError("Failed to fetch job")
    if job is None:
        raise NotFound("Job not found")
    return job


MALFORMED_JSON = object()


async def read_json_body(request: Request) -> Any:
    """The decoded JSON body, None when empty, or MALFORMED_JSON.

    Nothing is rejected here: handlers check the session and job state
    before the payload is validated.
    """
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return MALFORMED_JSON


def parse_payload(model: type[BaseModel], payload) -> BaseModel:
    """Validate a raw JSON body into `model`, raising VALIDATION_ERROR with per-field details."""
    if payload is MALFORMED_JSON:
        raise ValidationFailed("Invalid JSON in request body", {"body": ["Request body is not valid JSON"]})
    try:
        return model.model_validate(payload if payload is not None else {})
    except ValidationError as e:
        details: dict[str, list[str]] = {}
        for err in e.errors():
            path = ".".join(str(p) for p in err.get("loc", ())) or "body"
            details.setdefault(path, []).append(err.get("msg", "Invalid value"))
        raise ValidationFailed("Invalid request data", details)


async def authorize_channel(db: AsyncSession, session: AuthContext, channel: str) -> None:
    """Raise unless `session` may follow the realtime `channel`."""
    kind, _, resource_id = channel.partition(":")
    if kind == "job":
        ensure_valid_job_id(resource_id)
        job = await load_job(db, resource_id)
        authorize(session, "job:read", job)
    elif kind == "engineer":
        engineer = await crud.get_engineer(db, resource_id)
        if engineer is None:
            raise NotFound("Engineer not found")
        if not can_access_engineer(session, engineer):
            raise Forbidden("You do not have access to this engineer")
    else:
        raise NotFound("Unknown channel")
