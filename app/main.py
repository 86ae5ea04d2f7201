"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.router import api_router
from app.config import get_settings
from app.db.engine import async_session_factory, init_models
from app.errors import register_exception_handlers
from app.services.job_assignment import JobAssignmentService
from app.services.job_completion import JobCompletionService
from app.services.job_status import JobStatusService
from app.services.realtime import RealtimeBroadcaster

_settings = get_settings()
logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def build_services(app: FastAPI, session_factory=async_session_factory) -> None:
    """Construct the process-wide services and attach them to app.state."""
    broadcaster = RealtimeBroadcaster()
    app.state.session_factory = session_factory
    app.state.broadcaster = broadcaster
    app.state.completion_service = JobCompletionService(
        session_factory, broadcaster, _settings.completion,
    )
    app.state.status_service = JobStatusService(
        session_factory, broadcaster, _settings.completion,
    )
    app.state.assignment_service = JobAssignmentService(session_factory, broadcaster)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    build_services(app)
    yield


app = FastAPI(
    title="FieldOps",
    description="Field-service job dispatch: status lifecycle, completion with signature capture, payments and realtime updates.",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health")
async def health():
    return {"ok": True}
