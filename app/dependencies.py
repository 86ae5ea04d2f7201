"""FastAPI dependency providers for settings, sessions and job services."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.db.engine import get_db
from app.errors import Unauthorized
from app.services.auth import AuthContext, get_session_context
from app.services.job_assignment import JobAssignmentService
from app.services.job_completion import JobCompletionService
from app.services.job_status import JobStatusService


@lru_cache
def get_settings_dep() -> Settings:
    return get_settings()


async def get_optional_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthContext | None:
    """The caller's session, or None. Handlers decide how to reject."""
    return await get_session_context(request, db)


async def require_auth(
    auth: AuthContext | None = Depends(get_optional_session),
) -> AuthContext:
    """Require a valid authenticated session. Returns AuthContext."""
    if auth is None:
        raise Unauthorized("Authentication required")
    return auth


def get_completion_service(request: Request) -> JobCompletionService:
    return request.app.state.completion_service


def get_status_service(request: Request) -> JobStatusService:
    return request.app.state.status_service


def get_assignment_service(request: Request) -> JobAssignmentService:
    return request.app.state.assignment_service
