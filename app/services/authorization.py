"""Role-based capability checks and job ownership rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.errors import Forbidden

if TYPE_CHECKING:
    from app.models import Engineer, Job
    from app.services.auth import AuthContext


ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": frozenset({
        "agency:read", "agency:write", "agency:delete",
        "engineer:read", "engineer:write", "engineer:delete",
        "job:read", "job:write", "job:assign", "job:delete",
        "payment:read", "payment:write",
        "user:read", "user:write", "user:delete",
        "analytics:read", "settings:read", "settings:write",
    }),
    "manager": frozenset({
        "agency:read", "engineer:read", "engineer:write",
        "job:read", "job:write",
        "payment:read", "analytics:read", "settings:read",
    }),
    "viewer": frozenset({
        "agency:read", "engineer:read", "job:read", "payment:read", "analytics:read",
    }),
    "engineer": frozenset({"job:read", "job:write"}),
}

AGENCY_ROLES = frozenset({"admin", "manager", "viewer"})


def has_permission(role: str, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def can_access_job(session: AuthContext, job: Job) -> bool:
    """Agency staff see their agency's jobs; engineers see jobs assigned to them."""
    if session.role in AGENCY_ROLES:
        return job.assigned_agency_id is not None and job.assigned_agency_id == session.agency_id
    if session.role == "engineer":
        return job.assigned_engineer_id is not None and job.assigned_engineer_id == session.user_id
    return False


def can_access_engineer(session: AuthContext, engineer: Engineer) -> bool:
    """Engineers see their own feed; agency staff with engineer:read see their agency's engineers."""
    if session.user_id == engineer.id:
        return True
    return (
        session.role in AGENCY_ROLES
        and has_permission(session.role, "engineer:read")
        and engineer.agency_id is not None
        and engineer.agency_id == session.agency_id
    )


def authorize(session: AuthContext, action: str, resource: Job | None = None) -> None:
    """Raise Forbidden unless `session` may perform `action` (on `resource`)."""
    if not has_permission(session.role, action):
        raise Forbidden(f"Insufficient permissions: role '{session.role}' lacks '{action}'")
    if resource is not None and not can_access_job(session, resource):
        raise Forbidden("You do not have access to this job")
