"""Authentication service: DB-backed sessions, bcrypt passwords."""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta

import bcrypt
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db import crud
from app.models.auth_models import User, UserSession

_session_config = get_settings().session

SESSION_COOKIE_NAME = _session_config.cookie_name
SESSION_MAX_AGE_DAYS = _session_config.max_age_days


@dataclass
class AuthContext:
    user_id: str
    role: str  # 'admin' | 'manager' | 'viewer' | 'engineer'
    agency_id: str | None
    email: str = ""
    display_name: str = ""


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


def _hash_token(token: str) -> str:
    """SHA-256 hash of a session token for DB storage."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def create_session(user: User, db: AsyncSession, ip_address: str = "") -> str:
    """Create a DB-backed session. Returns the raw token (not the hash)."""
    token = secrets.token_urlsafe(48)
    expires_at = datetime.now(timezone.utc) + timedelta(days=SESSION_MAX_AGE_DAYS)

    session = UserSession(
        user_id=user.id,
        token_hash=_hash_token(token),
        expires_at=expires_at,
        ip_address=ip_address,
    )
    db.add(session)
    await db.commit()
    return token


async def validate_session(token: str, db: AsyncSession) -> User | None:
    """Look up session by token hash, return User if valid."""
    session = await crud.get_active_session(db, _hash_token(token), datetime.now(timezone.utc))
    if not session:
        return None

    user = await crud.get_user(db, session.user_id)
    if not user or not user.is_active:
        return None
    return user


async def remove_session(token: str, db: AsyncSession) -> None:
    """Delete a session by token."""
    result = await db.execute(
        select(UserSession).where(UserSession.token_hash == _hash_token(token))
    )
    session = result.scalars().first()
    if session:
        await db.delete(session)
        await db.commit()


def auth_context_for(user: User) -> AuthContext:
    return AuthContext(
        user_id=user.id,
        role=user.role,
        agency_id=user.agency_id,
        email=user.email,
        display_name=user.display_name,
    )


async def get_session_context(request: Request, db: AsyncSession) -> AuthContext | None:
    """Read the session cookie and return the caller's AuthContext, or None."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None

    user = await validate_session(token, db)
    if not user:
        return None
    return auth_context_for(user)
