"""Bootstrap agencies, their admin users and engineer logins."""

from __future__ import annotations

import re

from sqlalchemy.ext.asyncio import AsyncSession

from app.db import crud
from app.models import Agency, User, Engineer
from app.services.auth import hash_password


def _slugify(name: str) -> str:
    """Convert an agency name to a URL-safe slug."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = slug.strip('-')
    return slug or "agency"


async def create_agency(
    name: str,
    admin_email: str,
    admin_password: str,
    db: AsyncSession,
    admin_display_name: str = "",
) -> tuple[Agency, User]:
    """Create a new agency + admin user.

    Returns (agency, admin_user).
    """
    slug = _slugify(name)
    if await crud.get_agency_by_slug(db, slug):
        raise ValueError(f"Agency with slug '{slug}' already exists")
    if await crud.get_user_by_email(db, admin_email.strip().lower()):
        raise ValueError(f"User with email '{admin_email}' already exists")

    agency = await crud.create_agency(db, name=name, slug=slug)
    admin = await crud.create_user(
        db,
        email=admin_email,
        password_hash=hash_password(admin_password),
        role="admin",
        agency_id=agency.id,
        display_name=admin_display_name or name,
    )
    return agency, admin


async def add_engineer(
    name: str,
    email: str,
    password: str,
    db: AsyncSession,
    agency_id: str | None = None,
    phone: str = "",
) -> tuple[Engineer, User]:
    """Create an engineer login and its engineer row, sharing one id."""
    if await crud.get_user_by_email(db, email.strip().lower()):
        raise ValueError(f"User with email '{email}' already exists")

    user = await crud.create_user(
        db,
        email=email,
        password_hash=hash_password(password),
        role="engineer",
        agency_id=agency_id,
        display_name=name,
    )
    engineer = await crud.create_engineer(
        db, name=name, agency_id=agency_id, phone=phone, engineer_id=user.id,
    )
    return engineer, user
