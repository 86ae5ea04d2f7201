"""CRUD operations for agencies, users, engineers, jobs, payments and history."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models import (
    Agency, User, UserSession, Engineer, Job, Payment, JobStatusHistory,
)


# ── Agency / User ─────────────────────────────────────────

async def create_agency(db: AsyncSession, name: str, slug: str) -> Agency:
    agency = Agency(name=name, slug=slug)
    db.add(agency)
    await db.commit()
    await db.refresh(agency)
    return agency


async def get_agency(db: AsyncSession, agency_id: str) -> Agency | None:
    return await db.get(Agency, agency_id)


async def get_agency_by_slug(db: AsyncSession, slug: str) -> Agency | None:
    result = await db.execute(select(Agency).where(Agency.slug == slug))
    return result.scalars().first()


async def create_user(
    db: AsyncSession, email: str, password_hash: str, role: str,
    agency_id: str | None = None, display_name: str = "", user_id: str | None = None,
) -> User:
    user = User(
        email=email.strip().lower(), password_hash=password_hash, role=role,
        agency_id=agency_id, display_name=display_name,
    )
    if user_id:
        user.id = user_id
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()


# ── Engineer ──────────────────────────────────────────────

async def create_engineer(
    db: AsyncSession, name: str, agency_id: str | None = None,
    phone: str = "", engineer_id: str | None = None,
    availability_status: str = "available",
) -> Engineer:
    eng = Engineer(
        name=name, agency_id=agency_id, phone=phone,
        availability_status=availability_status,
    )
    if engineer_id:
        eng.id = engineer_id
    db.add(eng)
    await db.commit()
    await db.refresh(eng)
    return eng


async def get_engineer(db: AsyncSession, engineer_id: str) -> Engineer | None:
    return await db.get(Engineer, engineer_id)


async def set_engineer_availability(
    db: AsyncSession, engineer_id: str, availability_status: str,
    expected_status: str | None = None,
) -> bool:
    """Set an engineer's availability.

    With `expected_status`, only an engineer currently in that state is
    changed. Returns False when no row was updated.
    """
    stmt = update(Engineer).where(Engineer.id == engineer_id)
    if expected_status is not None:
        stmt = stmt.where(Engineer.availability_status == expected_status)
    result = await db.execute(
        stmt
        .values(availability_status=availability_status, updated_at=utcnow())
    )
    await db.commit()
    return result.rowcount > 0


# ── Job ───────────────────────────────────────────────────

async def create_job(
    db: AsyncSession, job_number: str = "", client_name: str = "",
    site_address: str = "", status: str = "pending",
    assigned_agency_id: str | None = None, assigned_engineer_id: str | None = None,
    service_fee: float | None = None, job_id: str | None = None,
) -> Job:
    job = Job(
        job_number=job_number, client_name=client_name, site_address=site_address,
        status=status, assigned_agency_id=assigned_agency_id,
        assigned_engineer_id=assigned_engineer_id, service_fee=service_fee,
    )
    if job_id:
        job.id = job_id
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


async def get_job(db: AsyncSession, job_id: str) -> Job | None:
    return await db.get(Job, job_id)


async def list_jobs_for_agency(db: AsyncSession, agency_id: str, status: str | None = None) -> list[Job]:
    stmt = select(Job).where(Job.assigned_agency_id == agency_id)
    if status:
        stmt = stmt.where(Job.status == status)
    result = await db.execute(stmt.order_by(Job.created_at.desc()))
    return list(result.scalars().all())


async def list_jobs_for_engineer(db: AsyncSession, engineer_id: str) -> list[Job]:
    result = await db.execute(
        select(Job).where(Job.assigned_engineer_id == engineer_id).order_by(Job.created_at.desc())
    )
    return list(result.scalars().all())


async def update_job_if_status(db: AsyncSession, job_id: str, expected_status: str, **fields) -> Job | None:
    """Apply `fields` only while the job still has `expected_status`.

    Returns the refreshed job, or None when the row changed underneath us.
    """
    result = await db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status == expected_status)
        .values(**fields)
    )
    await db.commit()
    if result.rowcount == 0:
        return None
    return await db.get(Job, job_id, populate_existing=True)


# ── Payment ───────────────────────────────────────────────

async def create_payment(
    db: AsyncSession, agency_id: str, job_id: str, amount: float,
    payment_type: str = "job_payment", status: str = "pending",
) -> Payment:
    payment = Payment(
        agency_id=agency_id, job_id=job_id, amount=amount,
        payment_type=payment_type, status=status,
    )
    db.add(payment)
    await db.commit()
    await db.refresh(payment)
    return payment


async def list_payments_for_job(db: AsyncSession, job_id: str) -> list[Payment]:
    result = await db.execute(select(Payment).where(Payment.job_id == job_id))
    return list(result.scalars().all())


# ── Status history ────────────────────────────────────────

async def add_status_history(
    db: AsyncSession, job_id: str, status: str, changed_by: str,
    notes: str | None = None, location: dict | None = None,
) -> JobStatusHistory:
    entry = JobStatusHistory(
        job_id=job_id, status=status, changed_by=changed_by,
        notes=notes, location=location,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return entry


async def list_status_history(db: AsyncSession, job_id: str, limit: int = 10) -> list[JobStatusHistory]:
    result = await db.execute(
        select(JobStatusHistory)
        .where(JobStatusHistory.job_id == job_id)
        .order_by(JobStatusHistory.created_at.desc(), JobStatusHistory.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ── UserSession ───────────────────────────────────────────

async def get_active_session(db: AsyncSession, token_hash: str, now: datetime) -> UserSession | None:
    result = await db.execute(
        select(UserSession).where(
            UserSession.token_hash == token_hash,
            UserSession.expires_at > now,
        )
    )
    return result.scalars().first()
