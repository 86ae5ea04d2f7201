"""Shared fixtures: a file-backed SQLite database and seeded agencies, users and engineers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.db import crud
from app.models import Base, UserSession
from app.services.auth import AuthContext, _hash_token


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # A file DB rather than :memory: so concurrent sessions see each other's writes.
    # No pooling: the websocket TestClient opens connections on its own event loop.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@dataclass
class Seed:
    agency_id: str
    other_agency_id: str
    engineer_id: str
    other_engineer_id: str
    contexts: dict[str, AuthContext] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)

    def cookie(self, who: str) -> dict[str, str]:
        from app.services.auth import SESSION_COOKIE_NAME
        return {"Cookie": f"{SESSION_COOKIE_NAME}={self.tokens[who]}"}


async def _login_as(db: AsyncSession, seed: Seed, who: str, user) -> None:
    token = f"test-token-{who}"
    db.add(UserSession(
        user_id=user.id,
        token_hash=_hash_token(token),
        expires_at=datetime.now(timezone.utc) + timedelta(hours=24),
    ))
    await db.commit()
    seed.tokens[who] = token
    seed.contexts[who] = AuthContext(
        user_id=user.id, role=user.role, agency_id=user.agency_id, email=user.email,
    )


@pytest_asyncio.fixture
async def seed(session_factory) -> Seed:
    async with session_factory() as db:
        agency = await crud.create_agency(db, "Cool Air Services", "cool-air-services")
        other = await crud.create_agency(db, "Rival Repairs", "rival-repairs")

        admin = await crud.create_user(db, "admin@coolair.test", "x", "admin", agency_id=agency.id)
        manager = await crud.create_user(db, "manager@coolair.test", "x", "manager", agency_id=agency.id)
        viewer = await crud.create_user(db, "viewer@coolair.test", "x", "viewer", agency_id=agency.id)
        rival_admin = await crud.create_user(db, "admin@rival.test", "x", "admin", agency_id=other.id)

        eng_user = await crud.create_user(db, "eng@coolair.test", "x", "engineer", agency_id=agency.id)
        await crud.create_engineer(
            db, "Ravi", agency_id=agency.id, engineer_id=eng_user.id, availability_status="on_job",
        )
        other_eng_user = await crud.create_user(db, "eng2@coolair.test", "x", "engineer", agency_id=agency.id)
        await crud.create_engineer(db, "Meera", agency_id=agency.id, engineer_id=other_eng_user.id)

        s = Seed(
            agency_id=agency.id,
            other_agency_id=other.id,
            engineer_id=eng_user.id,
            other_engineer_id=other_eng_user.id,
        )
        for who, user in [
            ("admin", admin), ("manager", manager), ("viewer", viewer),
            ("rival_admin", rival_admin), ("engineer", eng_user), ("other_engineer", other_eng_user),
        ]:
            await _login_as(db, s, who, user)
    return s


@pytest_asyncio.fixture
async def make_job(session_factory, seed):
    """Factory for jobs owned by the seeded agency and engineer by default."""

    async def _make(**overrides):
        fields = {
            "job_number": "JOB-1",
            "status": "onsite",
            "assigned_agency_id": seed.agency_id,
            "assigned_engineer_id": seed.engineer_id,
            "service_fee": 2500.0,
        }
        fields.update(overrides)
        async with session_factory() as db:
            return await crud.create_job(db, **fields)

    return _make
