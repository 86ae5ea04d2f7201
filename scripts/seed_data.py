"""Seed the database with a demo agency, engineer and jobs."""

import asyncio

from app.db.engine import async_session_factory, init_models
from app.db import crud
from app.services.agency_bootstrap import create_agency, add_engineer

DEMO_PASSWORD = "demo-password-123"


async def seed():
    await init_models()

    async with async_session_factory() as db:
        if await crud.get_agency_by_slug(db, "demo-cooling-services"):
            print("Demo agency already exists, skipping seed.")
            return

        agency, admin = await create_agency(
            "Demo Cooling Services", "admin@demo.local", DEMO_PASSWORD, db,
        )
        print(f"Created agency: {agency.name} (id: {agency.id})")
        print(f"Admin login: {admin.email} / {DEMO_PASSWORD}")

        engineer, login = await add_engineer(
            "Ravi Kumar", "engineer@demo.local", DEMO_PASSWORD, db, agency_id=agency.id,
        )
        print(f"Engineer login: {login.email} / {DEMO_PASSWORD} (id: {engineer.id})")

        for number, status, fee in [
            ("JOB-1001", "onsite", 2500.0),
            ("JOB-1002", "travelling", 1800.0),
            ("JOB-1003", "assigned", 0.0),
        ]:
            job = await crud.create_job(
                db,
                job_number=number,
                client_name="Acme Offices",
                site_address="12 Industrial Estate Road",
                status=status,
                assigned_agency_id=agency.id,
                assigned_engineer_id=engineer.id,
                service_fee=fee,
            )
            print(f"Created job {job.job_number} ({job.status}, id: {job.id})")

        await crud.set_engineer_availability(db, engineer.id, "on_job")
        job = await crud.create_job(
            db, job_number="JOB-1004", client_name="Harbour Cafe",
            site_address="3 Wharf Street", assigned_agency_id=agency.id, service_fee=1200.0,
        )
        print(f"Created unassigned job {job.job_number} (id: {job.id})")

    print("\nSeed complete. Start the server with: uvicorn app.main:app --reload")


if __name__ == "__main__":
    asyncio.run(seed())
