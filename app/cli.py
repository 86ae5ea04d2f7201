"""CLI for FieldOps — bootstrap agencies, engineers and jobs."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys


def _read_password(provided: str | None, label: str = "Password") -> str:
    password = provided
    if not password:
        password = getpass.getpass(f"{label}: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match")
            sys.exit(1)

    if len(password) < 8:
        print("Password must be at least 8 characters")
        sys.exit(1)
    return password


async def cmd_create_agency(args):
    """Create a new agency with an admin user."""
    from app.db.engine import async_session_factory, init_models
    from app.services.agency_bootstrap import create_agency

    await init_models()
    password = _read_password(args.password, "Admin password")

    async with async_session_factory() as db:
        try:
            agency, admin = await create_agency(
                name=args.name,
                admin_email=args.email,
                admin_password=password,
                db=db,
                admin_display_name=args.display_name or "",
            )
        except ValueError as e:
            print(str(e))
            sys.exit(1)

    print(f"Agency created: {agency.name} (id={agency.id}, slug={agency.slug})")
    print(f"Admin user: {admin.email} (id={admin.id})")


async def cmd_add_engineer(args):
    """Create an engineer login."""
    from app.db.engine import async_session_factory, init_models
    from app.services.agency_bootstrap import add_engineer

    await init_models()
    password = _read_password(args.password)

    async with async_session_factory() as db:
        try:
            engineer, user = await add_engineer(
                name=args.name,
                email=args.email,
                password=password,
                db=db,
                agency_id=args.agency_id,
                phone=args.phone or "",
            )
        except ValueError as e:
            print(str(e))
            sys.exit(1)

    print(f"Engineer created: {engineer.name} (id={engineer.id}, login={user.email})")


async def cmd_create_job(args):
    """Create a job, optionally assigning an available engineer to it."""
    from app.db import crud
    from app.db.engine import async_session_factory, init_models
    from app.errors import ApiError
    from app.models.base import utcnow
    from app.services.job_assignment import assign_engineer, ensure_assignable

    await init_models()
    if args.service_fee is not None and args.service_fee < 0:
        print("Service fee cannot be negative")
        sys.exit(1)

    async with async_session_factory() as db:
        if not await crud.get_agency(db, args.agency_id):
            print(f"Agency {args.agency_id} not found")
            sys.exit(1)
        engineer = None
        if args.engineer_id:
            engineer = await crud.get_engineer(db, args.engineer_id)
            if not engineer:
                print(f"Engineer {args.engineer_id} not found")
                sys.exit(1)

        job = await crud.create_job(
            db,
            job_number=args.job_number or "",
            client_name=args.client or "",
            site_address=args.address or "",
            assigned_agency_id=args.agency_id,
            service_fee=args.service_fee,
        )
        if engineer:
            job_id = job.id
            try:
                ensure_assignable(job, engineer)
                job = await assign_engineer(db, job, engineer.id, utcnow())
            except ApiError as e:
                print(f"Job created: {job_id} (status=pending), not assigned: {e.message}")
                sys.exit(1)

    print(f"Job created: {job.id} (status={job.status})")


def main():
    parser = argparse.ArgumentParser(prog="fieldops", description="FieldOps CLI")
    sub = parser.add_subparsers(dest="command")

    p_agency = sub.add_parser("create-agency", help="Create a new agency with an admin user")
    p_agency.add_argument("--name", required=True, help="Agency name")
    p_agency.add_argument("--email", required=True, help="Admin email")
    p_agency.add_argument("--password", help="Admin password (prompted if omitted)")
    p_agency.add_argument("--display-name", help="Admin display name")

    p_eng = sub.add_parser("add-engineer", help="Create an engineer login")
    p_eng.add_argument("--name", required=True)
    p_eng.add_argument("--email", required=True)
    p_eng.add_argument("--password", help="Password (prompted if omitted)")
    p_eng.add_argument("--agency-id", help="Agency the engineer works for")
    p_eng.add_argument("--phone")

    p_job = sub.add_parser("create-job", help="Create a job for an agency")
    p_job.add_argument("--agency-id", required=True)
    p_job.add_argument("--engineer-id", help="Assign to this engineer")
    p_job.add_argument("--job-number")
    p_job.add_argument("--client")
    p_job.add_argument("--address")
    p_job.add_argument("--service-fee", type=float)

    args = parser.parse_args()

    if args.command == "create-agency":
        asyncio.run(cmd_create_agency(args))
    elif args.command == "add-engineer":
        asyncio.run(cmd_add_engineer(args))
    elif args.command == "create-job":
        asyncio.run(cmd_create_job(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
