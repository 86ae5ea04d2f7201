"""Job model — one unit of dispatched field work."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Float, ForeignKey, JSON, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UUIDMixin, TimestampMixin


class Job(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "jobs"

    job_number: Mapped[str] = mapped_column(String(40), default="")
    client_name: Mapped[str] = mapped_column(String(200), default="")
    site_address: Mapped[str] = mapped_column(String(500), default="")
    # pending | assigned | accepted | travelling | onsite | completed | cancelled
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    assigned_engineer_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("engineers.id"), nullable=True, default=None,
    )
    assigned_agency_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("agencies.id"), nullable=True, default=None,
    )
    service_fee: Mapped[float | None] = mapped_column(Float, nullable=True, default=None)

    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)

    # Completion artifacts
    client_signature_url: Mapped[str | None] = mapped_column(String(1000), nullable=True, default=None)
    service_checklist: Mapped[list | None] = mapped_column(JSON, nullable=True, default=None)
    parts_used: Mapped[list | None] = mapped_column(JSON, nullable=True, default=None)
    engineer_notes: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
