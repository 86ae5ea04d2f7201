"""Append-only audit trail of job status changes."""

from __future__ import annotations

from sqlalchemy import String, ForeignKey, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UUIDMixin


class JobStatusHistory(Base, UUIDMixin):
    __tablename__ = "job_status_history"

    job_id: Mapped[str] = mapped_column(String(36), ForeignKey("jobs.id"), index=True)
    status: Mapped[str] = mapped_column(String(20))
    changed_by: Mapped[str] = mapped_column(String(36))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    location: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=None)  # {"lat": .., "lng": ..}
