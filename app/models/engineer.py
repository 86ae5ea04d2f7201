"""Engineer model — field personnel assignable to jobs."""

from __future__ import annotations

from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UUIDMixin, TimestampMixin


class Engineer(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "engineers"

    # Engineer logins share their id with the users row
    agency_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("agencies.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(200))
    phone: Mapped[str] = mapped_column(String(50), default="")
    availability_status: Mapped[str] = mapped_column(String(20), default="available")  # available | on_job | offline | on_leave
