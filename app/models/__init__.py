"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.auth_models import Agency, User, UserSession
from app.models.engineer import Engineer
from app.models.job import Job
from app.models.payment import Payment
from app.models.job_status_history import JobStatusHistory

__all__ = [
    "Base",
    "Agency", "User", "UserSession",
    "Engineer", "Job", "Payment", "JobStatusHistory",
]
