"""Pydantic request/response schemas."""

from app.schemas.job import (
    JobStatus, ChecklistItem, PartUsed, JobCompleteRequest, Location, JobStatusUpdate,
    JobRead, PaymentRead, StatusHistoryRead,
    CompletionMetadata, JobCompleteResponse, StatusUpdateMetadata, JobStatusResponse,
    JobAssignRequest, EngineerSummary, AssignmentInfo, JobAssignResponse,
    ChecklistUpdate, ChecklistStats, ChecklistResponse,
)
from app.schemas.ws_messages import BroadcastMessage

__all__ = [
    "JobStatus", "ChecklistItem", "PartUsed", "JobCompleteRequest", "Location", "JobStatusUpdate",
    "JobRead", "PaymentRead", "StatusHistoryRead",
    "CompletionMetadata", "JobCompleteResponse", "StatusUpdateMetadata", "JobStatusResponse",
    "JobAssignRequest", "EngineerSummary", "AssignmentInfo", "JobAssignResponse",
    "ChecklistUpdate", "ChecklistStats", "ChecklistResponse",
    "BroadcastMessage",
]
