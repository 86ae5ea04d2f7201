from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.services.signature import is_url_like

JobStatus = Literal["pending", "assigned", "accepted", "travelling", "onsite", "completed", "cancelled"]


class ChecklistItem(BaseModel):
    item: str
    completed: bool
    notes: str | None = None


class PartUsed(BaseModel):
    name: str
    quantity: float = Field(gt=0)
    cost: float = Field(ge=0)


class JobCompleteRequest(BaseModel):
    signature_url: str
    checklist: list[ChecklistItem] | None = None
    parts_used: list[PartUsed] | None = None
    engineer_notes: str | None = None

    @field_validator("signature_url")
    @classmethod
    def signature_url_must_be_url(cls, v: str) -> str:
        if not is_url_like(v):
            raise ValueError("Invalid signature URL format")
        return v.strip()


class Location(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class JobStatusUpdate(BaseModel):
    status: JobStatus
    location: Location | None = None
    notes: str | None = None


class JobRead(BaseModel):
    id: str
    job_number: str = ""
    client_name: str = ""
    site_address: str = ""
    status: str
    assigned_engineer_id: str | None = None
    assigned_agency_id: str | None = None
    service_fee: float | None = None
    assigned_at: datetime | None = None
    accepted_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    client_signature_url: str | None = None
    service_checklist: list[dict] | None = None
    parts_used: list[dict] | None = None
    engineer_notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaymentRead(BaseModel):
    id: str
    agency_id: str
    job_id: str
    amount: float
    payment_type: str
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StatusHistoryRead(BaseModel):
    id: str
    job_id: str
    status: str
    changed_by: str
    notes: str | None = None
    location: dict | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CompletionMetadata(BaseModel):
    completed_at: datetime
    completed_by: str
    signature_uploaded: bool = True
    checklist_validated: bool
    engineer_availability_restored: bool
    payment_created: bool


class JobCompleteResponse(BaseModel):
    job: JobRead
    payment: PaymentRead | None = None
    metadata: CompletionMetadata


class StatusUpdateMetadata(BaseModel):
    previous_status: str
    new_status: str
    transition_valid: bool = True
    timestamp_recorded: datetime | None = None
    location_recorded: bool
    realtime_broadcast_sent: bool


class JobStatusResponse(BaseModel):
    job: JobRead
    status_history: list[StatusHistoryRead] = []
    metadata: StatusUpdateMetadata


class JobAssignRequest(BaseModel):
    engineer_id: str = Field(
        pattern=r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$",
    )


class EngineerSummary(BaseModel):
    id: str
    name: str
    phone: str = ""
    availability_status: str

    model_config = {"from_attributes": True}


class AssignmentInfo(BaseModel):
    assigned_at: datetime
    assigned_by: str


class JobAssignResponse(BaseModel):
    job: JobRead
    engineer: EngineerSummary
    assignment: AssignmentInfo
    notification_sent: bool


class ChecklistUpdate(BaseModel):
    checklist: list[ChecklistItem]


class ChecklistStats(BaseModel):
    total_items: int
    completed_items: int
    pending_items: int
    completion_percentage: int
    all_completed: bool


class ChecklistResponse(BaseModel):
    job_id: str
    status: str
    checklist: list[ChecklistItem]
    stats: ChecklistStats
    completion_enabled: bool
    message: str | None = None
