from __future__ import annotations
from typing import Any
from pydantic import BaseModel


class BroadcastMessage(BaseModel):
    type: str = "broadcast"
    event: str  # job_completed | status_update | start_location_tracking | stop_location_tracking
    payload: dict[str, Any] = {}
