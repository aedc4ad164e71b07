# Visit State Machine - Models

from enum import Enum
from typing import Optional
from datetime import datetime
from beanie import Document, Indexed
from pydantic import Field
from app.shared.models import utcnow


class VisitStatus(str, Enum):
    """Lifecycle of a visit: Waiting -> In-Progress -> Completed, or Waiting -> Cancelled."""
    WAITING = "Waiting"
    IN_PROGRESS = "In-Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# A patient holds at most one visit in these states per clinic
OPEN_STATUSES = (VisitStatus.WAITING, VisitStatus.IN_PROGRESS)


class Visit(Document):
    """
    One patient's presence at one clinic, from check-in to completion.
    
    Only the transition operations in VisitService and PrescriptionService
    change ``status``, always through a conditional update on the current
    status.
    """
    
    clinic_id: Indexed(str)
    patient_id: Indexed(str)
    
    status: VisitStatus = VisitStatus.WAITING
    
    check_in_time: datetime = Field(default_factory=utcnow)
    start_time: Optional[datetime] = None  # Set on entering In-Progress
    end_time: Optional[datetime] = None  # Set on Completed or Cancelled
    
    notes: Optional[str] = None
    
    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES
    
    class Settings:
        name = "visits"
        use_state_management = True
        indexes = [
            # Waiting room: FIFO by check-in time per clinic
            [("clinic_id", 1), ("status", 1), ("check_in_time", 1)],
        ]
    
    class Config:
        json_schema_extra = {
            "example": {
                "clinic_id": "clinic_123",
                "patient_id": "patient_456",
                "status": "Waiting",
                "check_in_time": "2024-01-15T10:00:00Z",
            }
        }


class OpenVisitSlot(Document):
    """
    Claim on the single open visit a patient may hold at a clinic.
    
    The ``_id`` is derived from (clinic, patient), so the store's primary key
    serializes concurrent check-ins: only one insert for a pair can succeed
    while the slot exists. The slot is removed once its visit is Completed or
    Cancelled.
    """
    
    id: str
    clinic_id: Indexed(str)
    patient_id: str
    visit_id: str
    created_at: datetime = Field(default_factory=utcnow)
    
    @staticmethod
    def key_for(clinic_id: str, patient_id: str) -> str:
        return f"{clinic_id}:{patient_id}"
    
    class Settings:
        name = "open_visit_slots"
