# Notification Fanout - Event payloads

from typing import Optional
from pydantic import BaseModel


PATIENT_CHECKED_IN = "patient-checked-in"
VISIT_UPDATED = "visit-updated"


class PatientCheckedInEvent(BaseModel):
    """Emitted to a clinic's channel when a patient joins its queue."""
    clinic_id: str
    visit_id: str


class VisitUpdatedEvent(BaseModel):
    """Emitted to a clinic's channel when a visit changes status."""
    clinic_id: str
    visit_id: str
    status: str
    prescription_id: Optional[str] = None


def clinic_room(clinic_id: str) -> str:
    """Socket.IO room name for a clinic's channel."""
    return f"clinic_{clinic_id}"
