# Visit State Machine - Schemas

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field
from app.features.clinic.schemas import ClinicPublicResponse
from app.features.prescriptions.schemas import PrescriptionResponse


class CheckInRequest(BaseModel):
    """Request schema for checking into a clinic."""
    clinic_id: str = Field(..., description="ID of the clinic resolved from its QR code")
    notes: Optional[str] = Field(None, max_length=1000, description="Reason for the visit")
    
    class Config:
        json_schema_extra = {
            "example": {
                "clinic_id": "65a1f0c2e4b0a1b2c3d4e5f6",
                "notes": "Sore throat for three days",
            }
        }


class VisitResponse(BaseModel):
    """Response schema for visit data."""
    id: str
    clinic_id: str
    patient_id: str
    status: str
    check_in_time: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: Optional[str] = None


class WaitingPatient(BaseModel):
    """One entry of a clinic's waiting room."""
    visit_id: str
    patient_id: str
    check_in_time: datetime
    wait_time: int = Field(..., description="Whole minutes since check-in")
    notes: Optional[str] = None


class WaitingRoomResponse(BaseModel):
    """Waiting visits of a clinic in check-in order."""
    clinic: ClinicPublicResponse
    waiting_patients: List[WaitingPatient]
    total: int


class VisitDetailResponse(BaseModel):
    """A visit together with the prescription that closed it."""
    visit: VisitResponse
    prescription: Optional[PrescriptionResponse] = None
