# Prescription State Machine - Schemas

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field


class MedicationSchema(BaseModel):
    """
    Medication line as submitted by the doctor.
    
    Fields are optional here so that missing values are reported through the
    same validation error as blank ones.
    """
    name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    instructions: Optional[str] = None


class IssuePrescriptionRequest(BaseModel):
    """Request schema for issuing a prescription at the end of a visit."""
    visit_id: str
    medications: List[MedicationSchema] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=2000)
    
    class Config:
        json_schema_extra = {
            "example": {
                "visit_id": "65a1f0c2e4b0a1b2c3d4e5f6",
                "medications": [
                    {
                        "name": "Amoxicillin",
                        "dosage": "500mg",
                        "frequency": "3x/day",
                        "duration": "7 days",
                        "instructions": "Take with food",
                    }
                ],
                "notes": "Review if fever persists",
            }
        }


class MedicationResponse(BaseModel):
    name: str
    dosage: str
    frequency: str
    duration: str
    instructions: Optional[str] = None


class PrescriptionResponse(BaseModel):
    """Response schema for prescription data."""
    id: str
    visit_id: str
    clinic_id: str
    patient_id: str
    doctor_id: str
    medications: List[MedicationResponse]
    notes: Optional[str] = None
    status: str
    redemption_secret: str
    issued_at: datetime
    dispensed_at: Optional[datetime] = None


class PrescriptionListResponse(BaseModel):
    """A patient's prescriptions, newest first."""
    prescriptions: List[PrescriptionResponse]
    total: int
