# Prescription State Machine - Models

from enum import Enum
from typing import Optional, List
from datetime import datetime
from beanie import Document, Indexed
from pydantic import BaseModel, Field
from app.shared.models import utcnow


class PrescriptionStatus(str, Enum):
    """A prescription is dispensed exactly once and never returns to Active."""
    ACTIVE = "Active"
    DISPENSED = "Dispensed"


class Medication(BaseModel):
    """One line of a prescription."""
    name: str
    dosage: str
    frequency: str
    duration: str
    instructions: Optional[str] = None


class Prescription(Document):
    """
    Medications issued at the close of a visit.
    
    ``redemption_secret`` is the bearer credential a pharmacy scans; whoever
    holds it can look the prescription up and redeem it once.
    """
    
    # One prescription per visit
    visit_id: Indexed(str, unique=True)
    clinic_id: Indexed(str)
    patient_id: Indexed(str)
    doctor_id: Indexed(str)
    
    medications: List[Medication]
    notes: Optional[str] = None
    
    status: PrescriptionStatus = PrescriptionStatus.ACTIVE
    redemption_secret: Indexed(str, unique=True)
    
    issued_at: datetime = Field(default_factory=utcnow)
    dispensed_at: Optional[datetime] = None
    dispensed_by: Optional[str] = None  # Pharmacy principal that redeemed it
    
    class Settings:
        name = "prescriptions"
        use_state_management = True
        indexes = [
            # Patient health locker, newest first
            [("patient_id", 1), ("issued_at", -1)],
        ]
    
    class Config:
        json_schema_extra = {
            "example": {
                "visit_id": "visit_123",
                "clinic_id": "clinic_456",
                "patient_id": "patient_789",
                "doctor_id": "doctor_012",
                "medications": [
                    {"name": "Amoxicillin", "dosage": "500mg", "frequency": "3x/day", "duration": "7 days"}
                ],
                "status": "Active",
            }
        }
