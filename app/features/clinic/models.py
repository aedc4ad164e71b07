# Clinic Registry - Models

from datetime import datetime
from beanie import Document, Indexed
from pydantic import Field
from app.core.security import generate_clinic_token
from app.shared.models import utcnow


class Clinic(Document):
    """
    A clinic operated by one doctor.
    
    Patients reach it by scanning the QR code that encodes ``access_token``;
    the token is a bearer secret and is only shown to the owning doctor.
    """
    
    name: str
    location: str
    
    # Doctor who created and exclusively owns this clinic
    owner_id: Indexed(str)
    
    # Secret encoded in the check-in QR code
    access_token: Indexed(str, unique=True) = Field(default_factory=generate_clinic_token)
    
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    
    class Settings:
        name = "clinics"
        use_state_management = True
    
    class Config:
        json_schema_extra = {
            "example": {
                "name": "Riverside Family Practice",
                "location": "12 River Rd, Springfield",
                "owner_id": "doctor_123",
                "is_active": True,
            }
        }
