# Clinic Registry - Schemas

from typing import List
from datetime import datetime
from pydantic import BaseModel, Field


class CreateClinicRequest(BaseModel):
    """Request schema for registering a clinic."""
    name: str = Field(..., max_length=100)
    location: str = Field(..., max_length=500)
    
    class Config:
        json_schema_extra = {
            "example": {
                "name": "Riverside Family Practice",
                "location": "12 River Rd, Springfield",
            }
        }


class ClinicResponse(BaseModel):
    """Owner view of a clinic, including its check-in token."""
    id: str
    name: str
    location: str
    access_token: str
    is_active: bool
    created_at: datetime


class ClinicPublicResponse(BaseModel):
    """Public view of a clinic returned when a patient scans its QR code."""
    id: str
    name: str
    location: str


class ClinicListResponse(BaseModel):
    """Response schema for a doctor's clinics."""
    clinics: List[ClinicResponse]
    total: int
