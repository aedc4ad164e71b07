# Clinic Registry - Router

from fastapi import APIRouter, Depends, status
from app.features.clinic.schemas import (
    CreateClinicRequest,
    ClinicResponse,
    ClinicPublicResponse,
    ClinicListResponse,
)
from app.features.clinic.service import ClinicService
from app.features.auth.dependencies import require_doctor
from app.features.auth.models import Principal
from app.shared.schemas import MessageResponse

router = APIRouter(prefix="/clinics", tags=["Clinics"])


@router.post("", response_model=ClinicResponse, status_code=status.HTTP_201_CREATED)
async def create_clinic(
    request: CreateClinicRequest,
    current: Principal = Depends(require_doctor)
):
    """
    Register a new clinic for the current doctor.
    
    The response carries the clinic's access token, which the doctor prints
    as a QR code for patients to scan.
    """
    clinic = await ClinicService.create_clinic(current, request.name, request.location)
    return ClinicService.clinic_to_response(clinic)


@router.get("/my-clinics", response_model=ClinicListResponse)
async def list_my_clinics(current: Principal = Depends(require_doctor)):
    """List the current doctor's active clinics."""
    clinics = await ClinicService.list_clinics(current)
    
    return ClinicListResponse(
        clinics=[ClinicService.clinic_to_response(c) for c in clinics],
        total=len(clinics)
    )


@router.get("/qr/{token}", response_model=ClinicPublicResponse)
async def get_clinic_by_token(token: str):
    """
    Resolve a scanned clinic QR code (public endpoint, no authentication required).
    
    - **token**: Access token encoded in the clinic's QR code
    """
    clinic = await ClinicService.resolve_by_token(token)
    return ClinicService.clinic_to_public(clinic)


@router.delete("/{clinic_id}", response_model=MessageResponse)
async def delete_clinic(
    clinic_id: str,
    current: Principal = Depends(require_doctor)
):
    """
    Delete one of the current doctor's clinics and its visits.
    
    - **clinic_id**: Clinic ID
    """
    await ClinicService.delete_clinic(current, clinic_id)
    return MessageResponse(message="Clinic deleted successfully")
