# Visit State Machine - Router

from fastapi import APIRouter, Depends, status
from app.features.visits.schemas import (
    CheckInRequest,
    VisitResponse,
    VisitDetailResponse,
    WaitingRoomResponse,
)
from app.features.visits.service import VisitService
from app.features.clinic.service import ClinicService
from app.features.prescriptions.service import PrescriptionService
from app.features.auth.dependencies import get_current_principal, require_doctor, require_patient, require_role
from app.features.auth.models import Principal, Role


router = APIRouter(prefix="/visits", tags=["Visits"])


# ==================== Patient Endpoints ====================

@router.post("/check-in", response_model=VisitResponse, status_code=status.HTTP_201_CREATED)
async def check_in(
    request: CheckInRequest,
    current: Principal = Depends(require_patient)
):
    """
    Check into a clinic after scanning its QR code.
    
    - **clinic_id**: Clinic ID returned by the QR lookup
    - **notes**: Optional reason for the visit
    
    Fails with 409 and the existing `visit_id` if the patient already has an
    open visit at this clinic.
    """
    visit = await VisitService.check_in(current, request.clinic_id, request.notes)
    return VisitService.visit_to_response(visit)


# ==================== Doctor Endpoints ====================

@router.get("/waiting-room/{clinic_id}", response_model=WaitingRoomResponse)
async def get_waiting_room(
    clinic_id: str,
    current: Principal = Depends(require_doctor)
):
    """
    Get the live waiting room of one of the current doctor's clinics.
    
    Entries are in check-in order with their wait time in whole minutes.
    """
    clinic, entries = await VisitService.list_waiting_room(current, clinic_id)
    
    return WaitingRoomResponse(
        clinic=ClinicService.clinic_to_public(clinic),
        waiting_patients=entries,
        total=len(entries)
    )


@router.post("/start/{visit_id}", response_model=VisitResponse)
async def start_visit(
    visit_id: str,
    current: Principal = Depends(require_doctor)
):
    """
    Start the consultation for a waiting patient.
    
    - **visit_id**: Visit ID
    """
    visit = await VisitService.start_visit(current, visit_id)
    return VisitService.visit_to_response(visit)


# ==================== Shared Endpoints ====================

@router.post("/cancel/{visit_id}", response_model=VisitResponse)
async def cancel_visit(
    visit_id: str,
    current: Principal = Depends(require_role(Role.PATIENT, Role.DOCTOR))
):
    """
    Cancel a visit that is still waiting.
    
    Allowed for the visit's patient and the doctor who owns the clinic.
    """
    visit = await VisitService.cancel_visit(current, visit_id)
    return VisitService.visit_to_response(visit)


@router.get("/{visit_id}", response_model=VisitDetailResponse)
async def get_visit(
    visit_id: str,
    current: Principal = Depends(get_current_principal)
):
    """
    Get a visit and its prescription, if one has been issued.
    
    Readable by the visit's patient and the doctor who owns the clinic.
    """
    visit, prescription = await VisitService.get_visit(current, visit_id)
    
    return VisitDetailResponse(
        visit=VisitService.visit_to_response(visit),
        prescription=PrescriptionService.prescription_to_response(prescription) if prescription else None
    )
