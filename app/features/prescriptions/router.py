# Prescription State Machine - Router

from fastapi import APIRouter, Depends, status
from app.features.prescriptions.schemas import (
    IssuePrescriptionRequest,
    PrescriptionResponse,
    PrescriptionListResponse,
)
from app.features.prescriptions.service import PrescriptionService
from app.features.auth.dependencies import require_doctor, require_patient, require_pharmacy
from app.features.auth.models import Principal


router = APIRouter(prefix="/prescriptions", tags=["Prescriptions"])


# ==================== Doctor Endpoints ====================

@router.post("/issue", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
async def issue_prescription(
    request: IssuePrescriptionRequest,
    current: Principal = Depends(require_doctor)
):
    """
    Issue a prescription and complete the visit.
    
    - **visit_id**: Visit being closed
    - **medications**: At least one line with name, dosage, frequency and duration
    - **notes**: Optional notes for the patient and pharmacy
    """
    prescription = await PrescriptionService.issue_prescription(
        doctor=current,
        visit_id=request.visit_id,
        medications=request.medications,
        notes=request.notes
    )
    return PrescriptionService.prescription_to_response(prescription)


# ==================== Patient Endpoints ====================

@router.get("/my-prescriptions", response_model=PrescriptionListResponse)
async def get_my_prescriptions(current: Principal = Depends(require_patient)):
    """Get the current patient's prescriptions, newest first."""
    prescriptions = await PrescriptionService.get_patient_prescriptions(current)
    
    return PrescriptionListResponse(
        prescriptions=[PrescriptionService.prescription_to_response(p) for p in prescriptions],
        total=len(prescriptions)
    )


# ==================== Pharmacy Endpoints ====================

@router.get("/hash/{secret}", response_model=PrescriptionResponse)
async def get_prescription_by_secret(secret: str):
    """
    Look up a scanned prescription (public endpoint, the secret is the credential).
    
    Fails with 409 and `dispensed_at` if the prescription was already dispensed.
    """
    prescription = await PrescriptionService.lookup_by_secret(secret)
    return PrescriptionService.prescription_to_response(prescription)


@router.post("/redeem/{secret}", response_model=PrescriptionResponse)
async def redeem_prescription(
    secret: str,
    current: Principal = Depends(require_pharmacy)
):
    """
    Dispense a prescription. Succeeds at most once per prescription.
    
    Fails with 409 `already_dispensed` and the original `dispensed_at` otherwise.
    """
    prescription = await PrescriptionService.redeem(secret, pharmacy=current)
    return PrescriptionService.prescription_to_response(prescription)
