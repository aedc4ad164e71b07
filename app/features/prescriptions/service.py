# Prescription State Machine - Service

from typing import Optional, List, Sequence, Union
from beanie import UpdateResponse
from beanie.operators import Set
from pymongo.errors import DuplicateKeyError
from app.config import settings
from app.features.prescriptions.models import Prescription, PrescriptionStatus, Medication
from app.features.prescriptions.schemas import MedicationSchema, MedicationResponse, PrescriptionResponse
from app.features.visits.models import Visit, VisitStatus
from app.features.visits.service import VisitService
from app.features.auth.models import Principal
from app.features.auth.permissions import ensure_clinic_owner
from app.features.notifications.service import NotificationService
from app.core.security import generate_redemption_secret, mask_secret
from app.core.logging import logger
from app.shared.exceptions import (
    AlreadyDispensedException,
    ConflictException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from app.shared.models import utcnow


REQUIRED_MEDICATION_FIELDS = ("name", "dosage", "frequency", "duration")

# Attempts at drawing a redemption secret before giving up
SECRET_ATTEMPTS = 3


class PrescriptionService:
    """Service class for issuing and redeeming prescriptions."""
    
    @staticmethod
    def prescription_to_response(prescription: Prescription) -> PrescriptionResponse:
        """Convert Prescription document to response schema."""
        return PrescriptionResponse(
            id=str(prescription.id),
            visit_id=prescription.visit_id,
            clinic_id=prescription.clinic_id,
            patient_id=prescription.patient_id,
            doctor_id=prescription.doctor_id,
            medications=[MedicationResponse(**med.model_dump()) for med in prescription.medications],
            notes=prescription.notes,
            status=prescription.status.value,
            redemption_secret=prescription.redemption_secret,
            issued_at=prescription.issued_at,
            dispensed_at=prescription.dispensed_at,
        )
    
    @staticmethod
    def validate_medications(
        medications: Optional[Sequence[Union[MedicationSchema, Medication, dict]]]
    ) -> List[Medication]:
        """
        Check a submitted medication list and normalise it.
        
        Raises:
            ValidationException: If the list is empty or a line lacks a required field
        """
        if not medications:
            raise ValidationException("At least one medication is required")
        
        result = []
        for index, item in enumerate(medications):
            data = item if isinstance(item, dict) else item.model_dump()
            
            for field in REQUIRED_MEDICATION_FIELDS:
                value = data.get(field)
                if not isinstance(value, str) or not value.strip():
                    raise ValidationException(
                        f"Medication {index + 1}: {field} is required"
                    )
            
            instructions = data.get("instructions")
            result.append(Medication(
                name=data["name"].strip(),
                dosage=data["dosage"].strip(),
                frequency=data["frequency"].strip(),
                duration=data["duration"].strip(),
                instructions=instructions.strip() if isinstance(instructions, str) and instructions.strip() else None,
            ))
        
        return result
    
    @staticmethod
    def issuable_statuses() -> List[VisitStatus]:
        """Visit states from which a prescription may close the visit."""
        if settings.REQUIRE_IN_PROGRESS_FOR_PRESCRIPTION:
            return [VisitStatus.IN_PROGRESS]
        return [VisitStatus.WAITING, VisitStatus.IN_PROGRESS]
    
    @staticmethod
    async def _discard(prescription: Prescription) -> None:
        """Undo an insert whose visit could not be completed."""
        await Prescription.find(Prescription.id == prescription.id).delete()
    
    @staticmethod
    async def _insert_for_visit(prescription: Prescription) -> Prescription:
        """
        Insert a new prescription, drawing a fresh secret on the (negligible)
        chance of a collision.
        
        Raises:
            ConflictException: If the visit already has a prescription
        """
        for _ in range(SECRET_ATTEMPTS):
            try:
                await prescription.insert()
                return prescription
            except DuplicateKeyError:
                existing = await Prescription.find_one(Prescription.visit_id == prescription.visit_id)
                if existing is not None:
                    logger.warning(f"Visit {prescription.visit_id} already has prescription {existing.id}")
                    raise ConflictException(
                        "Prescription already issued for this visit",
                        visit_id=prescription.visit_id,
                    )
                prescription.redemption_secret = generate_redemption_secret(prescription.visit_id)
        
        raise RuntimeError("Could not generate a unique redemption secret")
    
    @staticmethod
    async def issue_prescription(
        doctor: Principal,
        visit_id: str,
        medications: Sequence[Union[MedicationSchema, Medication, dict]],
        notes: Optional[str] = None
    ) -> Prescription:
        """
        Issue a prescription and complete the visit it closes.
        
        The prescription is written first; the visit then moves to Completed
        through a conditional update. If that update loses (the visit was
        completed or cancelled meanwhile) or raises, the prescription is
        removed again, so either both writes stand or neither does.
        
        Raises:
            NotFoundException: If the visit does not exist
            ForbiddenException: If the doctor does not own the visit's clinic
            ValidationException: If the medication list is invalid
            ConflictException: If the visit is already Completed
            InvalidStateException: If the visit cannot be completed from its current status
        """
        visit = await VisitService.get_visit_document(visit_id)
        clinic = await VisitService.get_visit_clinic(visit)
        ensure_clinic_owner(doctor, clinic, "Access denied: You do not own this clinic")
        
        lines = PrescriptionService.validate_medications(medications)
        
        if visit.status == VisitStatus.COMPLETED:
            logger.warning(f"Refused second prescription for visit {visit_id}")
            raise ConflictException("Prescription already issued for this visit", visit_id=str(visit.id))
        
        allowed = PrescriptionService.issuable_statuses()
        if visit.status not in allowed:
            raise InvalidStateException(
                f"Cannot issue a prescription for a visit in status {visit.status.value}",
                current_status=visit.status.value,
            )
        
        prescription = Prescription(
            visit_id=str(visit.id),
            clinic_id=visit.clinic_id,
            patient_id=visit.patient_id,
            doctor_id=doctor.id,
            medications=lines,
            notes=notes.strip() if notes and notes.strip() else None,
            redemption_secret=generate_redemption_secret(str(visit.id)),
            issued_at=utcnow(),
        )
        await PrescriptionService._insert_for_visit(prescription)
        
        try:
            completed = await VisitService.transition(
                visit.id,
                allowed,
                VisitStatus.COMPLETED,
                end_time=utcnow(),
            )
        except BaseException:
            await PrescriptionService._discard(prescription)
            logger.error(f"Rolled back prescription {prescription.id}: completing visit {visit_id} failed")
            raise
        
        if completed is None:
            await PrescriptionService._discard(prescription)
            current = await Visit.get(visit.id)
            logger.warning(f"Rolled back prescription {prescription.id}: visit {visit_id} changed during issuance")

            if current is None:
                raise NotFoundException("Visit not found")
            if current.status == VisitStatus.COMPLETED:
                raise ConflictException("Prescription already issued for this visit", visit_id=str(visit.id))
            raise InvalidStateException(
                f"Cannot issue a prescription for a visit in status {current.status.value}",
                current_status=current.status.value,
            )
        
        await VisitService.release_slot(completed)
        
        logger.info(
            f"Doctor {doctor.id} issued prescription {prescription.id} for visit {visit_id} "
            f"({len(lines)} medications, secret {mask_secret(prescription.redemption_secret)})"
        )
        
        await NotificationService.visit_updated(
            completed.clinic_id,
            str(completed.id),
            completed.status.value,
            prescription_id=str(prescription.id),
        )
        
        return prescription
    
    @staticmethod
    async def get_patient_prescriptions(patient: Principal) -> List[Prescription]:
        """Get all prescriptions of a patient, newest first."""
        return await Prescription.find(
            Prescription.patient_id == patient.id
        ).sort([("issued_at", -1), ("_id", -1)]).to_list()
    
    @staticmethod
    async def lookup_by_secret(secret: str) -> Prescription:
        """
        Look up a prescription by the secret a pharmacy scanned.
        
        No authentication is required; the secret is the credential.
        
        Raises:
            NotFoundException: If no prescription holds the secret
            ConflictException: If the prescription was already dispensed
        """
        prescription = await Prescription.find_one(Prescription.redemption_secret == secret)
        
        if not prescription:
            logger.info(f"No prescription for secret {mask_secret(secret)}")
            raise NotFoundException("Prescription not found or invalid QR")
        
        if prescription.status == PrescriptionStatus.DISPENSED:
            raise ConflictException(
                "Prescription has already been dispensed",
                dispensed_at=prescription.dispensed_at,
            )
        
        return prescription
    
    @staticmethod
    async def redeem(secret: str, pharmacy: Optional[Principal] = None) -> Prescription:
        """
        Mark a prescription as dispensed.
        
        Of any number of concurrent calls with the same secret exactly one
        succeeds; the rest see AlreadyDispensedException carrying the winner's
        timestamp.
        
        Raises:
            NotFoundException: If no prescription holds the secret
            AlreadyDispensedException: If the prescription was already dispensed
        """
        changes = {
            "status": PrescriptionStatus.DISPENSED.value,
            "dispensed_at": utcnow(),
            "dispensed_by": pharmacy.id if pharmacy else None,
        }
        
        dispensed = await Prescription.find_one(
            Prescription.redemption_secret == secret,
            Prescription.status == PrescriptionStatus.ACTIVE,
        ).update(
            Set(changes),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        
        if dispensed is None:
            existing = await Prescription.find_one(Prescription.redemption_secret == secret)
            if existing is None:
                logger.info(f"Redemption attempted with unknown secret {mask_secret(secret)}")
                raise NotFoundException("Prescription not found or invalid QR")
            
            logger.warning(
                f"Refused redemption of prescription {existing.id}: dispensed at {existing.dispensed_at}"
            )
            raise AlreadyDispensedException(existing.dispensed_at)
        
        logger.info(
            f"Prescription {dispensed.id} dispensed"
            + (f" by pharmacy {pharmacy.id}" if pharmacy else "")
        )
        
        return dispensed
