# Visit State Machine - Service

from typing import Optional, List, Tuple, Sequence
from datetime import datetime, timedelta
from bson import ObjectId
from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import In, Set
from pymongo.errors import DuplicateKeyError
from app.features.visits.models import Visit, VisitStatus, OpenVisitSlot
from app.features.visits.schemas import VisitResponse, WaitingPatient
from app.features.clinic.models import Clinic
from app.features.clinic.service import ClinicService
from app.features.prescriptions.models import Prescription
from app.features.auth.models import Principal
from app.features.auth.permissions import ensure_clinic_owner, ensure_visit_reader, owns_clinic
from app.features.notifications.service import NotificationService
from app.core.logging import logger
from app.shared.exceptions import (
    ConflictException,
    InvalidStateException,
    NotFoundException,
)
from app.shared.models import utcnow


# How many times a check-in retries after reclaiming a stale slot
SLOT_ATTEMPTS = 3

# A slot whose visit document is missing is only considered abandoned after
# this long; a younger one may belong to a check-in still in flight.
SLOT_GRACE_PERIOD = timedelta(seconds=60)


class VisitService:
    """Service class for the visit lifecycle."""
    
    @staticmethod
    def visit_to_response(visit: Visit) -> VisitResponse:
        """Convert Visit document to response schema."""
        return VisitResponse(
            id=str(visit.id),
            clinic_id=visit.clinic_id,
            patient_id=visit.patient_id,
            status=visit.status.value,
            check_in_time=visit.check_in_time,
            start_time=visit.start_time,
            end_time=visit.end_time,
            notes=visit.notes,
        )
    
    @staticmethod
    def wait_minutes(check_in_time: datetime, now: datetime) -> int:
        """Whole minutes elapsed since check-in, floored."""
        seconds = (now - check_in_time).total_seconds()
        return max(0, int(seconds // 60))
    
    @staticmethod
    async def get_visit_document(visit_id: str) -> Visit:
        """
        Get a visit by ID.
        
        Raises:
            NotFoundException: If the visit does not exist
        """
        if not ObjectId.is_valid(visit_id):
            raise NotFoundException("Visit not found")
        
        visit = await Visit.get(PydanticObjectId(visit_id))
        if not visit:
            raise NotFoundException("Visit not found")
        
        return visit
    
    @staticmethod
    async def get_visit_clinic(visit: Visit) -> Clinic:
        """Get the clinic a visit belongs to."""
        return await ClinicService.get_clinic(visit.clinic_id)
    
    @staticmethod
    async def find_visit_clinic(visit: Visit) -> Optional[Clinic]:
        """Get the clinic a visit belongs to, or None if it is gone."""
        if not ObjectId.is_valid(visit.clinic_id):
            return None
        return await Clinic.get(PydanticObjectId(visit.clinic_id))
    
    @staticmethod
    async def transition(
        visit_id: PydanticObjectId,
        from_statuses: Sequence[VisitStatus],
        to_status: VisitStatus,
        **fields
    ) -> Optional[Visit]:
        """
        Move a visit to ``to_status`` if, and only if, it is currently in one
        of ``from_statuses``.
        
        The check and the write are a single conditional update, so at most
        one of several concurrent callers wins.
        
        Returns:
            The updated visit, or None if its status did not match
        """
        changes = {"status": to_status.value}
        changes.update(fields)
        
        return await Visit.find_one(
            Visit.id == visit_id,
            In(Visit.status, [status.value for status in from_statuses]),
        ).update(
            Set(changes),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
    
    @staticmethod
    async def release_slot(visit: Visit) -> None:
        """Free the patient's open-visit slot once ``visit`` has closed."""
        await OpenVisitSlot.find(
            OpenVisitSlot.id == OpenVisitSlot.key_for(visit.clinic_id, visit.patient_id),
            OpenVisitSlot.visit_id == str(visit.id),
        ).delete()
    
    @staticmethod
    async def _slot_is_stale(slot: OpenVisitSlot, now: datetime) -> bool:
        """True if the slot no longer guards an open visit."""
        visit = None
        if ObjectId.is_valid(slot.visit_id):
            visit = await Visit.get(PydanticObjectId(slot.visit_id))
        
        if visit is None:
            return slot.created_at < now - SLOT_GRACE_PERIOD
        
        return not visit.is_open
    
    @staticmethod
    async def _claim_slot(clinic_id: str, patient_id: str, visit_id: str) -> OpenVisitSlot:
        """
        Claim the (clinic, patient) open-visit slot for ``visit_id``.
        
        Raises:
            ConflictException: If the patient already has an open visit here
        """
        key = OpenVisitSlot.key_for(clinic_id, patient_id)
        existing = None
        
        for _ in range(SLOT_ATTEMPTS):
            slot = OpenVisitSlot(
                id=key,
                clinic_id=clinic_id,
                patient_id=patient_id,
                visit_id=visit_id,
            )
            try:
                await slot.insert()
                return slot
            except DuplicateKeyError:
                existing = await OpenVisitSlot.get(key)
            
            if existing is None:
                # Released between our insert and our read
                continue
            
            if await VisitService._slot_is_stale(existing, utcnow()):
                logger.warning(f"Reclaiming stale visit slot {key} held by visit {existing.visit_id}")
                await OpenVisitSlot.find(
                    OpenVisitSlot.id == key,
                    OpenVisitSlot.visit_id == existing.visit_id,
                ).delete()
                continue
            
            break
        
        logger.warning(f"Patient {patient_id} already has an open visit at clinic {clinic_id}")
        raise ConflictException(
            "You already have an active visit in this clinic",
            visit_id=existing.visit_id if existing else None,
        )
    
    @staticmethod
    async def check_in(patient: Principal, clinic_id: str, notes: Optional[str] = None) -> Visit:
        """
        Check a patient into a clinic's waiting room.
        
        Args:
            patient: Patient checking in
            clinic_id: Clinic resolved from the scanned QR token
            notes: Optional reason for the visit
            
        Returns:
            The new visit in Waiting status
            
        Raises:
            NotFoundException: If the clinic is absent or inactive
            ConflictException: If the patient already has an open visit here
        """
        clinic = await ClinicService.get_active_clinic(clinic_id)
        clinic_id = str(clinic.id)
        
        visit = Visit(
            id=PydanticObjectId(),
            clinic_id=clinic_id,
            patient_id=patient.id,
            status=VisitStatus.WAITING,
            check_in_time=utcnow(),
            notes=notes,
        )
        
        await VisitService._claim_slot(clinic_id, patient.id, str(visit.id))
        
        try:
            await visit.insert()
        except Exception:
            await VisitService.release_slot(visit)
            raise
        
        logger.info(f"Patient {patient.id} checked into clinic {clinic_id} (visit {visit.id})")
        
        await NotificationService.patient_checked_in(clinic_id, str(visit.id))
        
        return visit
    
    @staticmethod
    async def list_waiting_room(
        doctor: Principal,
        clinic_id: str,
        now: Optional[datetime] = None
    ) -> Tuple[Clinic, List[WaitingPatient]]:
        """
        Get the waiting visits of a clinic, first come first served.
        
        Raises:
            NotFoundException: If the clinic does not exist
            ForbiddenException: If the doctor does not own the clinic
        """
        clinic = await ClinicService.get_clinic(clinic_id)
        ensure_clinic_owner(doctor, clinic, "Access denied")
        
        visits = await Visit.find(
            Visit.clinic_id == str(clinic.id),
            Visit.status == VisitStatus.WAITING,
        ).sort([("check_in_time", 1), ("_id", 1)]).to_list()
        
        now = now or utcnow()
        entries = [
            WaitingPatient(
                visit_id=str(visit.id),
                patient_id=visit.patient_id,
                check_in_time=visit.check_in_time,
                wait_time=VisitService.wait_minutes(visit.check_in_time, now),
                notes=visit.notes,
            )
            for visit in visits
        ]
        
        return clinic, entries
    
    @staticmethod
    async def start_visit(doctor: Principal, visit_id: str) -> Visit:
        """
        Start the consultation for a waiting visit.
        
        Raises:
            NotFoundException: If the visit does not exist
            ForbiddenException: If the doctor does not own the visit's clinic
            InvalidStateException: If the visit is not Waiting
        """
        visit = await VisitService.get_visit_document(visit_id)
        clinic = await VisitService.get_visit_clinic(visit)
        ensure_clinic_owner(doctor, clinic, "Access denied")
        
        started = None
        if visit.status == VisitStatus.WAITING:
            started = await VisitService.transition(
                visit.id,
                [VisitStatus.WAITING],
                VisitStatus.IN_PROGRESS,
                start_time=utcnow(),
            )
        
        if started is None:
            current = await Visit.get(visit.id)
            current_status = current.status.value if current else visit.status.value
            logger.warning(f"Refused to start visit {visit_id} in status {current_status}")
            raise InvalidStateException("Visit is not in waiting status", current_status=current_status)
        
        logger.info(f"Doctor {doctor.id} started visit {visit_id}")
        
        await NotificationService.visit_updated(started.clinic_id, str(started.id), started.status.value)
        
        return started
    
    @staticmethod
    async def cancel_visit(requester: Principal, visit_id: str) -> Visit:
        """
        Cancel a visit that has not started yet.
        
        Either the visit's patient or the doctor owning the clinic may cancel.
        
        Raises:
            NotFoundException: If the visit does not exist
            ForbiddenException: If the requester is neither party
            InvalidStateException: If the visit is not Waiting
        """
        visit = await VisitService.get_visit_document(visit_id)
        clinic = await VisitService.find_visit_clinic(visit)
        ensure_visit_reader(requester, visit, clinic)
        
        cancelled = await VisitService.transition(
            visit.id,
            [VisitStatus.WAITING],
            VisitStatus.CANCELLED,
            end_time=utcnow(),
        )
        
        if cancelled is None:
            current = await Visit.get(visit.id)
            current_status = current.status.value if current else visit.status.value
            logger.warning(f"Refused to cancel visit {visit_id} in status {current_status}")
            raise InvalidStateException("Only waiting visits can be cancelled", current_status=current_status)
        
        await VisitService.release_slot(cancelled)
        
        logger.info(f"Visit {visit_id} cancelled by {requester.role.value} {requester.id}")
        
        await NotificationService.visit_updated(cancelled.clinic_id, str(cancelled.id), cancelled.status.value)
        
        return cancelled
    
    @staticmethod
    async def get_visit(requester: Principal, visit_id: str) -> Tuple[Visit, Optional[Prescription]]:
        """
        Get a visit together with the prescription it produced, if any.
        
        Raises:
            NotFoundException: If the visit does not exist
            ForbiddenException: If the requester is neither the patient nor the owning doctor
        """
        visit = await VisitService.get_visit_document(visit_id)
        clinic = await VisitService.find_visit_clinic(visit)
        ensure_visit_reader(requester, visit, clinic)
        
        # A prescription is only bound once its issuance has completed the visit
        prescription = None
        if visit.status == VisitStatus.COMPLETED:
            prescription = await Prescription.find(
                Prescription.visit_id == str(visit.id)
            ).sort([("issued_at", -1)]).first_or_none()
        
        return visit, prescription
    
    @staticmethod
    async def has_visit_at_clinic(patient_id: str, clinic_id: str) -> bool:
        """True if the patient has ever checked into the clinic."""
        visit = await Visit.find_one(
            Visit.clinic_id == clinic_id,
            Visit.patient_id == patient_id,
        )
        return visit is not None
    
    @staticmethod
    async def can_subscribe(principal: Principal, clinic_id: str) -> bool:
        """Whether a principal may follow a clinic's notification channel."""
        if not ObjectId.is_valid(clinic_id):
            return False
        
        clinic = await Clinic.get(PydanticObjectId(clinic_id))
        if clinic is None:
            return False
        
        if owns_clinic(principal, clinic):
            return True
        
        if principal.is_patient:
            return await VisitService.has_visit_at_clinic(principal.id, str(clinic.id))
        
        return False
