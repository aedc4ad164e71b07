# Clinic Registry - Service

from typing import List
from bson import ObjectId
from pymongo.errors import DuplicateKeyError
from app.features.clinic.models import Clinic
from app.features.visits.models import Visit, OpenVisitSlot
from app.features.clinic.schemas import ClinicResponse, ClinicPublicResponse
from app.features.auth.models import Principal
from app.features.auth.permissions import ensure_clinic_owner
from app.core.security import generate_clinic_token, mask_secret
from app.core.logging import logger
from app.shared.exceptions import NotFoundException, ValidationException


# Attempts at drawing a fresh access token before giving up
TOKEN_ATTEMPTS = 3


class ClinicService:
    """Service class for clinic registry operations."""
    
    @staticmethod
    def clinic_to_response(clinic: Clinic) -> ClinicResponse:
        """Convert Clinic document to the owner's response schema."""
        return ClinicResponse(
            id=str(clinic.id),
            name=clinic.name,
            location=clinic.location,
            access_token=clinic.access_token,
            is_active=clinic.is_active,
            created_at=clinic.created_at,
        )
    
    @staticmethod
    def clinic_to_public(clinic: Clinic) -> ClinicPublicResponse:
        """Convert Clinic document to its public display fields."""
        return ClinicPublicResponse(
            id=str(clinic.id),
            name=clinic.name,
            location=clinic.location,
        )
    
    @staticmethod
    async def create_clinic(owner: Principal, name: str, location: str) -> Clinic:
        """
        Register a new clinic owned by ``owner``.
        
        Raises:
            ValidationException: If name or location is blank
        """
        name = (name or "").strip()
        location = (location or "").strip()
        
        if not name:
            raise ValidationException("Clinic name is required")
        if not location:
            raise ValidationException("Location is required")
        
        for attempt in range(TOKEN_ATTEMPTS):
            clinic = Clinic(
                name=name,
                location=location,
                owner_id=owner.id,
                access_token=generate_clinic_token(),
            )
            try:
                await clinic.insert()
            except DuplicateKeyError:
                logger.warning(f"Access token collision on attempt {attempt + 1}, drawing a new one")
                continue
            
            logger.info(
                f"Created clinic {clinic.id} ({clinic.name}) for doctor {owner.id}, "
                f"token {mask_secret(clinic.access_token)}"
            )
            return clinic
        
        raise RuntimeError("Could not generate a unique clinic access token")
    
    @staticmethod
    async def list_clinics(owner: Principal) -> List[Clinic]:
        """Get the active clinics owned by a doctor, oldest first."""
        return await Clinic.find(
            Clinic.owner_id == owner.id,
            Clinic.is_active == True
        ).sort([("created_at", 1), ("_id", 1)]).to_list()
    
    @staticmethod
    async def get_clinic(clinic_id: str) -> Clinic:
        """
        Get a clinic by ID regardless of its active flag.
        
        Raises:
            NotFoundException: If the clinic does not exist
        """
        if not ObjectId.is_valid(clinic_id):
            raise NotFoundException("Clinic not found")
        
        clinic = await Clinic.get(ObjectId(clinic_id))
        if not clinic:
            raise NotFoundException("Clinic not found")
        
        return clinic
    
    @staticmethod
    async def get_active_clinic(clinic_id: str) -> Clinic:
        """
        Get a clinic that is currently accepting patients.
        
        Raises:
            NotFoundException: If the clinic does not exist or is inactive
        """
        clinic = await ClinicService.get_clinic(clinic_id)
        if not clinic.is_active:
            raise NotFoundException("Clinic not found")
        
        return clinic
    
    @staticmethod
    async def get_owned_clinic(owner: Principal, clinic_id: str) -> Clinic:
        """
        Get a clinic and check that ``owner`` runs it.
        
        Raises:
            NotFoundException: If the clinic does not exist
            ForbiddenException: If the clinic belongs to another doctor
        """
        clinic = await ClinicService.get_clinic(clinic_id)
        ensure_clinic_owner(owner, clinic)
        return clinic
    
    @staticmethod
    async def resolve_by_token(token: str) -> Clinic:
        """
        Resolve the clinic behind a scanned QR token.
        
        This lookup is reachable without authentication.
        
        Raises:
            NotFoundException: If no active clinic holds the token
        """
        clinic = await Clinic.find_one(
            Clinic.access_token == token,
            Clinic.is_active == True
        )
        
        if not clinic:
            logger.info(f"No active clinic for token {mask_secret(token)}")
            raise NotFoundException("Clinic not found")
        
        return clinic
    
    @staticmethod
    async def delete_clinic(owner: Principal, clinic_id: str) -> None:
        """
        Delete a clinic together with its visits.
        
        Prescriptions issued at the clinic are kept so pharmacies can still
        redeem them.
        
        Raises:
            NotFoundException: If the clinic does not exist
            ForbiddenException: If the clinic belongs to another doctor
        """
        clinic = await ClinicService.get_owned_clinic(owner, clinic_id)
        
        # Stop new check-ins before cascading
        if clinic.is_active:
            clinic.is_active = False
            await clinic.save()
        
        # Visits store the canonical lowercase id
        clinic_id = str(clinic.id)
        visits = await Visit.find(Visit.clinic_id == clinic_id).delete()
        await OpenVisitSlot.find(OpenVisitSlot.clinic_id == clinic_id).delete()
        await clinic.delete()
        
        deleted = visits.deleted_count if visits else 0
        logger.info(f"Deleted clinic {clinic_id} and {deleted} visits for doctor {owner.id}")
