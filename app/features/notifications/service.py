# Notification Fanout - Service

from pydantic import BaseModel
from app.features.notifications.schemas import (
    PATIENT_CHECKED_IN,
    VISIT_UPDATED,
    PatientCheckedInEvent,
    VisitUpdatedEvent,
    clinic_room,
)
from app.core.logging import logger


class NotificationService:
    """
    Publishes workflow events to subscribers of a clinic's channel.
    
    Delivery is best-effort. Subscribers that miss an event recover by
    re-reading the waiting room or the visit, so a failed emit is logged
    and dropped and never reaches the caller of the triggering operation.
    """
    
    # Reference to Socket.IO server (set during app startup)
    sio = None
    
    @classmethod
    def set_socketio(cls, sio):
        """Set the Socket.IO server instance."""
        cls.sio = sio
    
    @classmethod
    async def publish(cls, event: str, clinic_id: str, payload: BaseModel) -> bool:
        """
        Emit an event to everyone in the clinic's room.
        
        Returns:
            True if the event was handed to the transport, False otherwise
        """
        if cls.sio is None:
            logger.debug(f"No Socket.IO server attached, dropping {event} for clinic {clinic_id}")
            return False
        
        try:
            await cls.sio.emit(event, payload.model_dump(), room=clinic_room(clinic_id))
        except Exception as e:
            logger.warning(f"Failed to publish {event} for clinic {clinic_id}: {type(e).__name__}: {e}")
            return False
        
        logger.debug(f"Published {event} to clinic {clinic_id}")
        return True
    
    @classmethod
    async def patient_checked_in(cls, clinic_id: str, visit_id: str) -> bool:
        return await cls.publish(
            PATIENT_CHECKED_IN,
            clinic_id,
            PatientCheckedInEvent(clinic_id=clinic_id, visit_id=visit_id),
        )
    
    @classmethod
    async def visit_updated(cls, clinic_id: str, visit_id: str, status: str, prescription_id: str = None) -> bool:
        return await cls.publish(
            VISIT_UPDATED,
            clinic_id,
            VisitUpdatedEvent(
                clinic_id=clinic_id,
                visit_id=visit_id,
                status=status,
                prescription_id=prescription_id,
            ),
        )
