"""MongoDB database connection manager."""

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie
from typing import Optional

from app.config import settings
from app.core.logging import logger


def document_models() -> list:
    """Beanie document models registered with the database."""
    from app.features.clinic.models import Clinic
    from app.features.visits.models import Visit, OpenVisitSlot
    from app.features.prescriptions.models import Prescription
    
    return [Clinic, Visit, OpenVisitSlot, Prescription]


class Database:
    """MongoDB database connection manager."""
    
    client: Optional[AsyncIOMotorClient] = None
    
    @classmethod
    async def connect_db(cls, client: Optional[AsyncIOMotorClient] = None):
        """
        Connect to MongoDB and initialize Beanie.
        
        Args:
            client: Pre-built client to use instead of connecting to MONGODB_URL
        """
        cls.client = client or AsyncIOMotorClient(settings.MONGODB_URL)
        
        # Creates the unique indexes the workflow's guarantees rely on
        await init_beanie(
            database=cls.client[settings.DATABASE_NAME],
            document_models=document_models(),
        )
        
        logger.info(f"Connected to MongoDB database: {settings.DATABASE_NAME}")
    
    @classmethod
    async def close_db(cls):
        """Close MongoDB connection."""
        if cls.client:
            cls.client.close()
            cls.client = None
            logger.info("Closed MongoDB connection")
