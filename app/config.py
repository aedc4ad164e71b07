"""Application configuration settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Database
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "clinic_flow"
    
    # Authentication (tokens are issued by the identity provider)
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    
    # Application
    APP_NAME: str = "Clinic Flow API"
    API_V1_PREFIX: str = "/api/v1"
    PORT: int = 8000
    
    # CORS - frontends for doctor dashboard, patient app and pharmacy portal
    BACKEND_CORS_ORIGINS: str = '["http://localhost:3000", "http://localhost:5173"]'
    
    # Workflow
    REQUIRE_IN_PROGRESS_FOR_PRESCRIPTION: bool = False
    
    # Number of characters of a bearer secret allowed in log lines
    SECRET_LOG_PREFIX_LENGTH: int = 6
    
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    
    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )
    
    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from JSON string."""
        try:
            return json.loads(self.BACKEND_CORS_ORIGINS)
        except json.JSONDecodeError:
            return ["http://localhost:3000"]


settings = Settings()
