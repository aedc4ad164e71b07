from enum import Enum
from pydantic import BaseModel


class Role(str, Enum):
    """Roles recognised by the workflow."""
    PATIENT = "patient"
    DOCTOR = "doctor"
    PHARMACY = "pharmacy"
    ADMIN = "admin"


class Principal(BaseModel):
    """The authenticated actor behind a request."""
    
    id: str
    role: Role
    
    @property
    def is_doctor(self) -> bool:
        return self.role == Role.DOCTOR
    
    @property
    def is_patient(self) -> bool:
        return self.role == Role.PATIENT
