from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ClinicFlowException(HTTPException):
    """
    Base class for expected, caller-recoverable outcomes.
    
    The response detail is always ``{"error": <code>, "message": <text>, ...}``
    so clients can branch on ``error`` without parsing messages.
    """
    
    code: str = "error"
    
    def __init__(
        self,
        status_code: int,
        detail: str,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = detail
        self.extra = extra or {}
        payload = {"error": self.code, "message": detail}
        payload.update(self.extra)
        super().__init__(status_code=status_code, detail=payload, headers=headers)


class CredentialsException(ClinicFlowException):
    """Exception for invalid credentials."""
    
    code = "invalid_credentials"
    
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ValidationException(ClinicFlowException):
    """Exception for malformed input. No state has changed."""
    
    code = "validation_error"
    
    def __init__(self, detail: str = "Invalid request"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


class NotFoundException(ClinicFlowException):
    """Exception for resource not found."""
    
    code = "not_found"
    
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ForbiddenException(ClinicFlowException):
    """Exception for forbidden access."""
    
    code = "forbidden"
    
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class InvalidStateException(ClinicFlowException):
    """Exception for an operation that is illegal in the entity's current state."""
    
    code = "invalid_state"
    
    def __init__(self, detail: str = "Operation not allowed in current state", current_status: Optional[str] = None):
        self.current_status = current_status
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            extra={"status": current_status} if current_status else None,
        )


class ConflictException(ClinicFlowException):
    """Exception for a uniqueness or cardinality violation."""
    
    code = "conflict"
    
    def __init__(
        self,
        detail: str = "Resource already exists",
        visit_id: Optional[str] = None,
        dispensed_at: Optional[datetime] = None,
    ):
        self.visit_id = visit_id
        self.dispensed_at = dispensed_at
        extra = {}
        if visit_id:
            extra["visit_id"] = visit_id
        if dispensed_at:
            extra["dispensed_at"] = dispensed_at.isoformat()
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            extra=extra,
        )


class AlreadyDispensedException(ClinicFlowException):
    """Exception for redeeming a prescription that has already been dispensed."""
    
    code = "already_dispensed"
    
    def __init__(self, dispensed_at: Optional[datetime], detail: str = "Prescription has already been dispensed"):
        self.dispensed_at = dispensed_at
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            extra={"dispensed_at": dispensed_at.isoformat() if dispensed_at else None},
        )
