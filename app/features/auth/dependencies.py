from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Callable, Optional
from pydantic import ValidationError
from app.features.auth.models import Principal, Role
from app.core.security import decode_token
from app.core.logging import logger
from app.shared.exceptions import CredentialsException, ForbiddenException


# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def principal_from_token(token: str) -> Optional[Principal]:
    """
    Resolve a principal from a JWT.
    
    Args:
        token: Encoded JWT carrying ``sub`` and ``role`` claims
        
    Returns:
        Principal, or None if the token is invalid
    """
    payload = decode_token(token)
    if payload is None:
        return None
    
    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or not role:
        return None
    
    try:
        return Principal(id=str(subject), role=role)
    except ValidationError:
        logger.warning(f"Token carries unknown role: {role}")
        return None


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Principal:
    """
    Dependency to get the current authenticated principal.
    
    Raises:
        CredentialsException: If credentials are missing or invalid
    """
    if credentials is None:
        raise CredentialsException("Not authenticated")
    
    principal = principal_from_token(credentials.credentials)
    if principal is None:
        raise CredentialsException("Invalid authentication credentials")
    
    return principal


def require_role(*roles: Role) -> Callable:
    """
    Build a dependency that only admits principals holding one of ``roles``.
    
    Usage:
        current: Principal = Depends(require_role(Role.DOCTOR))
    """
    allowed = set(roles)
    
    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            names = ", ".join(sorted(role.value for role in allowed))
            raise ForbiddenException(f"This action requires role: {names}")
        return principal
    
    return dependency


require_doctor = require_role(Role.DOCTOR)
require_patient = require_role(Role.PATIENT)
require_pharmacy = require_role(Role.PHARMACY)
