import hashlib
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from app.config import settings


def create_access_token(subject: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token for a principal."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    
    to_encode = {"sub": subject, "role": role, "exp": expire}
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    
    return encoded_jwt


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None


def generate_clinic_token() -> str:
    """Generate the secret access token printed on a clinic's check-in QR code (256 bits)."""
    return secrets.token_hex(32)


def generate_redemption_secret(visit_id: str) -> str:
    """
    Generate the secret a pharmacy scans to redeem a prescription.
    
    The visit id, the current time and 128 random bits are hashed together,
    so the secret can be neither guessed nor reversed to its inputs.
    """
    material = f"{visit_id}-{time.time_ns()}-{secrets.token_hex(16)}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def mask_secret(secret: Optional[str]) -> str:
    """Return a log-safe form of a bearer secret."""
    if not secret:
        return "<empty>"
    
    prefix = secret[:settings.SECRET_LOG_PREFIX_LENGTH]
    return f"{prefix}…"
