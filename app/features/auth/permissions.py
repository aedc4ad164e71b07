# Ownership checks along the doctor -> clinic -> visit and patient -> visit chains

from app.features.auth.models import Principal
from app.shared.exceptions import ForbiddenException


def owns_clinic(principal: Principal, clinic) -> bool:
    """True if the principal is the doctor who created the clinic."""
    return principal.is_doctor and clinic.owner_id == principal.id


def ensure_clinic_owner(principal: Principal, clinic, detail: str = "Access denied: you do not own this clinic") -> None:
    """Raise ForbiddenException unless the principal owns the clinic."""
    if not owns_clinic(principal, clinic):
        raise ForbiddenException(detail)


def can_read_visit(principal: Principal, visit, clinic) -> bool:
    """A visit is readable by its patient and by the doctor owning its clinic."""
    if principal.is_patient and visit.patient_id == principal.id:
        return True
    return clinic is not None and owns_clinic(principal, clinic)


def ensure_visit_reader(principal: Principal, visit, clinic) -> None:
    """Raise ForbiddenException unless the principal may read the visit."""
    if not can_read_visit(principal, visit, clinic):
        raise ForbiddenException("Access denied")
