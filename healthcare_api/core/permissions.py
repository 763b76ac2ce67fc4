"""Role and ownership checks applied by the API layer before calling a service."""
from .exceptions import AuthorizationError
from .security import CallerIdentity, UserRole


def is_admin(caller: CallerIdentity) -> bool:
    return caller.role == UserRole.ADMIN


def has_role(caller: CallerIdentity, *roles: UserRole) -> bool:
    return caller.role in roles


def can_access_owned_resource(caller: CallerIdentity, owner_id: str) -> bool:
    """Admins can access anything, everyone else only what they own."""
    return is_admin(caller) or caller.id == owner_id


def can_access_participants(caller: CallerIdentity, *participant_ids: str) -> bool:
    return is_admin(caller) or caller.id in participant_ids


def can_access_appointment(caller: CallerIdentity, doctor_id: str, patient_id: str) -> bool:
    return can_access_participants(caller, doctor_id, patient_id)


def can_book_appointment(caller: CallerIdentity, doctor_id: str, patient_id: str) -> bool:
    """Patients book for themselves, doctors into their own calendar."""
    if is_admin(caller):
        return True
    if caller.role == UserRole.PATIENT:
        return caller.id == patient_id
    if caller.role == UserRole.DOCTOR:
        return caller.id == doctor_id
    return False


def can_view_patient_appointments(caller: CallerIdentity, patient_id: str) -> bool:
    return has_role(caller, UserRole.ADMIN, UserRole.DOCTOR) or caller.id == patient_id


def require(allowed: bool, detail: str = "Not enough permissions") -> None:
    if not allowed:
        raise AuthorizationError(detail)
