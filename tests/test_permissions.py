import pytest

from healthcare_api.core import permissions
from healthcare_api.core.exceptions import AuthorizationError
from healthcare_api.core.security import CallerIdentity, UserRole

def caller(role: UserRole, caller_id: str = "me") -> CallerIdentity:
    return CallerIdentity(id=caller_id, email=f"{caller_id}@example.com",
                          first_name="Test", last_name="User", role=role)

admin = caller(UserRole.ADMIN, "admin")
doctor = caller(UserRole.DOCTOR, "doc")
patient = caller(UserRole.PATIENT, "pat")


def test_owned_resource():
    assert permissions.can_access_owned_resource(admin, "someone")
    assert permissions.can_access_owned_resource(patient, "pat")
    assert not permissions.can_access_owned_resource(patient, "someone")

def test_appointment_participants():
    assert permissions.can_access_appointment(admin, "d", "p")
    assert permissions.can_access_appointment(doctor, "doc", "p")
    assert permissions.can_access_appointment(patient, "d", "pat")
    assert not permissions.can_access_appointment(caller(UserRole.DOCTOR, "other"), "doc", "pat")

@pytest.mark.parametrize("who,doctor_id,patient_id,allowed", [
    (admin, "doc", "pat", True),
    (patient, "doc", "pat", True),
    (patient, "doc", "someone-else", False),
    (doctor, "doc", "pat", True),
    (doctor, "other-doc", "pat", False),
    # A doctor booking as the patient of another doctor is still refused
    (doctor, "other-doc", "doc", False),
])
def test_booking(who, doctor_id, patient_id, allowed):
    assert permissions.can_book_appointment(who, doctor_id, patient_id) is allowed

def test_patient_appointments_visible_to_doctors():
    assert permissions.can_view_patient_appointments(doctor, "pat")
    assert permissions.can_view_patient_appointments(patient, "pat")
    assert not permissions.can_view_patient_appointments(caller(UserRole.PATIENT, "other"), "pat")

def test_is_admin_is_exact():
    assert permissions.is_admin(admin)
    assert admin.is_admin
    assert not permissions.is_admin(doctor)

def test_require():
    permissions.require(True)
    with pytest.raises(AuthorizationError) as exc_info:
        permissions.require(False, "nope")
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "nope"
