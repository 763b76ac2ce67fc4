from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from datetime import datetime
from typing import List, Optional

from ...core.cache import CacheService, get_cache
from ...core.database import get_db
from ...core.exceptions import InvalidInputError
from ...core.permissions import (
    can_access_appointment, can_access_owned_resource, can_book_appointment,
    can_view_patient_appointments, is_admin, require
)
from ...core.security import CallerIdentity
from ...api.deps import get_current_caller
from ...services.appointment_service import AppointmentService
from ...schemas.appointment import (
    AppointmentCreate, AppointmentResponse, AppointmentStatusUpdate, AppointmentUpdate
)
from ...schemas.common import to_naive_utc

router = APIRouter(prefix="/appointments", tags=["Appointments"])

def get_appointment_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> AppointmentService:
    return AppointmentService(db, cache)

def _authorized(appointment_service: AppointmentService, appointment_id: str, caller: CallerIdentity) -> AppointmentResponse:
    appointment = appointment_service.get_appointment(appointment_id)
    require(
        can_access_appointment(caller, appointment.doctor_id, appointment.patient_id),
        "You do not take part in this appointment",
    )
    return appointment

@router.get("", response_model=List[AppointmentResponse])
def list_appointments(
    upcoming: bool = False,
    today: bool = False,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    """List appointments, optionally only upcoming, today's or within a date range."""
    if upcoming:
        appointments = appointment_service.list_upcoming()
    elif today:
        appointments = appointment_service.list_today()
    elif start_date is not None or end_date is not None:
        if start_date is None or end_date is None:
            raise InvalidInputError.for_field("start_date", "start_date and end_date must be given together")
        appointments = appointment_service.list_in_range(to_naive_utc(start_date), to_naive_utc(end_date))
    else:
        appointments = appointment_service.list_appointments()

    if is_admin(caller):
        return appointments
    return [a for a in appointments if caller.id in (a.doctor_id, a.patient_id)]

@router.get("/doctor/{doctor_id}", response_model=List[AppointmentResponse])
def list_doctor_appointments(
    doctor_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    require(can_access_owned_resource(caller, doctor_id), "You can only view your own appointments")
    return appointment_service.list_by_doctor(doctor_id)

@router.get("/patient/{patient_id}", response_model=List[AppointmentResponse])
def list_patient_appointments(
    patient_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    require(can_view_patient_appointments(caller, patient_id), "You can only view your own appointments")
    return appointment_service.list_by_patient(patient_id)

@router.get("/user/{user_id}", response_model=List[AppointmentResponse])
def list_user_appointments(
    user_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    require(can_access_owned_resource(caller, user_id), "You can only view your own appointments")
    return appointment_service.list_for_user(user_id)

@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    return _authorized(appointment_service, appointment_id, caller)

@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment_data: AppointmentCreate,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    """Book an appointment. Patients book for themselves, doctors in their own calendar."""
    require(
        can_book_appointment(caller, appointment_data.doctor_id, appointment_data.patient_id),
        "You can only book appointments you take part in",
    )
    return appointment_service.create_appointment(appointment_data)

@router.patch("/{appointment_id}", response_model=AppointmentResponse)
def update_appointment(
    appointment_id: str,
    appointment_data: AppointmentUpdate,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    _authorized(appointment_service, appointment_id, caller)
    return appointment_service.update_appointment(appointment_id, appointment_data)

@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: str,
    status_data: AppointmentStatusUpdate,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    _authorized(appointment_service, appointment_id, caller)
    return appointment_service.update_status(appointment_id, status_data.status)

@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    _authorized(appointment_service, appointment_id, caller)
    appointment_service.delete_appointment(appointment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
