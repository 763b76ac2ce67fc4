from sqlalchemy.orm import Session, joinedload
from datetime import datetime, timedelta
from typing import List
import logging

from ..models.appointment import Appointment, AppointmentStatus
from ..models.user import User
from ..core.cache import CacheService, DEFAULT_TTL, SHORT_TTL
from ..core.exceptions import InvalidInputError, NotFoundError
from ..core.security import UserRole
from ..schemas.appointment import AppointmentCreate, AppointmentResponse, AppointmentUpdate
from . import cache_keys
from .cache_keys import invalidate_appointment

logger = logging.getLogger(__name__)

AppointmentList = List[AppointmentResponse]


def check_window(start_time: datetime, end_time: datetime) -> None:
    if end_time <= start_time:
        raise InvalidInputError.for_field("end_time", "End time must be after start time")


class AppointmentService:
    def __init__(self, db: Session, cache: CacheService):
        self.db = db
        self.cache = cache

    def _query(self):
        return self.db.query(Appointment).options(
            joinedload(Appointment.patient),
            joinedload(Appointment.doctor),
        )

    def _load(self, query) -> List[AppointmentResponse]:
        return [
            AppointmentResponse.model_validate(appointment)
            for appointment in query.order_by(Appointment.start_time).all()
        ]

    def list_appointments(self) -> List[AppointmentResponse]:
        return self.cache.get_or_load(
            cache_keys.APPOINTMENTS_ALL, AppointmentList,
            lambda: self._load(self._query()),
            DEFAULT_TTL,
        )

    def get_appointment(self, appointment_id: str) -> AppointmentResponse:
        key = cache_keys.appointment_key(appointment_id)
        cached = self.cache.get(key, AppointmentResponse)
        if cached is not None:
            return cached

        appointment = AppointmentResponse.model_validate(self._get_or_404(appointment_id))
        self.cache.set(key, appointment, AppointmentResponse, DEFAULT_TTL)
        return appointment

    def list_by_doctor(self, doctor_id: str) -> List[AppointmentResponse]:
        return self.cache.get_or_load(
            cache_keys.doctor_appointments_key(doctor_id), AppointmentList,
            lambda: self._load(self._query().filter(Appointment.doctor_id == doctor_id)),
            DEFAULT_TTL,
        )

    def list_by_patient(self, patient_id: str) -> List[AppointmentResponse]:
        return self.cache.get_or_load(
            cache_keys.patient_appointments_key(patient_id), AppointmentList,
            lambda: self._load(self._query().filter(Appointment.patient_id == patient_id)),
            DEFAULT_TTL,
        )

    def list_for_user(self, user_id: str) -> List[AppointmentResponse]:
        """Appointments of a user, looked up on the side matching their role."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")

        if user.role == UserRole.DOCTOR:
            return self.list_by_doctor(user_id)
        if user.role == UserRole.PATIENT:
            return self.list_by_patient(user_id)
        return self.list_appointments()

    def list_upcoming(self) -> List[AppointmentResponse]:
        """Future appointments that have not been cancelled."""
        def load():
            return self._load(self._query().filter(
                Appointment.start_time > datetime.utcnow(),
                Appointment.status != AppointmentStatus.CANCELLED,
            ))

        return self.cache.get_or_load(
            cache_keys.APPOINTMENTS_UPCOMING, AppointmentList, load, SHORT_TTL
        )

    def list_today(self) -> List[AppointmentResponse]:
        """Appointments starting on the current UTC day."""
        today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        tomorrow = today + timedelta(days=1)

        return self.cache.get_or_load(
            cache_keys.today_appointments_key(today.date()), AppointmentList,
            lambda: self._load(self._query().filter(
                Appointment.start_time >= today,
                Appointment.start_time < tomorrow,
            )),
            SHORT_TTL,
        )

    def list_in_range(self, start: datetime, end: datetime) -> List[AppointmentResponse]:
        """Appointments starting within [start, end]."""
        if start > end:
            raise InvalidInputError.for_field("end_date", "End date must not be before start date")

        return self.cache.get_or_load(
            cache_keys.range_appointments_key(start, end), AppointmentList,
            lambda: self._load(self._query().filter(
                Appointment.start_time >= start,
                Appointment.start_time <= end,
            )),
            SHORT_TTL,
        )

    def create_appointment(self, appointment_data: AppointmentCreate) -> AppointmentResponse:
        """Book an appointment between an existing patient and an existing doctor."""
        check_window(appointment_data.start_time, appointment_data.end_time)

        patient = self.db.query(User).filter(User.id == appointment_data.patient_id).first()
        if not patient:
            raise NotFoundError(f"Patient with ID {appointment_data.patient_id} not found")

        doctor = self.db.query(User).filter(User.id == appointment_data.doctor_id).first()
        if not doctor or doctor.role != UserRole.DOCTOR:
            raise NotFoundError(f"Doctor with ID {appointment_data.doctor_id} not found")

        appointment = Appointment(
            title=appointment_data.title,
            patient_id=patient.id,
            doctor_id=doctor.id,
            start_time=appointment_data.start_time,
            end_time=appointment_data.end_time,
            status=appointment_data.status,
            notes=appointment_data.notes,
        )
        self.db.add(appointment)
        self.db.commit()

        invalidate_appointment(self.cache, appointment.id, appointment.doctor_id, appointment.patient_id)
        logger.info(f"Created appointment {appointment.id} for patient {patient.id} with doctor {doctor.id}")
        return AppointmentResponse.model_validate(self._get_or_404(appointment.id))

    def update_appointment(self, appointment_id: str, appointment_data: AppointmentUpdate) -> AppointmentResponse:
        appointment = self._get_or_404(appointment_id)

        start_time = appointment_data.start_time or appointment.start_time
        end_time = appointment_data.end_time or appointment.end_time
        check_window(start_time, end_time)

        if appointment_data.title:
            appointment.title = appointment_data.title
        appointment.start_time = start_time
        appointment.end_time = end_time
        if appointment_data.status is not None:
            appointment.status = appointment_data.status
        # An empty string clears the notes
        if appointment_data.notes is not None:
            appointment.notes = appointment_data.notes

        self.db.commit()
        self.db.refresh(appointment)

        invalidate_appointment(self.cache, appointment.id, appointment.doctor_id, appointment.patient_id)
        logger.info(f"Updated appointment {appointment.id}")
        return AppointmentResponse.model_validate(appointment)

    def update_status(self, appointment_id: str, status: AppointmentStatus) -> AppointmentResponse:
        appointment = self._get_or_404(appointment_id)
        appointment.status = status
        self.db.commit()
        self.db.refresh(appointment)

        invalidate_appointment(self.cache, appointment.id, appointment.doctor_id, appointment.patient_id)
        logger.info(f"Appointment {appointment.id} is now {status.value}")
        return AppointmentResponse.model_validate(appointment)

    def delete_appointment(self, appointment_id: str) -> None:
        appointment = self._get_or_404(appointment_id)
        doctor_id, patient_id = appointment.doctor_id, appointment.patient_id

        self.db.delete(appointment)
        self.db.commit()

        invalidate_appointment(self.cache, appointment_id, doctor_id, patient_id)
        logger.info(f"Deleted appointment {appointment_id}")

    def _get_or_404(self, appointment_id: str) -> Appointment:
        appointment = self._query().filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError(f"Appointment with ID {appointment_id} not found")
        return appointment
