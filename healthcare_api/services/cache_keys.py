"""Cache keys used by the services and the invalidation each write performs.

Invalidation is over-broad: any listing that could contain a
changed entity is dropped, including views that embed a user or an
appointment.
"""
from datetime import date, datetime

from ..core.cache import CacheService

USERS_ALL = "users:all"
USERS_DOCTORS = "users:doctors"
USERS_PATIENTS = "users:patients"

APPOINTMENTS_ALL = "appointments:all"
APPOINTMENTS_UPCOMING = "appointments:upcoming"

REMINDERS_ALL = "reminders:all"


def user_key(user_id: str) -> str:
    return f"users:id:{user_id}"


def appointment_key(appointment_id: str) -> str:
    return f"appointments:id:{appointment_id}"


def doctor_appointments_key(doctor_id: str) -> str:
    return f"appointments:doctor:{doctor_id}"


def patient_appointments_key(patient_id: str) -> str:
    return f"appointments:patient:{patient_id}"


def today_appointments_key(day: date) -> str:
    return f"appointments:today:{day.isoformat()}"


def range_appointments_key(start: datetime, end: datetime) -> str:
    return f"appointments:range:{start.isoformat()}:{end.isoformat()}"


def conversation_key(user_a: str, user_b: str) -> str:
    first, second = sorted((user_a, user_b))
    return f"messages:conversation:{first}:{second}"


def user_messages_key(user_id: str) -> str:
    return f"messages:user:{user_id}"


def unread_messages_key(user_id: str) -> str:
    return f"messages:unread:{user_id}"


def reminder_key(reminder_id: str) -> str:
    return f"reminders:id:{reminder_id}"


def user_reminders_key(user_id: str) -> str:
    return f"reminders:user:{user_id}"


def appointment_reminders_key(appointment_id: str) -> str:
    return f"reminders:appointment:{appointment_id}"


def upcoming_reminders_key(user_id: str) -> str:
    return f"reminders:upcoming:{user_id}"


def unread_reminders_key(user_id: str) -> str:
    return f"reminders:unread:{user_id}"


def invalidate_user(cache: CacheService, user_id: str) -> None:
    cache.remove(USERS_ALL, USERS_DOCTORS, USERS_PATIENTS, user_key(user_id))
    # Appointment, message and reminder views embed user details
    cache.remove_by_prefix("appointments:")
    cache.remove_by_prefix("messages:")
    cache.remove_by_prefix("reminders:")


def invalidate_appointment(cache: CacheService, appointment_id: str, doctor_id: str, patient_id: str) -> None:
    cache.remove(
        APPOINTMENTS_ALL,
        APPOINTMENTS_UPCOMING,
        appointment_key(appointment_id),
        doctor_appointments_key(doctor_id),
        patient_appointments_key(patient_id),
    )
    cache.remove_by_prefix("appointments:today:")
    cache.remove_by_prefix("appointments:range:")
    # Reminder views embed their appointment
    cache.remove_by_prefix("reminders:")


def invalidate_conversation(cache: CacheService, sender_id: str, receiver_id: str) -> None:
    cache.remove(
        conversation_key(sender_id, receiver_id),
        user_messages_key(sender_id),
        user_messages_key(receiver_id),
        unread_messages_key(sender_id),
        unread_messages_key(receiver_id),
    )


def invalidate_reminder(cache: CacheService, reminder_id: str, user_id: str, appointment_id: str) -> None:
    cache.remove(
        REMINDERS_ALL,
        reminder_key(reminder_id),
        user_reminders_key(user_id),
        appointment_reminders_key(appointment_id),
        upcoming_reminders_key(user_id),
        unread_reminders_key(user_id),
    )
