from sqlalchemy.orm import Session, joinedload
from datetime import datetime
from typing import List
import logging

from ..models.appointment import Appointment
from ..models.reminder import Reminder
from ..models.user import User
from ..core.cache import CacheService, DEFAULT_TTL, SHORT_TTL
from ..core.exceptions import NotFoundError
from ..schemas.reminder import ReminderCreate, ReminderResponse
from . import cache_keys
from .cache_keys import invalidate_reminder

logger = logging.getLogger(__name__)

ReminderList = List[ReminderResponse]


class ReminderService:
    def __init__(self, db: Session, cache: CacheService):
        self.db = db
        self.cache = cache

    def _query(self):
        return self.db.query(Reminder).options(
            joinedload(Reminder.user),
            joinedload(Reminder.appointment).joinedload(Appointment.patient),
            joinedload(Reminder.appointment).joinedload(Appointment.doctor),
        )

    @staticmethod
    def _to_list(reminders) -> List[ReminderResponse]:
        return [ReminderResponse.model_validate(reminder) for reminder in reminders]

    def list_reminders(self) -> List[ReminderResponse]:
        return self.cache.get_or_load(
            cache_keys.REMINDERS_ALL, ReminderList,
            lambda: self._to_list(self._query().order_by(Reminder.reminder_date.desc()).all()),
            DEFAULT_TTL,
        )

    def get_reminder(self, reminder_id: str) -> ReminderResponse:
        key = cache_keys.reminder_key(reminder_id)
        cached = self.cache.get(key, ReminderResponse)
        if cached is not None:
            return cached

        reminder = ReminderResponse.model_validate(self._get_or_404(reminder_id))
        self.cache.set(key, reminder, ReminderResponse, DEFAULT_TTL)
        return reminder

    def list_by_user(self, user_id: str) -> List[ReminderResponse]:
        """A user's reminders, latest reminder date first."""
        return self.cache.get_or_load(
            cache_keys.user_reminders_key(user_id), ReminderList,
            lambda: self._to_list(
                self._query().filter(Reminder.user_id == user_id)
                .order_by(Reminder.reminder_date.desc()).all()
            ),
            SHORT_TTL,
        )

    def list_by_appointment(self, appointment_id: str) -> List[ReminderResponse]:
        return self.cache.get_or_load(
            cache_keys.appointment_reminders_key(appointment_id), ReminderList,
            lambda: self._to_list(
                self._query().filter(Reminder.appointment_id == appointment_id)
                .order_by(Reminder.reminder_date.desc()).all()
            ),
            SHORT_TTL,
        )

    def list_upcoming(self, user_id: str) -> List[ReminderResponse]:
        """Reminders still due for a user, soonest first."""
        def load():
            return self._to_list(
                self._query().filter(
                    Reminder.user_id == user_id,
                    Reminder.reminder_date > datetime.utcnow(),
                ).order_by(Reminder.reminder_date).all()
            )

        return self.cache.get_or_load(
            cache_keys.upcoming_reminders_key(user_id), ReminderList, load, SHORT_TTL
        )

    def list_unread(self, user_id: str) -> List[ReminderResponse]:
        return self.cache.get_or_load(
            cache_keys.unread_reminders_key(user_id), ReminderList,
            lambda: self._to_list(
                self._query().filter(
                    Reminder.user_id == user_id,
                    Reminder.is_read.is_(False),
                ).order_by(Reminder.reminder_date.desc()).all()
            ),
            SHORT_TTL,
        )

    def create_reminder(self, reminder_data: ReminderCreate) -> ReminderResponse:
        if not self.db.query(User).filter(User.id == reminder_data.user_id).first():
            raise NotFoundError(f"User with ID {reminder_data.user_id} not found")
        if not self.db.query(Appointment).filter(Appointment.id == reminder_data.appointment_id).first():
            raise NotFoundError(f"Appointment with ID {reminder_data.appointment_id} not found")

        reminder = Reminder(
            user_id=reminder_data.user_id,
            appointment_id=reminder_data.appointment_id,
            title=reminder_data.title,
            message=reminder_data.message,
            reminder_date=reminder_data.reminder_date,
        )
        self.db.add(reminder)
        self.db.commit()

        invalidate_reminder(self.cache, reminder.id, reminder.user_id, reminder.appointment_id)
        logger.info(f"Created reminder {reminder.id} for user {reminder.user_id}")
        return ReminderResponse.model_validate(self._get_or_404(reminder.id))

    def mark_as_read(self, reminder_id: str) -> ReminderResponse:
        """Mark a reminder read. Marking it again changes nothing."""
        reminder = self._get_or_404(reminder_id)
        if not reminder.is_read:
            reminder.is_read = True
            self.db.commit()
            self.db.refresh(reminder)
            invalidate_reminder(self.cache, reminder.id, reminder.user_id, reminder.appointment_id)
        return ReminderResponse.model_validate(reminder)

    def mark_all_as_read(self, user_id: str) -> int:
        """Mark every unread reminder of a user read and return how many changed."""
        unread = self.db.query(Reminder).filter(
            Reminder.user_id == user_id,
            Reminder.is_read.is_(False),
        ).all()

        for reminder in unread:
            reminder.is_read = True
        self.db.commit()

        for reminder in unread:
            invalidate_reminder(self.cache, reminder.id, reminder.user_id, reminder.appointment_id)
        if unread:
            logger.info(f"Marked {len(unread)} reminders read for user {user_id}")
        return len(unread)

    def delete_reminder(self, reminder_id: str) -> None:
        reminder = self._get_or_404(reminder_id)
        user_id, appointment_id = reminder.user_id, reminder.appointment_id

        self.db.delete(reminder)
        self.db.commit()

        invalidate_reminder(self.cache, reminder_id, user_id, appointment_id)
        logger.info(f"Deleted reminder {reminder_id}")

    def _get_or_404(self, reminder_id: str) -> Reminder:
        reminder = self._query().filter(Reminder.id == reminder_id).first()
        if not reminder:
            raise NotFoundError(f"Reminder with ID {reminder_id} not found")
        return reminder
