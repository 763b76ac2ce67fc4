from sqlalchemy import Column, String, ForeignKey, DateTime, Boolean, Text
from datetime import datetime
from sqlalchemy.orm import relationship

from ..core.database import Base
from .user import new_id

class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # No foreign key: reminders outlive a deleted appointment
    appointment_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    reminder_date = Column(DateTime, nullable=False, index=True)
    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="reminders")
    appointment = relationship(
        "Appointment",
        primaryjoin="foreign(Reminder.appointment_id) == Appointment.id",
        viewonly=True,
    )

    def __repr__(self):
        return f"<Reminder(id={self.id}, user_id={self.user_id}, appointment_id={self.appointment_id})>"
