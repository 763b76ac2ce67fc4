from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool
from datetime import datetime, timedelta
from typing import Generator
import logging

from .config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str):
    """Create an engine with pool settings suited to the backend."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases must share one connection across threads
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
    )


engine = build_engine(settings.get_database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Database initialization
def init_db(bind=None):
    """Initialize database tables."""
    # Register every mapped class on Base.metadata
    from ..models import user, appointment, message, reminder  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def seed_db(db: Session, password: str) -> bool:
    """Populate an empty database with one user per role and a sample appointment.

    Returns False when users already exist.
    """
    from ..models.user import User
    from ..models.appointment import Appointment, AppointmentStatus
    from ..models.reminder import Reminder
    from .security import UserRole, get_password_hash

    if db.query(User).first():
        return False

    password_hash = get_password_hash(password)
    admin = User(email="admin@example.com", first_name="Admin", last_name="User",
                 role=UserRole.ADMIN, password_hash=password_hash)
    doctor = User(email="doctor@example.com", first_name="John", last_name="Doe",
                  role=UserRole.DOCTOR, specialization="Cardiology", password_hash=password_hash)
    patient = User(email="patient@example.com", first_name="Jane", last_name="Smith",
                   role=UserRole.PATIENT, password_hash=password_hash)
    db.add_all([admin, doctor, patient])
    db.flush()

    # Tomorrow at 10:00 UTC
    start_time = datetime.utcnow().replace(hour=10, minute=0, second=0, microsecond=0) + timedelta(days=1)
    appointment = Appointment(
        title="Initial Consultation",
        patient_id=patient.id,
        doctor_id=doctor.id,
        start_time=start_time,
        end_time=start_time + timedelta(hours=1),
        status=AppointmentStatus.CONFIRMED,
        notes="First consultation for new patient",
    )
    db.add(appointment)
    db.flush()

    db.add(Reminder(
        user_id=patient.id,
        appointment_id=appointment.id,
        title="Appointment Reminder",
        message="You have an appointment with Dr. Doe tomorrow at 10 AM",
        reminder_date=start_time - timedelta(hours=24),
    ))
    db.commit()

    logger.info("Seeded database with default users")
    return True
