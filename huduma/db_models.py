"""
Database models using SQLModel
Provides type-safe ORM with Pydantic validation
"""

from sqlmodel import SQLModel, Field
from sqlalchemy import Index, UniqueConstraint, func, text
from typing import Optional
from datetime import date, datetime, timezone

from huduma.models import (
    ACTIVE_STATUSES,
    AppointmentStatus,
    ApplicantStatus,
    DocumentType,
    NotificationStatus,
)


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite has no timezone support)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Centre(SQLModel, table=True):
    """Service centre with its operating hours and slot schedule"""

    __tablename__ = "huduma_centres"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    location: str = Field(max_length=255)
    operating_hours_start: str = Field(default="08:00", max_length=5)  # HH:MM
    operating_hours_end: str = Field(default="17:00", max_length=5)  # HH:MM
    slot_duration_minutes: int = Field(default=15)
    max_daily_appointments: int = Field(default=50)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Profile(SQLModel, table=True):
    """Contact details of an identity-store actor"""

    __tablename__ = "profiles"

    id: str = Field(primary_key=True, max_length=64)
    full_name: str = Field(max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)


class Appointment(SQLModel, table=True):
    """Citizen appointment at a centre"""

    __tablename__ = "appointments"

    id: Optional[int] = Field(default=None, primary_key=True)
    citizen_id: str = Field(index=True, max_length=64)
    centre_id: int = Field(foreign_key="huduma_centres.id", index=True)
    service_type: str = Field(max_length=32)
    appointment_date: date = Field(index=True)
    appointment_time: str = Field(max_length=5)  # HH:MM
    status: str = Field(
        default=AppointmentStatus.PENDING.value, max_length=20, index=True
    )
    queue_number: Optional[int] = Field(default=None)
    rescheduled_date: Optional[date] = Field(default=None)
    rescheduled_time: Optional[str] = Field(default=None, max_length=5)
    approved_by: Optional[str] = Field(default=None, max_length=64)
    approved_at: Optional[datetime] = Field(default=None)
    staff_notes: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    estimated_wait_minutes: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def effective_date(self) -> date:
        """Date the citizen is actually expected (rescheduled date wins)"""
        return self.rescheduled_date or self.appointment_date

    @property
    def effective_time(self) -> str:
        return self.rescheduled_time or self.appointment_time


_active_slot_clause = "status IN ({})".format(
    ", ".join(f"'{status.value}'" for status in ACTIVE_STATUSES)
)

# No double-booking: one active appointment per centre/date/time.
Index(
    "uq_appointments_active_slot",
    Appointment.__table__.c.centre_id,
    func.coalesce(
        Appointment.__table__.c.rescheduled_date,
        Appointment.__table__.c.appointment_date,
    ),
    func.coalesce(
        Appointment.__table__.c.rescheduled_time,
        Appointment.__table__.c.appointment_time,
    ),
    unique=True,
    sqlite_where=text(_active_slot_clause),
    postgresql_where=text(_active_slot_clause),
)


class QueueCounter(SQLModel, table=True):
    """Per centre, per day queue counter"""

    __tablename__ = "appointment_queue"
    __table_args__ = (
        UniqueConstraint("centre_id", "queue_date", name="uq_queue_centre_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    centre_id: int = Field(foreign_key="huduma_centres.id", index=True)
    queue_date: date
    current_queue_number: int = Field(default=0)
    average_service_time_minutes: int = Field(default=15)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    """One attempted message delivery (audit trail, never deleted)"""

    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    event: str = Field(max_length=32)
    channel: str = Field(max_length=10)  # sms, email
    recipient: Optional[str] = Field(default=None, max_length=255)
    subject: str = Field(default="", max_length=255)
    message: str
    status: str = Field(
        default=NotificationStatus.PENDING.value, max_length=20, index=True
    )
    attempts: int = Field(default=0)
    error_message: Optional[str] = Field(default=None)
    sent_at: Optional[datetime] = Field(default=None)
    delivered_at: Optional[datetime] = Field(default=None)
    provider_message_id: Optional[str] = Field(default=None, max_length=255)

    # What the notification is about
    appointment_id: Optional[int] = Field(
        default=None, foreign_key="appointments.id", index=True
    )
    citizen_id: Optional[str] = Field(default=None, max_length=64)
    applicant_id: Optional[int] = Field(
        default=None, foreign_key="applicants.id", index=True
    )

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class Applicant(SQLModel, table=True):
    """Person registered by staff for document processing"""

    __tablename__ = "applicants"

    id: Optional[int] = Field(default=None, primary_key=True)
    application_id: str = Field(unique=True, max_length=64)
    full_name: str = Field(max_length=255)
    phone: str = Field(max_length=32)
    email: Optional[str] = Field(default=None, max_length=255)
    document_type: str = Field(default=DocumentType.NATIONAL_ID.value, max_length=40)
    status: str = Field(default=ApplicantStatus.REGISTERED.value, max_length=20)
    registered_by: Optional[str] = Field(default=None, max_length=64)
    registration_date: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Document(SQLModel, table=True):
    """Issued document ready for collection"""

    __tablename__ = "documents"

    id: Optional[int] = Field(default=None, primary_key=True)
    applicant_id: int = Field(foreign_key="applicants.id", index=True)
    document_type: str = Field(default=DocumentType.NATIONAL_ID.value, max_length=40)
    document_number: str = Field(max_length=64)
    uploaded_by: Optional[str] = Field(default=None, max_length=64)
    upload_date: datetime = Field(default_factory=utcnow)
