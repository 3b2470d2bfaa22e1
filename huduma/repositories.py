"""
Repository pattern for database access
Provides clean separation between business logic and data access

Repositories flush but never commit: the caller's get_session() block is the
transaction boundary, so a state change and its outbox row commit together.
"""

from sqlmodel import Session, select
from sqlalchemy import and_, func, or_, update
from typing import List, Optional
from datetime import date, datetime

from huduma.db_models import (
    Applicant,
    Appointment,
    Centre,
    Document,
    Notification,
    Profile,
    QueueCounter,
    utcnow,
)
from huduma.models import ACTIVE_STATUSES, NotificationStatus

_ACTIVE = [status.value for status in ACTIVE_STATUSES]


class CentreRepository:
    """Repository for Centre operations (read-only to the scheduler)"""

    def __init__(self, session: Session):
        self.session = session

    def get_centre(self, centre_id: int) -> Optional[Centre]:
        """Get centre by ID"""
        return self.session.get(Centre, centre_id)

    def get_active_centres(self) -> List[Centre]:
        """Get all centres accepting bookings, by name"""
        statement = (
            select(Centre).where(Centre.is_active == True).order_by(Centre.name)  # noqa: E712
        )
        return list(self.session.exec(statement))

    def add_centre(self, centre: Centre) -> Centre:
        """Persist a centre (admin collaborator and fixtures)"""
        self.session.add(centre)
        self.session.flush()
        return centre


class ProfileRepository:
    """Repository for Profile (contact directory) lookups"""

    def __init__(self, session: Session):
        self.session = session

    def get_profile(self, profile_id: str) -> Optional[Profile]:
        return self.session.get(Profile, profile_id)

    def upsert_profile(
        self,
        profile_id: str,
        full_name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Profile:
        """Create or refresh a profile"""
        profile = self.get_profile(profile_id)
        if profile is None:
            profile = Profile(id=profile_id, full_name=full_name)
            self.session.add(profile)
        profile.full_name = full_name
        profile.email = email
        profile.phone = phone
        self.session.flush()
        return profile


class AppointmentRepository:
    """Repository for Appointment operations"""

    def __init__(self, session: Session):
        self.session = session

    def get_appointment(self, appointment_id: int) -> Optional[Appointment]:
        """Get appointment by ID"""
        return self.session.get(Appointment, appointment_id)

    def create_appointment(self, appointment: Appointment) -> Appointment:
        """
        Insert a new appointment

        Raises:
            IntegrityError: If the slot is already held (unique index)
        """
        self.session.add(appointment)
        self.session.flush()
        return appointment

    def save(self, appointment: Appointment) -> Appointment:
        """Flush pending changes to an appointment"""
        appointment.updated_at = utcnow()
        self.session.add(appointment)
        self.session.flush()
        return appointment

    def _active_on(self, centre_id: int, on_date: date) -> list:
        """Conditions for active appointments whose effective date is on_date"""
        return [
            Appointment.centre_id == centre_id,
            Appointment.status.in_(_ACTIVE),
            or_(
                Appointment.rescheduled_date == on_date,
                and_(
                    Appointment.rescheduled_date.is_(None),
                    Appointment.appointment_date == on_date,
                ),
            ),
        ]

    def get_active_on(self, centre_id: int, on_date: date) -> List[Appointment]:
        """Active appointments at a centre whose effective date is on_date"""
        statement = select(Appointment).where(*self._active_on(centre_id, on_date))
        return list(self.session.exec(statement))

    def get_booked_times(self, centre_id: int, on_date: date) -> List[str]:
        """Slot times held by active appointments at a centre on a date"""
        return [
            appointment.effective_time
            for appointment in self.get_active_on(centre_id, on_date)
        ]

    def lock_appointment(self, appointment_id: int) -> Optional[Appointment]:
        """
        Take the appointment's write lock for this transaction, then read it fresh.

        Touching updated_at is a portable SELECT ... FOR UPDATE: a row lock on
        PostgreSQL, the database write lock on SQLite.
        """
        statement = (
            update(Appointment)
            .where(Appointment.id == appointment_id)
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if self.session.exec(statement).rowcount == 0:
            return None
        return self.session.get(Appointment, appointment_id, populate_existing=True)

    def count_active(self, centre_id: int, on_date: date) -> int:
        """Count active appointments at a centre on a date"""
        statement = select(func.count(Appointment.id)).where(
            *self._active_on(centre_id, on_date)
        )
        return self.session.exec(statement).one()

    def list_appointments(self, status: Optional[str] = None) -> List[Appointment]:
        """All appointments ordered by date and time, optionally by status"""
        statement = select(Appointment).order_by(
            Appointment.appointment_date, Appointment.appointment_time
        )
        if status:
            statement = statement.where(Appointment.status == status)
        return list(self.session.exec(statement))

    def list_citizen_appointments(self, citizen_id: str) -> List[Appointment]:
        """A citizen's appointments, newest booking first"""
        statement = (
            select(Appointment)
            .where(Appointment.citizen_id == citizen_id)
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
        )
        return list(self.session.exec(statement))


class QueueCounterRepository:
    """Repository for QueueCounter reads (writes live in the queue manager)"""

    def __init__(self, session: Session):
        self.session = session

    def get_counter(self, centre_id: int, queue_date: date) -> Optional[QueueCounter]:
        statement = select(QueueCounter).where(
            QueueCounter.centre_id == centre_id,
            QueueCounter.queue_date == queue_date,
        )
        return self.session.exec(statement).first()


class NotificationRepository:
    """Repository for Notification operations"""

    def __init__(self, session: Session):
        self.session = session

    def add_notification(self, notification: Notification) -> Notification:
        """Append a notification to the outbox"""
        self.session.add(notification)
        self.session.flush()
        return notification

    def get_notification(self, notification_id: int) -> Optional[Notification]:
        return self.session.get(Notification, notification_id)

    def save(self, notification: Notification) -> Notification:
        notification.updated_at = utcnow()
        self.session.add(notification)
        self.session.flush()
        return notification

    def get_pending(self, limit: int = 50) -> List[Notification]:
        """Oldest undelivered notifications first"""
        statement = (
            select(Notification)
            .where(Notification.status == NotificationStatus.PENDING.value)
            .order_by(Notification.created_at, Notification.id)
            .limit(limit)
        )
        return list(self.session.exec(statement))

    def get_stale_claims(self, claimed_before: datetime) -> List[Notification]:
        """Pending rows whose single attempt was claimed but never resolved"""
        statement = (
            select(Notification)
            .where(
                Notification.status == NotificationStatus.PENDING.value,
                Notification.attempts >= 1,
                Notification.updated_at <= claimed_before,
            )
            .order_by(Notification.updated_at)
        )
        return list(self.session.exec(statement))

    def get_failed(self, since: Optional[datetime] = None) -> List[Notification]:
        """Failed notifications, newest first"""
        statement = select(Notification).where(
            Notification.status == NotificationStatus.FAILED.value
        )
        if since:
            statement = statement.where(Notification.created_at >= since)
        statement = statement.order_by(Notification.created_at.desc())
        return list(self.session.exec(statement))

    def get_for_appointment(self, appointment_id: int) -> List[Notification]:
        statement = (
            select(Notification)
            .where(Notification.appointment_id == appointment_id)
            .order_by(Notification.id)
        )
        return list(self.session.exec(statement))

    def get_for_applicant(self, applicant_id: int) -> List[Notification]:
        statement = (
            select(Notification)
            .where(Notification.applicant_id == applicant_id)
            .order_by(Notification.id)
        )
        return list(self.session.exec(statement))


class ApplicantRepository:
    """Repository for Applicant and Document operations"""

    def __init__(self, session: Session):
        self.session = session

    def get_applicant(self, applicant_id: int) -> Optional[Applicant]:
        return self.session.get(Applicant, applicant_id)

    def get_by_application_id(self, application_id: str) -> Optional[Applicant]:
        statement = select(Applicant).where(Applicant.application_id == application_id)
        return self.session.exec(statement).first()

    def create_applicant(self, applicant: Applicant) -> Applicant:
        self.session.add(applicant)
        self.session.flush()
        return applicant

    def save(self, applicant: Applicant) -> Applicant:
        applicant.updated_at = utcnow()
        self.session.add(applicant)
        self.session.flush()
        return applicant

    def add_document(self, document: Document) -> Document:
        self.session.add(document)
        self.session.flush()
        return document

    def get_documents(self, applicant_id: int) -> List[Document]:
        statement = (
            select(Document)
            .where(Document.applicant_id == applicant_id)
            .order_by(Document.upload_date.desc(), Document.id.desc())
        )
        return list(self.session.exec(statement))
