"""
Tests for repository layer (data access layer)
"""

from datetime import date, datetime, timedelta

from huduma.db_models import Applicant, Appointment, Centre, Document, Notification
from huduma.repositories import (
    ApplicantRepository,
    AppointmentRepository,
    CentreRepository,
    NotificationRepository,
    ProfileRepository,
)

MONDAY = date(2025, 6, 2)


def add_centre(db_session, **kwargs):
    centre = Centre(name=kwargs.pop("name", "Huduma Centre GPO"), location="Nairobi", **kwargs)
    return CentreRepository(db_session).add_centre(centre)


def add_appointment(db_session, centre, slot="09:00", status="pending", **kwargs):
    return AppointmentRepository(db_session).create_appointment(
        Appointment(
            citizen_id=kwargs.pop("citizen_id", "citizen-a"),
            centre_id=centre.id,
            service_type="id_application",
            appointment_date=kwargs.pop("appointment_date", MONDAY),
            appointment_time=slot,
            status=status,
            **kwargs,
        )
    )


class TestCentreRepository:
    """Tests for CentreRepository"""

    def test_add_and_get(self, db_session):
        centre = add_centre(db_session)

        fetched = CentreRepository(db_session).get_centre(centre.id)
        assert fetched is not None
        assert fetched.operating_hours_start == "08:00"
        assert fetched.slot_duration_minutes == 15

    def test_get_centre_not_found(self, db_session):
        assert CentreRepository(db_session).get_centre(999) is None

    def test_active_centres_by_name(self, db_session):
        add_centre(db_session, name="Mombasa")
        add_centre(db_session, name="Eldoret", is_active=False)
        add_centre(db_session, name="Kisumu")

        names = [c.name for c in CentreRepository(db_session).get_active_centres()]
        assert names == ["Kisumu", "Mombasa"]


class TestProfileRepository:
    """Tests for ProfileRepository"""

    def test_upsert_creates_then_updates(self, db_session):
        repo = ProfileRepository(db_session)
        repo.upsert_profile("citizen-a", "Amina", email="amina@example.com")
        repo.upsert_profile("citizen-a", "Amina Wanjiru", phone="+254700000001")

        profile = repo.get_profile("citizen-a")
        assert profile.full_name == "Amina Wanjiru"
        assert profile.email is None
        assert profile.phone == "+254700000001"


class TestAppointmentRepository:
    """Tests for AppointmentRepository"""

    def test_create_defaults(self, db_session):
        centre = add_centre(db_session)
        appointment = add_appointment(db_session, centre)

        assert appointment.id is not None
        assert appointment.status == "pending"
        assert appointment.queue_number is None
        assert appointment.created_at is not None

    def test_active_on_uses_effective_date(self, db_session):
        """Test rescheduled appointments count on their new date only"""
        centre = add_centre(db_session)
        add_appointment(db_session, centre, "09:00")
        add_appointment(db_session, centre, "09:15", status="cancelled")
        add_appointment(
            db_session,
            centre,
            "10:00",
            status="rescheduled",
            rescheduled_date=MONDAY + timedelta(days=1),
            rescheduled_time="11:00",
        )
        add_appointment(
            db_session,
            centre,
            "12:00",
            status="rescheduled",
            appointment_date=MONDAY - timedelta(days=3),
            rescheduled_date=MONDAY,
            rescheduled_time="12:30",
        )

        repo = AppointmentRepository(db_session)
        assert sorted(repo.get_booked_times(centre.id, MONDAY)) == ["09:00", "12:30"]
        assert repo.get_booked_times(centre.id, MONDAY + timedelta(days=1)) == ["11:00"]
        assert repo.count_active(centre.id, MONDAY) == 2

    def test_lock_appointment(self, db_session):
        """Test locking returns a fresh copy and touches updated_at"""
        centre = add_centre(db_session)
        appointment = add_appointment(db_session, centre)
        before = appointment.updated_at

        locked = AppointmentRepository(db_session).lock_appointment(appointment.id)

        assert locked is appointment
        assert locked.updated_at >= before

    def test_lock_missing(self, db_session):
        assert AppointmentRepository(db_session).lock_appointment(42) is None

    def test_list_filters(self, db_session):
        centre = add_centre(db_session)
        add_appointment(db_session, centre, "10:00", citizen_id="citizen-b")
        add_appointment(db_session, centre, "09:00", status="approved")

        repo = AppointmentRepository(db_session)
        assert [a.appointment_time for a in repo.list_appointments()] == ["09:00", "10:00"]
        assert [a.appointment_time for a in repo.list_appointments("approved")] == ["09:00"]
        assert [a.citizen_id for a in repo.list_citizen_appointments("citizen-b")] == ["citizen-b"]


class TestNotificationRepository:
    """Tests for NotificationRepository"""

    def _add(self, db_session, status="pending", **kwargs):
        return NotificationRepository(db_session).add_notification(
            Notification(
                event="booked",
                channel="email",
                recipient="amina@example.com",
                subject="Subject",
                message="<p>Body</p>",
                status=status,
                **kwargs,
            )
        )

    def test_pending_oldest_first(self, db_session):
        first = self._add(db_session, created_at=datetime(2025, 6, 1, 8, 0))
        second = self._add(db_session, created_at=datetime(2025, 6, 1, 9, 0))
        self._add(db_session, status="sent")

        pending = NotificationRepository(db_session).get_pending()
        assert [n.id for n in pending] == [first.id, second.id]
        assert len(NotificationRepository(db_session).get_pending(limit=1)) == 1

    def test_failed_since(self, db_session):
        self._add(db_session, status="failed", created_at=datetime(2025, 5, 1))
        recent = self._add(db_session, status="failed", created_at=datetime(2025, 6, 1))

        repo = NotificationRepository(db_session)
        assert len(repo.get_failed()) == 2
        assert [n.id for n in repo.get_failed(since=datetime(2025, 5, 15))] == [recent.id]

    def test_stale_claims(self, db_session):
        """Test only claimed pending rows older than the cutoff are stale"""
        stuck = self._add(db_session, attempts=1, updated_at=datetime(2025, 6, 1, 8, 0))
        self._add(db_session, attempts=1, updated_at=datetime(2025, 6, 1, 9, 30))
        self._add(db_session, attempts=0, updated_at=datetime(2025, 6, 1, 8, 0))
        self._add(db_session, status="sent", attempts=1, updated_at=datetime(2025, 6, 1, 8, 0))

        stale = NotificationRepository(db_session).get_stale_claims(datetime(2025, 6, 1, 9, 0))
        assert [n.id for n in stale] == [stuck.id]


class TestApplicantRepository:
    """Tests for ApplicantRepository"""

    def test_applicant_and_documents(self, db_session):
        repo = ApplicantRepository(db_session)
        applicant = repo.create_applicant(
            Applicant(application_id="APP-1", full_name="Brian Otieno", phone="+254700000002")
        )
        repo.add_document(Document(applicant_id=applicant.id, document_number="11111111"))

        assert repo.get_by_application_id("APP-1").id == applicant.id
        assert repo.get_by_application_id("APP-2") is None
        assert [d.document_number for d in repo.get_documents(applicant.id)] == ["11111111"]
        assert applicant.status == "registered"
