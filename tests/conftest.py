"""
Pytest configuration and shared fixtures for tests
"""

import pytest
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from huduma import db_models  # noqa: F401  (registers tables)
from huduma.database import build_engine, get_session
from huduma.models import Actor, NotificationChannel, Role
from huduma.services.applicant_service import ApplicantService
from huduma.services.appointment_service import AppointmentService
from huduma.services.notification_service import NotificationDispatcher

from tests.factories import TODAY, FakeChannel, seed_centre, seed_profiles


@pytest.fixture(name="db_engine")
def db_engine_fixture():
    """Create in-memory SQLite database engine for testing"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Keep single connection for in-memory DB
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """File-backed SQLite engine so threads get their own connections"""
    engine = build_engine(f"sqlite:///{tmp_path / 'huduma_test.db'}", busy_timeout=30)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="db_session")
def db_session_fixture(db_engine):
    """Create database session for testing"""
    with Session(db_engine) as session:
        yield session
        session.rollback()  # Rollback any uncommitted changes after test


@pytest.fixture(name="session_factory")
def session_factory_fixture(db_engine):
    """Factory handing out committing sessions on the test engine"""
    return lambda: get_session(db_engine)


@pytest.fixture(name="email_channel")
def email_channel_fixture():
    return FakeChannel()


@pytest.fixture(name="dispatcher")
def dispatcher_fixture(session_factory, email_channel):
    return NotificationDispatcher(
        channels={NotificationChannel.EMAIL: email_channel},
        session_factory=session_factory,
    )


@pytest.fixture(name="appointment_service")
def appointment_service_fixture(session_factory, dispatcher):
    return AppointmentService(
        dispatcher=dispatcher, session_factory=session_factory, clock=lambda: TODAY
    )


@pytest.fixture(name="applicant_service")
def applicant_service_fixture(session_factory, dispatcher):
    return ApplicantService(dispatcher=dispatcher, session_factory=session_factory)


@pytest.fixture(name="centre")
def centre_fixture(session_factory):
    seed_profiles(session_factory)
    return seed_centre(session_factory)


@pytest.fixture(name="citizen")
def citizen_fixture():
    return Actor(id="citizen-a", roles=frozenset({Role.CITIZEN}))


@pytest.fixture(name="other_citizen")
def other_citizen_fixture():
    return Actor(id="citizen-b", roles=frozenset({Role.CITIZEN}))


@pytest.fixture(name="staff")
def staff_fixture():
    return Actor(id="staff-1", roles=frozenset({Role.STAFF}))
