"""
Tests for concurrent bookings and approvals on separate connections
"""

import threading

from sqlmodel import select

from huduma.database import get_session
from huduma.db_models import Appointment
from huduma.exceptions import SlotConflict
from huduma.models import Actor, NotificationChannel, Role
from huduma.services.appointment_service import AppointmentService
from huduma.services.notification_service import NotificationDispatcher

from tests.factories import MONDAY, TODAY, FakeChannel, seed_centre, seed_profiles


def run_concurrently(target, args_list):
    """Start all workers at once and collect (result, error) pairs"""
    barrier = threading.Barrier(len(args_list))
    outcomes = []
    lock = threading.Lock()

    def worker(*args):
        barrier.wait()
        try:
            result, error = target(*args), None
        except Exception as e:
            result, error = None, e
        with lock:
            outcomes.append((result, error))

    threads = [threading.Thread(target=worker, args=args) for args in args_list]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


def make_service(file_engine):
    factory = lambda: get_session(file_engine)  # noqa: E731
    dispatcher = NotificationDispatcher(
        channels={NotificationChannel.EMAIL: FakeChannel()}, session_factory=factory
    )
    service = AppointmentService(dispatcher=dispatcher, session_factory=factory, clock=lambda: TODAY)
    return service, factory


class TestConcurrentBooking:
    """Tests that simultaneous requests cannot double-book"""

    def test_same_slot_booked_once(self, file_engine):
        """Test two citizens racing for one slot: one wins, one gets SlotConflict"""
        service, factory = make_service(file_engine)
        seed_profiles(factory)
        centre = seed_centre(factory)
        citizens = [Actor(id=f"citizen-{c}", roles=frozenset({Role.CITIZEN})) for c in "ab"]

        outcomes = run_concurrently(
            lambda actor: service.create(actor, centre.id, "id_application", MONDAY, "09:00"),
            [(actor,) for actor in citizens],
        )

        created = [result for result, error in outcomes if error is None]
        errors = [error for _, error in outcomes if error is not None]
        assert len(created) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], SlotConflict)

        with factory() as session:
            rows = session.exec(
                select(Appointment).where(
                    Appointment.centre_id == centre.id,
                    Appointment.appointment_date == MONDAY,
                    Appointment.appointment_time == "09:00",
                )
            ).all()
        assert len(rows) == 1
        assert rows[0].status == "pending"


class TestConcurrentApproval:
    """Tests that simultaneous approvals get distinct queue numbers"""

    def test_queue_numbers_are_unique(self, file_engine):
        service, factory = make_service(file_engine)
        seed_profiles(factory)
        centre = seed_centre(factory)
        staff = Actor(id="staff-1", roles=frozenset({Role.STAFF}))

        appointment_ids = []
        for index in range(6):
            citizen = Actor(id=f"citizen-{index}", roles=frozenset({Role.CITIZEN}))
            slot = f"{8 + index // 4:02d}:{(index % 4) * 15:02d}"
            appointment_ids.append(
                service.create(citizen, centre.id, "id_collection", MONDAY, slot).id
            )

        outcomes = run_concurrently(
            lambda appointment_id: service.approve(staff, appointment_id),
            [(appointment_id,) for appointment_id in appointment_ids],
        )

        assert [error for _, error in outcomes if error is not None] == []
        numbers = sorted(result.queue_number for result, _ in outcomes)
        assert numbers == [1, 2, 3, 4, 5, 6]
