"""
Appointment lifecycle service - booking, approval, rescheduling and closing of
citizen appointments.

State machine:
    pending -> approved -> completed | no_show
    pending | approved -> rescheduled -> approved (new confirmation)
    pending | approved | rescheduled -> cancelled

Every transition runs in one transaction together with its queue number and
its outbox notification; delivery is attempted after commit and never undoes
the transition.
"""

import logging
from datetime import date, datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from huduma.config import get_config
from huduma.database import get_session
from huduma.db_models import Appointment, Centre, utcnow
from huduma.exceptions import (
    InvalidTransition,
    NotFound,
    PermissionDenied,
    SlotConflict,
    ValidationError,
)
from huduma.models import (
    ACTIVE_STATUSES,
    Actor,
    AppointmentStatus,
    NotificationEvent,
    Recipient,
    Role,
    ServiceType,
)
from huduma.repositories import (
    AppointmentRepository,
    CentreRepository,
    ProfileRepository,
)
from huduma.services.notification_service import NotificationDispatcher, SessionFactory
from huduma.services.queue_manager import calculate_wait_time, get_next_queue_number
from huduma.services.slot_service import (
    check_booking_date,
    generate_centre_slots,
    local_today,
    normalize_time,
)

logger = logging.getLogger(__name__)

SERVICE_LABELS = {
    ServiceType.ID_APPLICATION: "National ID Application",
    ServiceType.ID_REPLACEMENT: "ID Replacement (Lost/Damaged)",
    ServiceType.ID_COLLECTION: "ID Collection",
}

_ACTIVE = {status.value for status in ACTIVE_STATUSES}



def parse_date(value) -> date:
    """Accept a date or an ISO 'YYYY-MM-DD' string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")


class AppointmentService:
    """Owns appointment state transitions"""

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        session_factory: SessionFactory = get_session,
        clock: Callable[[], date] = local_today,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or NotificationDispatcher(session_factory=session_factory)
        self.clock = clock
        self.horizon_days = get_config().booking_horizon_days

    # ----------------------------------------------------------------- helpers

    @staticmethod
    def _require_staff(actor: Actor) -> None:
        if not actor.is_staff:
            raise PermissionDenied(f"Actor {actor.id} is not staff")

    @staticmethod
    def _require_owner_or_staff(actor: Actor, appointment: Appointment) -> None:
        if actor.is_staff:
            return
        if actor.has_role(Role.CITIZEN) and actor.id == appointment.citizen_id:
            return
        raise PermissionDenied(
            f"Actor {actor.id} may not modify appointment {appointment.id}"
        )

    @staticmethod
    def _lock(session: Session, appointment_id: int) -> Appointment:
        appointment = AppointmentRepository(session).lock_appointment(appointment_id)
        if appointment is None:
            raise NotFound("Appointment", appointment_id)
        return appointment

    @staticmethod
    def _get_centre(session: Session, centre_id: int) -> Centre:
        centre = CentreRepository(session).get_centre(centre_id)
        if centre is None:
            raise NotFound("Centre", centre_id)
        return centre

    def _check_slot(
        self,
        session: Session,
        centre: Centre,
        on_date: date,
        slot_time: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        """
        Optimistic availability check; the unique index has the final word.

        Raises:
            ValidationError: Date outside the policy or time off the slot grid
            SlotConflict: Slot held by another active appointment, or the day is full
        """
        check_booking_date(on_date, self.clock(), self.horizon_days)

        if slot_time not in generate_centre_slots(centre):
            raise ValidationError(
                f"{slot_time} is not a slot at {centre.name} "
                f"({centre.operating_hours_start}-{centre.operating_hours_end}, "
                f"every {centre.slot_duration_minutes} min)"
            )

        active = [
            a
            for a in AppointmentRepository(session).get_active_on(centre.id, on_date)
            if a.id != exclude_id
        ]
        if any(a.effective_time == slot_time for a in active):
            raise SlotConflict(f"Slot {on_date.isoformat()} {slot_time} is no longer available")
        if len(active) >= centre.max_daily_appointments:
            raise SlotConflict(f"{centre.name} is fully booked on {on_date.isoformat()}")

    @staticmethod
    def _recipient(session: Session, citizen_id: str) -> Recipient:
        profile = ProfileRepository(session).get_profile(citizen_id)
        if profile is None:
            logger.warning(f"No contact profile for citizen {citizen_id}")
            return Recipient(name="Citizen")
        return Recipient(name=profile.full_name, email=profile.email, phone=profile.phone)

    def _notify(
        self,
        session: Session,
        event: NotificationEvent,
        appointment: Appointment,
        centre: Centre,
        **extra,
    ):
        context = {
            "centre_name": centre.name,
            "centre_location": centre.location,
            "service_label": SERVICE_LABELS.get(
                ServiceType(appointment.service_type), appointment.service_type
            ),
            "date": appointment.effective_date,
            "time": appointment.effective_time,
            "queue_number": appointment.queue_number,
            "staff_notes": appointment.staff_notes,
            **extra,
        }
        return self.dispatcher.enqueue(
            session,
            event,
            self._recipient(session, appointment.citizen_id),
            context,
            appointment_id=appointment.id,
            citizen_id=appointment.citizen_id,
        )

    # -------------------------------------------------------------- operations

    def create(
        self,
        actor: Actor,
        centre_id: int,
        service_type: str,
        appointment_date,
        appointment_time: str,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Book a slot for the calling citizen (status=pending).

        Raises:
            PermissionDenied: Actor is not a citizen
            ValidationError: Missing/invalid fields, inactive centre, date policy
            NotFound: Unknown centre
            SlotConflict: Slot taken (pre-check or unique index at commit)
        """
        if not actor.has_role(Role.CITIZEN):
            raise PermissionDenied(f"Actor {actor.id} cannot book as a citizen")
        if not service_type or appointment_date is None or not appointment_time:
            raise ValidationError("service_type, appointment_date and appointment_time are required")
        try:
            service = ServiceType(service_type)
        except ValueError:
            raise ValidationError(f"Unknown service type '{service_type}'")

        on_date = parse_date(appointment_date)
        slot_time = normalize_time(appointment_time)

        try:
            with self.session_factory() as session:
                centre = self._get_centre(session, centre_id)
                if not centre.is_active:
                    raise ValidationError(f"{centre.name} is not accepting bookings")

                self._check_slot(session, centre, on_date, slot_time)

                appointment = AppointmentRepository(session).create_appointment(
                    Appointment(
                        citizen_id=actor.id,
                        centre_id=centre.id,
                        service_type=service.value,
                        appointment_date=on_date,
                        appointment_time=slot_time,
                        notes=notes or None,
                    )
                )
                notification = self._notify(
                    session, NotificationEvent.BOOKED, appointment, centre
                )
        except IntegrityError as e:
            logger.info(
                f"Booking race lost for centre {centre_id} {on_date} {slot_time} "
                f"(citizen {actor.id})"
            )
            raise SlotConflict(
                f"Slot {on_date.isoformat()} {slot_time} is no longer available"
            ) from e

        logger.info(
            f"Appointment {appointment.id} booked: centre {centre_id} "
            f"{on_date} {slot_time} by citizen {actor.id}"
        )
        self.dispatcher.deliver_after_commit(notification)
        return appointment

    def approve(
        self, actor: Actor, appointment_id: int, notes: Optional[str] = None
    ) -> Appointment:
        """
        Approve and assign a queue number for the effective date.

        Re-approving an approved appointment keeps its queue number.

        Raises:
            NotFound, InvalidTransition, PermissionDenied
        """
        self._require_staff(actor)

        with self.session_factory() as session:
            appointment = self._lock(session, appointment_id)
            status = appointment.status
            if status not in _ACTIVE:
                raise InvalidTransition("approve", status)

            centre = self._get_centre(session, appointment.centre_id)
            queue_date = appointment.effective_date

            if status == AppointmentStatus.APPROVED.value and appointment.queue_number:
                queue_number = appointment.queue_number
            else:
                queue_number = get_next_queue_number(session, centre.id, queue_date)

            appointment.status = AppointmentStatus.APPROVED.value
            appointment.approved_by = actor.id
            appointment.approved_at = utcnow()
            appointment.queue_number = queue_number
            appointment.staff_notes = notes or None
            appointment.estimated_wait_minutes = calculate_wait_time(
                session, centre.id, queue_date, queue_number
            )
            AppointmentRepository(session).save(appointment)

            notification = self._notify(
                session, NotificationEvent.APPROVED, appointment, centre
            )

        logger.info(
            f"Appointment {appointment_id} approved by {actor.id} "
            f"with queue number {queue_number} for {queue_date}"
        )
        self.dispatcher.deliver_after_commit(notification)
        return appointment

    def reschedule(
        self,
        actor: Actor,
        appointment_id: int,
        new_date,
        new_time: str,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Move a pending or approved appointment to another slot.

        The queue number is left alone; a later approval numbers the new date.

        Raises:
            NotFound, InvalidTransition, PermissionDenied, ValidationError, SlotConflict
        """
        self._require_staff(actor)
        if new_date is None or not new_time:
            raise ValidationError("new_date and new_time are required")
        on_date = parse_date(new_date)
        slot_time = normalize_time(new_time)

        try:
            with self.session_factory() as session:
                appointment = self._lock(session, appointment_id)
                if appointment.status not in (
                    AppointmentStatus.PENDING.value,
                    AppointmentStatus.APPROVED.value,
                ):
                    raise InvalidTransition("reschedule", appointment.status)

                centre = self._get_centre(session, appointment.centre_id)
                self._check_slot(session, centre, on_date, slot_time, exclude_id=appointment.id)

                original_date = appointment.effective_date
                original_time = appointment.effective_time

                appointment.status = AppointmentStatus.RESCHEDULED.value
                appointment.rescheduled_date = on_date
                appointment.rescheduled_time = slot_time
                appointment.staff_notes = notes or None
                AppointmentRepository(session).save(appointment)

                notification = self._notify(
                    session,
                    NotificationEvent.RESCHEDULED,
                    appointment,
                    centre,
                    original_date=original_date,
                    original_time=original_time,
                    new_date=on_date,
                    new_time=slot_time,
                )
        except IntegrityError as e:
            raise SlotConflict(
                f"Slot {on_date.isoformat()} {slot_time} is no longer available"
            ) from e

        logger.info(
            f"Appointment {appointment_id} rescheduled by {actor.id} "
            f"from {original_date} {original_time} to {on_date} {slot_time}"
        )
        self.dispatcher.deliver_after_commit(notification)
        return appointment

    def _close(
        self,
        actor: Actor,
        appointment_id: int,
        operation: str,
        new_status: AppointmentStatus,
        allowed_from,
        notify: bool = False,
    ) -> Appointment:
        notification = None
        with self.session_factory() as session:
            appointment = self._lock(session, appointment_id)
            self._require_owner_or_staff(actor, appointment)
            if appointment.status not in allowed_from:
                raise InvalidTransition(operation, appointment.status)

            appointment.status = new_status.value
            AppointmentRepository(session).save(appointment)

            if notify:
                centre = self._get_centre(session, appointment.centre_id)
                notification = self._notify(
                    session, NotificationEvent.CANCELLED, appointment, centre
                )

        logger.info(f"Appointment {appointment_id} {new_status.value} by {actor.id}")
        self.dispatcher.deliver_after_commit(notification)
        return appointment

    def cancel(self, actor: Actor, appointment_id: int) -> Appointment:
        """Cancel from any non-terminal status (owning citizen or staff)"""
        return self._close(
            actor,
            appointment_id,
            "cancel",
            AppointmentStatus.CANCELLED,
            _ACTIVE,
            notify=True,
        )

    def reject(self, actor: Actor, appointment_id: int) -> Appointment:
        """Staff rejection; stored as cancelled"""
        self._require_staff(actor)
        return self._close(
            actor,
            appointment_id,
            "reject",
            AppointmentStatus.CANCELLED,
            _ACTIVE,
            notify=True,
        )

    def complete(self, actor: Actor, appointment_id: int) -> Appointment:
        """Citizen was served (staff only, from approved)"""
        self._require_staff(actor)
        return self._close(
            actor,
            appointment_id,
            "complete",
            AppointmentStatus.COMPLETED,
            {AppointmentStatus.APPROVED.value},
        )

    def mark_no_show(self, actor: Actor, appointment_id: int) -> Appointment:
        """Citizen did not turn up (staff only, from approved)"""
        self._require_staff(actor)
        return self._close(
            actor,
            appointment_id,
            "mark as no-show",
            AppointmentStatus.NO_SHOW,
            {AppointmentStatus.APPROVED.value},
        )

    def update_notes(
        self, actor: Actor, appointment_id: int, notes: Optional[str]
    ) -> Appointment:
        """Citizen edits their own notes while the appointment is open"""
        with self.session_factory() as session:
            appointment = self._lock(session, appointment_id)
            if actor.id != appointment.citizen_id:
                raise PermissionDenied(
                    f"Only the booking citizen can edit notes on appointment {appointment_id}"
                )
            if appointment.status not in _ACTIVE:
                raise InvalidTransition("edit notes on", appointment.status)

            appointment.notes = notes or None
            AppointmentRepository(session).save(appointment)
        return appointment

    # ----------------------------------------------------------------- queries

    def get_appointment(self, actor: Actor, appointment_id: int) -> Appointment:
        with self.session_factory() as session:
            appointment = AppointmentRepository(session).get_appointment(appointment_id)
            if appointment is None:
                raise NotFound("Appointment", appointment_id)
            self._require_owner_or_staff(actor, appointment)
            return appointment

    def list_appointments(
        self, actor: Actor, status: Optional[str] = None
    ) -> List[Appointment]:
        """Staff view: all appointments by date and time"""
        self._require_staff(actor)
        if status is not None:
            try:
                status = AppointmentStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown appointment status '{status}'")
        with self.session_factory() as session:
            return AppointmentRepository(session).list_appointments(status)

    def list_citizen_appointments(self, actor: Actor) -> List[Appointment]:
        """The calling citizen's own appointments"""
        with self.session_factory() as session:
            return AppointmentRepository(session).list_citizen_appointments(actor.id)
