"""
Slot generation and availability for service centres.
Slots are derived from operating hours; availability is the slot grid minus
what active appointments already hold.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlmodel import Session

from huduma.config import get_config
from huduma.db_models import Centre
from huduma.exceptions import InvalidConfiguration, ValidationError
from huduma.models import Slot
from huduma.repositories import AppointmentRepository

logger = logging.getLogger(__name__)

TIME_FORMAT = "%H:%M"

# Citizens may book up to this many days ahead
DEFAULT_BOOKING_HORIZON_DAYS = 30


def parse_time(value: str) -> datetime:
    """Parse 'HH:MM' (or 'HH:MM:SS' as stored by some databases)"""
    try:
        return datetime.strptime(value[:5], TIME_FORMAT)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")


def normalize_time(value: str) -> str:
    """Canonical 'HH:MM' form of a time string"""
    return parse_time(value).strftime(TIME_FORMAT)


def generate_slots(start: str, end: str, duration_minutes: int) -> List[str]:
    """
    Build the ordered slot start times for an operating window.

    Only full slots are offered: a trailing period shorter than the slot
    duration is dropped.

    Args:
        start: Opening time, 'HH:MM'
        end: Closing time, 'HH:MM'
        duration_minutes: Slot length

    Returns:
        Slot start times as 'HH:MM' strings, ascending

    Raises:
        InvalidConfiguration: If duration <= 0 or start >= end
    """
    if duration_minutes is None or duration_minutes <= 0:
        raise InvalidConfiguration(
            f"Slot duration must be positive, got {duration_minutes}"
        )

    try:
        opening = parse_time(start)
        closing = parse_time(end)
    except ValidationError as e:
        raise InvalidConfiguration(str(e))

    if opening >= closing:
        raise InvalidConfiguration(
            f"Opening time {start} must be before closing time {end}"
        )

    step = timedelta(minutes=duration_minutes)
    slots = []
    current = opening
    while current + step <= closing:
        slots.append(current.strftime(TIME_FORMAT))
        current += step
    return slots


def generate_centre_slots(centre: Centre) -> List[str]:
    """Slot grid for a centre's configured hours"""
    return generate_slots(
        centre.operating_hours_start,
        centre.operating_hours_end,
        centre.slot_duration_minutes,
    )


def is_disabled_day(on_date: date, today: date) -> bool:
    """Past dates and weekends are never offered"""
    return on_date < today or on_date.weekday() >= 5


def check_booking_date(
    on_date: date,
    today: date,
    horizon_days: int = DEFAULT_BOOKING_HORIZON_DAYS,
) -> None:
    """
    Enforce the booking date policy.

    Raises:
        ValidationError: If the date is in the past, on a weekend, or beyond
            the booking horizon
    """
    if on_date < today:
        raise ValidationError(f"{on_date.isoformat()} is in the past")
    if on_date.weekday() >= 5:
        raise ValidationError(f"{on_date.isoformat()} falls on a weekend")
    if on_date > today + timedelta(days=horizon_days):
        raise ValidationError(
            f"{on_date.isoformat()} is more than {horizon_days} days ahead"
        )


def bookable_dates(
    today: date, horizon_days: int = DEFAULT_BOOKING_HORIZON_DAYS
) -> List[date]:
    """All dates a citizen can pick, today through the horizon"""
    return [
        today + timedelta(days=offset)
        for offset in range(horizon_days + 1)
        if not is_disabled_day(today + timedelta(days=offset), today)
    ]


def local_today() -> date:
    """Today in the configured timezone"""
    return datetime.now(ZoneInfo(get_config().timezone)).date()


def is_bookable_date(
    on_date: date,
    today: date,
    horizon_days: int = DEFAULT_BOOKING_HORIZON_DAYS,
) -> bool:
    """True when on_date passes the booking date policy"""
    try:
        check_booking_date(on_date, today, horizon_days)
    except ValidationError:
        return False
    return True


def get_availability(
    session: Session,
    centre: Centre,
    on_date: date,
    today: Optional[date] = None,
    horizon_days: Optional[int] = None,
) -> List[Slot]:
    """
    Annotate a centre's slot grid with availability for one date.

    A slot is available iff the date passes the booking policy and no active
    appointment occupies it. Past dates, weekends, dates beyond the horizon
    and days that reached max_daily_appointments read as fully booked.

    Args:
        today: Reference date, defaults to today in the configured timezone
        horizon_days: Booking horizon, defaults to the configured one
    """
    slots = generate_centre_slots(centre)
    today = today or local_today()
    if horizon_days is None:
        horizon_days = get_config().booking_horizon_days

    if not is_bookable_date(on_date, today, horizon_days):
        return [Slot(time=slot, available=False) for slot in slots]

    booked = set(AppointmentRepository(session).get_booked_times(centre.id, on_date))
    fully_booked = len(booked) >= centre.max_daily_appointments

    if fully_booked:
        logger.info(
            f"Centre {centre.id} is fully booked on {on_date.isoformat()} "
            f"({len(booked)}/{centre.max_daily_appointments})"
        )

    return [
        Slot(time=slot, available=not fully_booked and slot not in booked)
        for slot in slots
    ]


def get_available_slots(
    session: Session,
    centre: Centre,
    on_date: date,
    today: Optional[date] = None,
    horizon_days: Optional[int] = None,
) -> List[str]:
    """Just the free slot times"""
    return [
        slot.time
        for slot in get_availability(session, centre, on_date, today, horizon_days)
        if slot.available
    ]
