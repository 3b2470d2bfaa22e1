"""
Queue manager for per-centre, per-day queue numbers.
Numbers are issued by a single atomic increment on the counter row, inside the
caller's transaction, so concurrent approvals never share a number.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from huduma.config import get_config
from huduma.db_models import QueueCounter, utcnow
from huduma.models import QueueStatus
from huduma.repositories import AppointmentRepository, QueueCounterRepository

logger = logging.getLogger(__name__)


def _increment(session: Session, centre_id: int, queue_date: date) -> Optional[int]:
    """UPDATE ... SET n = n + 1 RETURNING n; None when the counter row is missing"""
    statement = (
        update(QueueCounter)
        .where(
            QueueCounter.centre_id == centre_id,
            QueueCounter.queue_date == queue_date,
        )
        .values(
            current_queue_number=QueueCounter.current_queue_number + 1,
            updated_at=utcnow(),
        )
        .returning(QueueCounter.current_queue_number)
        .execution_options(synchronize_session=False)
    )
    return session.exec(statement).scalar_one_or_none()


def get_next_queue_number(
    session: Session,
    centre_id: int,
    queue_date: date,
    average_service_time_minutes: Optional[int] = None,
) -> int:
    """
    Issue the next queue number for a centre and day.

    The first call of the day creates the counter at 1. If another transaction
    creates it first, the unique constraint rejects our insert and we fall back
    to the increment. Must run inside the transaction that stores the number.

    Args:
        session: Open session of the approving transaction
        centre_id: Centre ID
        queue_date: Effective appointment date
        average_service_time_minutes: Seed for a newly created counter

    Returns:
        Queue number, 1 for the first approval of the day
    """
    number = _increment(session, centre_id, queue_date)
    if number is not None:
        logger.info(f"Issued queue number {number} for centre {centre_id} on {queue_date}")
        return number

    if average_service_time_minutes is None:
        average_service_time_minutes = get_config().default_service_time_minutes

    try:
        with session.begin_nested():
            session.add(
                QueueCounter(
                    centre_id=centre_id,
                    queue_date=queue_date,
                    current_queue_number=1,
                    average_service_time_minutes=average_service_time_minutes,
                )
            )
        number = 1
        logger.info(f"Opened queue for centre {centre_id} on {queue_date}")
    except IntegrityError:
        logger.debug(f"Queue for centre {centre_id} on {queue_date} opened concurrently")
        number = _increment(session, centre_id, queue_date)

    logger.info(f"Issued queue number {number} for centre {centre_id} on {queue_date}")
    return number


def calculate_wait_time(
    session: Session, centre_id: int, queue_date: date, queue_number: int
) -> int:
    """Estimated minutes until a queue number is served"""
    counter = QueueCounterRepository(session).get_counter(centre_id, queue_date)
    if counter:
        average = counter.average_service_time_minutes
    else:
        average = get_config().default_service_time_minutes
    return max(queue_number - 1, 0) * average


def get_queue_status(session: Session, centre_id: int, on_date: date) -> QueueStatus:
    """Live queue information for a centre's day (zeros before the first approval)"""
    counter = QueueCounterRepository(session).get_counter(centre_id, on_date)
    appointments_today = AppointmentRepository(session).count_active(centre_id, on_date)

    return QueueStatus(
        centre_id=centre_id,
        queue_date=on_date.isoformat(),
        current_queue_number=counter.current_queue_number if counter else 0,
        average_service_time_minutes=(
            counter.average_service_time_minutes
            if counter
            else get_config().default_service_time_minutes
        ),
        appointments_today=appointments_today,
    )
