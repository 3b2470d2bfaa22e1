"""
Engine and transaction scope for the front desk store.
One get_session() block is one transaction: it commits when the block exits
cleanly and rolls back when it raises.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from huduma.config import get_config
from huduma import db_models  # noqa: F401  (registers tables on SQLModel.metadata)

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def build_engine(database_url: str, busy_timeout: float = 30.0) -> Engine:
    """Create an engine; SQLite gets a busy timeout so concurrent writers queue up"""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": busy_timeout}
    return create_engine(database_url, echo=False, connect_args=connect_args)


def get_engine() -> Engine:
    """Shared engine built from HudumaConfig on first use"""
    global _engine
    if _engine is None:
        config = get_config()
        _engine = build_engine(config.database_url, config.db_busy_timeout)
        logger.info(f"Database engine created: {_engine.url.render_as_string()}")
    return _engine


def init_database(engine: Optional[Engine] = None) -> None:
    """Create missing tables together with the slot and queue constraints"""
    SQLModel.metadata.create_all(engine or get_engine())
    logger.info("Huduma tables ready")


@contextmanager
def get_session(engine: Optional[Engine] = None) -> Generator[Session, None, None]:
    """
    Open a transaction-scoped session.

    Objects stay readable after commit (expire_on_commit=False), so services
    can hand committed appointments back to their callers.

    Usage:
        with get_session() as session:
            appointment = AppointmentRepository(session).lock_appointment(appointment_id)
            appointment.status = "approved"
    """
    session = Session(engine or get_engine(), expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_database() -> None:
    """Dispose of the shared engine's connection pool"""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Database engine disposed")
