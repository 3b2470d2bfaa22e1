"""
Huduma Front Desk - Outbox Worker Entry Point
Drains pending notifications that were not delivered inline.
"""
import logging
import time

from huduma.config import get_config
from huduma.database import close_database, init_database
from huduma.services.notification_service import NotificationDispatcher

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)


def run_once(dispatcher: NotificationDispatcher, batch_size: int) -> dict:
    """Deliver one batch of pending notifications and report stuck claims"""
    counts = dispatcher.dispatch_pending(limit=batch_size)
    stale = dispatcher.list_stale()
    if stale:
        logger.warning(
            f"{len(stale)} notification(s) claimed without an outcome: "
            f"{[n.id for n in stale]}"
        )
    return counts


def main() -> None:
    """Start the outbox worker"""
    config = get_config()

    logger.info("Initializing database...")
    init_database()

    dispatcher = NotificationDispatcher()
    logger.info(
        f"Outbox worker started (every {config.outbox_poll_interval}s, "
        f"batch {config.outbox_batch_size})"
    )

    try:
        while True:
            try:
                run_once(dispatcher, config.outbox_batch_size)
            except Exception as e:
                logger.error(f"Outbox drain failed: {e}")
            time.sleep(config.outbox_poll_interval)
    except KeyboardInterrupt:
        logger.info("Outbox worker stopped")
    finally:
        close_database()


if __name__ == '__main__':
    main()
