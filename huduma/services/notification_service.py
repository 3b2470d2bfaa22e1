"""
Notification service - transactional outbox for citizen and applicant messages.

Business transitions call enqueue() inside their own transaction, so the
pending notification commits (or rolls back) together with the state change.
Delivery happens afterwards via deliver(), inline or from the outbox worker,
and its outcome is recorded on the row. A delivery failure never propagates
back into the business operation.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, ContextManager, Dict, List, Optional

from sqlalchemy import update
from sqlmodel import Session

from huduma.config import get_config
from huduma.database import get_session
from huduma.db_models import Notification, utcnow
from huduma.exceptions import NotFound, NotificationDeliveryError
from huduma.mail_transport import EmailChannel
from huduma.models import (
    DeliveryResult,
    NotificationChannel,
    NotificationEvent,
    NotificationStatus,
    Recipient,
)
from huduma.repositories import NotificationRepository
from huduma.services.notification_templates import render
from huduma.sms_gateway_client import SmsGatewayChannel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]


def default_channels() -> Dict[NotificationChannel, Any]:
    """Channels available with the current configuration"""
    config = get_config()
    channels: Dict[NotificationChannel, Any] = {NotificationChannel.EMAIL: EmailChannel(config)}
    if config.sms_enabled:
        channels[NotificationChannel.SMS] = SmsGatewayChannel(config)
    return channels


class NotificationDispatcher:
    """
    Compose, record and deliver notifications.

    Channels are objects with send(to, subject, body) -> DeliveryResult that
    raise NotificationDeliveryError on failure.
    """

    def __init__(
        self,
        channels: Optional[Dict[NotificationChannel, Any]] = None,
        session_factory: SessionFactory = get_session,
    ):
        self.channels = default_channels() if channels is None else channels
        self.session_factory = session_factory

    def choose_channel(self, recipient: Recipient) -> NotificationChannel:
        """Email when there is an address, SMS for phone-only recipients"""
        if recipient.email:
            return NotificationChannel.EMAIL
        if recipient.phone and NotificationChannel.SMS in self.channels:
            return NotificationChannel.SMS
        return NotificationChannel.EMAIL

    def enqueue(
        self,
        session: Session,
        event: NotificationEvent,
        recipient: Recipient,
        context: Dict[str, Any],
        appointment_id: Optional[int] = None,
        citizen_id: Optional[str] = None,
        applicant_id: Optional[int] = None,
    ) -> Notification:
        """
        Append a pending notification inside the caller's transaction.

        Args:
            session: Session of the triggering business transaction
            event: Triggering event
            recipient: Name and contact details
            context: Template values (dates, centre, queue number, ...)

        Returns:
            The pending Notification (id assigned, not yet committed)
        """
        channel = self.choose_channel(recipient)
        address = recipient.email if channel == NotificationChannel.EMAIL else recipient.phone
        message = render(event, channel, {"name": recipient.name, **context})

        notification = Notification(
            event=NotificationEvent(event).value,
            channel=channel.value,
            recipient=address,
            subject=message.subject,
            message=message.body,
            appointment_id=appointment_id,
            citizen_id=citizen_id,
            applicant_id=applicant_id,
        )
        NotificationRepository(session).add_notification(notification)
        logger.info(
            f"Queued {notification.event} {notification.channel} notification "
            f"{notification.id} for {address or 'unknown recipient'}"
        )
        return notification

    def _claim(self, notification_id: int) -> bool:
        """Mark the single attempt as taken; False if it already was"""
        with self.session_factory() as session:
            statement = (
                update(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.status == NotificationStatus.PENDING.value,
                    Notification.attempts == 0,
                )
                .values(attempts=Notification.attempts + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return session.exec(statement).rowcount == 1

    def _send(self, notification: Notification) -> DeliveryResult:
        if not notification.recipient:
            raise NotificationDeliveryError(
                f"Recipient has no {notification.channel} address on file"
            )
        channel = self.channels.get(NotificationChannel(notification.channel))
        if channel is None:
            raise NotificationDeliveryError(
                f"No {notification.channel} channel configured"
            )
        return channel.send(notification.recipient, notification.subject, notification.message)

    def deliver(self, notification_id: int) -> Notification:
        """
        Attempt delivery of one pending notification, exactly once.

        Never raises for delivery problems: the outcome is written to the row
        (sent + sent_at, or failed + error_message).

        Raises:
            NotFound: If the notification does not exist
        """
        with self.session_factory() as session:
            notification = NotificationRepository(session).get_notification(notification_id)
            if notification is None:
                raise NotFound("Notification", notification_id)

        if not self._claim(notification_id):
            with self.session_factory() as session:
                notification = NotificationRepository(session).get_notification(
                    notification_id
                )
            logger.info(
                f"Notification {notification_id} already attempted ({notification.status})"
            )
            return notification

        result: Optional[DeliveryResult] = None
        error: Optional[str] = None
        try:
            result = self._send(notification)
        except NotificationDeliveryError as e:
            error = str(e) or e.__class__.__name__
        except Exception as e:
            # Transports may raise anything; the attempt still counts as failed
            logger.exception(f"Unexpected error delivering notification {notification_id}")
            error = str(e) or e.__class__.__name__

        with self.session_factory() as session:
            repo = NotificationRepository(session)
            notification = repo.get_notification(notification_id)
            if error is None:
                notification.status = NotificationStatus.SENT.value
                notification.sent_at = utcnow()
                notification.provider_message_id = result.provider_message_id if result else None
                logger.info(f"Notification {notification_id} sent to {notification.recipient}")
            else:
                notification.status = NotificationStatus.FAILED.value
                notification.error_message = error
                logger.warning(f"Notification {notification_id} failed: {error}")
            repo.save(notification)

        return notification

    def dispatch(
        self,
        event: NotificationEvent,
        recipient: Recipient,
        context: Dict[str, Any],
        appointment_id: Optional[int] = None,
        citizen_id: Optional[str] = None,
        applicant_id: Optional[int] = None,
    ) -> Notification:
        """Record and deliver in one call, for callers without a transaction"""
        with self.session_factory() as session:
            notification = self.enqueue(
                session,
                event,
                recipient,
                context,
                appointment_id=appointment_id,
                citizen_id=citizen_id,
                applicant_id=applicant_id,
            )
        return self.deliver(notification.id)

    def deliver_after_commit(self, notification: Optional[Notification]) -> None:
        """Inline delivery for a just-committed outbox row; leftovers go to the worker"""
        if notification is None or notification.id is None:
            return
        try:
            self.deliver(notification.id)
        except Exception:
            logger.exception(
                f"Inline delivery of notification {notification.id} failed; "
                "left for the outbox worker"
            )

    def dispatch_pending(self, limit: int = 50) -> Dict[str, int]:
        """
        Drain the outbox once.

        Returns:
            Counts of {"sent", "failed", "skipped"} in this pass
        """
        with self.session_factory() as session:
            pending_ids = [
                n.id
                for n in NotificationRepository(session).get_pending(limit)
                if n.attempts == 0
            ]

        counts = {"sent": 0, "failed": 0, "skipped": 0}
        for notification_id in pending_ids:
            notification = self.deliver(notification_id)
            if notification.status == NotificationStatus.SENT.value:
                counts["sent"] += 1
            elif notification.status == NotificationStatus.FAILED.value:
                counts["failed"] += 1
            else:
                counts["skipped"] += 1

        if pending_ids:
            logger.info(f"Outbox drained: {counts}")
        return counts

    def mark_delivered(
        self, notification_id: int, provider_message_id: Optional[str] = None
    ) -> Notification:
        """
        Record a provider delivery receipt.

        Only a sent notification moves to delivered; anything else is left
        untouched so status never regresses.
        """
        with self.session_factory() as session:
            repo = NotificationRepository(session)
            notification = repo.get_notification(notification_id)
            if notification is None:
                raise NotFound("Notification", notification_id)

            if notification.status != NotificationStatus.SENT.value:
                logger.warning(
                    f"Ignoring delivery receipt for notification {notification_id} "
                    f"in status {notification.status}"
                )
                return notification

            notification.status = NotificationStatus.DELIVERED.value
            notification.delivered_at = utcnow()
            if provider_message_id:
                notification.provider_message_id = provider_message_id
            repo.save(notification)
            return notification

    def list_failed(self) -> List[Notification]:
        """Failed notifications for the operational dashboard"""
        with self.session_factory() as session:
            return NotificationRepository(session).get_failed()

    def list_stale(self, older_than_minutes: Optional[int] = None) -> List[Notification]:
        """
        Claimed notifications with no recorded outcome.

        The process died, or the outcome write failed, between claiming the
        attempt and recording it. These rows are never retried automatically.
        """
        if older_than_minutes is None:
            older_than_minutes = get_config().outbox_stale_after_minutes
        claimed_before = utcnow() - timedelta(minutes=older_than_minutes)
        with self.session_factory() as session:
            return NotificationRepository(session).get_stale_claims(claimed_before)
