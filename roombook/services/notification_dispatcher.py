import logging

from sqlalchemy.exc import SQLAlchemyError

from roombook.errors import DeliveryError
from roombook.models import DeliveryMethodCode, DeliveryStatusCode, NotificationStatusCode
from roombook.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

SENT = 'sent'
RETRYING = 'retrying'
FAILED = 'failed'
ERROR = 'error'


class NotificationDispatcher:
    """Sends due notifications to every recipient over every delivery method.

    A failing channel never stops the others; the notification as a whole is
    Sent only when no channel failed, otherwise its retry counter advances
    until it reaches max_retries and the notification becomes Failed.
    """

    def __init__(self, session, lookups, channels, mark_all_delivered=True):
        self.session = session
        self.lookups = lookups
        self.channels = dict(channels)
        # Policy switch: True keeps the historical "recipient Delivered no matter what".
        self.mark_all_delivered = mark_all_delivered

    def dispatch_batch(self, notifications, now=None):
        now = now or utcnow()
        counts = {SENT: 0, RETRYING: 0, FAILED: 0, ERROR: 0}
        # Sequential: each notification's status update is committed before the next starts.
        for notification in notifications:
            counts[self.dispatch(notification, now)] += 1
        logger.info(
            "Dispatched %d notifications: %d sent, %d retrying, %d failed, %d errors",
            len(notifications), counts[SENT], counts[RETRYING], counts[FAILED], counts[ERROR],
        )
        return counts

    def dispatch(self, notification, now=None):
        now = now or utcnow()
        notification_id = notification.id
        errors = self._deliver(notification)

        if not errors:
            notification.status_id = self.lookups.require(NotificationStatusCode.SENT)
            notification.sent_at = now
            notification.error_message = None
            outcome = SENT
        elif notification.retry_count + 1 >= notification.max_retries:
            notification.status_id = self.lookups.require(NotificationStatusCode.FAILED)
            notification.retry_count = min(notification.retry_count + 1, notification.max_retries)
            notification.error_message = '; '.join(errors)
            outcome = FAILED
        else:
            # scheduled_for stays put, so the next tick picks it up again
            notification.retry_count += 1
            notification.error_message = '; '.join(errors)
            outcome = RETRYING
        notification.updated_by = 'SYSTEM'

        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Failed to record delivery outcome for notification %s", notification_id)
            return ERROR

        if outcome == FAILED:
            logger.error("Notification %s failed permanently after %d attempts: %s",
                         notification_id, notification.retry_count, notification.error_message)
        elif outcome == RETRYING:
            logger.warning("Notification %s will be retried (%d/%d): %s", notification_id,
                           notification.retry_count, notification.max_retries, notification.error_message)
        return outcome

    def _deliver(self, notification):
        delivered = self.lookups.require(DeliveryStatusCode.DELIVERED)
        failed = self.lookups.require(DeliveryStatusCode.FAILED)
        errors = []

        for recipient in notification.recipients:
            recipient_errors = []
            for method in recipient.delivery_methods:
                code = DeliveryMethodCode(method.delivery_method_id)
                channel = self.channels.get(code)
                if channel is None:
                    logger.warning("No channel configured for %s, skipping notification %s for user %s",
                                   code.value, notification.id, recipient.user_id)
                    continue
                try:
                    channel.send(notification, recipient.user)
                except DeliveryError as e:
                    recipient_errors.append(f"{code.value} to user {recipient.user_id}: {e.message}")
                except Exception as e:  # noqa: BLE001
                    logger.exception("Unexpected %s channel error for notification %s", code.value, notification.id)
                    recipient_errors.append(f"{code.value} to user {recipient.user_id}: {e}")

            if recipient_errors and not self.mark_all_delivered:
                recipient.delivery_status_id = failed
            else:
                recipient.delivery_status_id = delivered
            errors.extend(recipient_errors)

        return errors
