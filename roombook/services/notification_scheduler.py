import logging
from collections import namedtuple
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from roombook.models import (
    Booking,
    BookingStatusCode,
    DeliveryMethodCode,
    DeliveryStatusCode,
    Notification,
    NotificationPriorityCode,
    NotificationRecipient,
    NotificationRecipientMethod,
    NotificationStatusCode,
    NotificationTypeCode,
)
from roombook.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# marker is embedded in the reminder content and doubles as the idempotency key
ReminderWindow = namedtuple('ReminderWindow', ['marker', 'lead_time'])

REMINDER_WINDOWS = (
    ReminderWindow('24 hours', timedelta(hours=24)),
    ReminderWindow('1 hour', timedelta(hours=1)),
)

DEFAULT_METHODS = (DeliveryMethodCode.IN_APP, DeliveryMethodCode.EMAIL)


def unique_ids(*groups):
    seen = []
    for group in groups:
        for user_id in group:
            if user_id is not None and user_id not in seen:
                seen.append(user_id)
    return seen


class NotificationScheduler:
    """Creates notification rows and selects the ones that are due.

    enqueue() only adds to the session; the caller owns the transaction so a
    booking and its notification are committed (or rolled back) together.
    """

    def __init__(self, session, lookups, batch_size=100, max_retries=3, reminder_buffer=timedelta(minutes=5),
                 windows=REMINDER_WINDOWS):
        self.session = session
        self.lookups = lookups
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.reminder_buffer = reminder_buffer
        self.windows = windows

    def enqueue(self, type_code, title, content, recipient_ids, booking_id=None, methods=DEFAULT_METHODS,
                priority=NotificationPriorityCode.NORMAL, scheduled_for=None, created_by='SYSTEM'):
        pending_delivery = self.lookups.require(DeliveryStatusCode.PENDING)
        method_ids = [self.lookups.require(m) for m in methods]

        notification = Notification(
            title=title,
            content=content,
            type_id=self.lookups.require(type_code),
            status_id=self.lookups.require(NotificationStatusCode.PENDING),
            priority_id=self.lookups.require(priority),
            booking_id=booking_id,
            scheduled_for=scheduled_for or utcnow(),
            retry_count=0,
            max_retries=self.max_retries,
            created_by=str(created_by),
        )
        for user_id in unique_ids(recipient_ids):
            recipient = NotificationRecipient(user_id=user_id, delivery_status_id=pending_delivery)
            recipient.delivery_methods = [NotificationRecipientMethod(delivery_method_id=m) for m in method_ids]
            notification.recipients.append(recipient)

        self.session.add(notification)
        return notification

    def drain_due(self, now=None):
        """Pending, undeleted notifications whose due time has passed, oldest first."""
        now = now or utcnow()
        pending = self.lookups.require(NotificationStatusCode.PENDING)
        return (
            self.session.query(Notification)
            .filter(
                Notification.scheduled_for <= now,
                Notification.status_id == pending,
                Notification.deleted_at.is_(None),
            )
            .order_by(Notification.scheduled_for, Notification.id)
            .limit(self.batch_size)
            .all()
        )

    def reminder_candidates(self, window, now=None):
        now = now or utcnow()
        target = now + window.lead_time
        reminder_type = self.lookups.require(NotificationTypeCode.BOOKING_REMINDER)
        active = [
            self.lookups.require(BookingStatusCode.PENDING),
            self.lookups.require(BookingStatusCode.CONFIRMED),
        ]
        # Best-effort de-dup: two concurrent ticks can both pass this check.
        already_reminded = (
            self.session.query(Notification.id)
            .filter(
                Notification.booking_id == Booking.id,
                Notification.type_id == reminder_type,
                Notification.content.contains(window.marker),
            )
            .exists()
        )
        return (
            self.session.query(Booking)
            .filter(
                Booking.start_time >= target - self.reminder_buffer,
                Booking.start_time <= target + self.reminder_buffer,
                Booking.deleted_at.is_(None),
                Booking.status_id.in_(active),
                ~already_reminded,
            )
            .order_by(Booking.start_time)
            .all()
        )

    def generate_reminders(self, now=None):
        """Create at most one reminder per booking and window. Returns counts keyed by marker."""
        now = now or utcnow()
        created = {}
        for window in self.windows:
            created[window.marker] = 0
            for booking in self.reminder_candidates(window, now):
                try:
                    with self.session.begin_nested():
                        self._add_reminder(booking, window, now)
                    created[window.marker] += 1
                except SQLAlchemyError:
                    logger.exception("Failed to create %s reminder for booking %s", window.marker, booking.id)
        self.session.commit()
        logger.info(
            "Created %s",
            ', '.join(f"{count} {marker} reminders" for marker, count in created.items()),
        )
        return created

    def _add_reminder(self, booking, window, now):
        room = booking.room
        recipients = unique_ids([booking.user_id], [p.user_id for p in booking.participants])
        return self.enqueue(
            NotificationTypeCode.BOOKING_REMINDER,
            title=f"Reminder: Booking in {window.marker}",
            content=f"Your booking for {room.display_name} is scheduled to start in {window.marker}.",
            recipient_ids=recipients,
            booking_id=booking.id,
            scheduled_for=now,
        )
