"""Wires the booking and notification components around one store handle."""
from datetime import timedelta

from roombook.models import DeliveryMethodCode
from roombook.services.booking_service import BookingService
from roombook.services.channels import EmailChannel, InAppChannel, PushChannel
from roombook.services.conflict_checker import ConflictChecker
from roombook.services.lookups import Lookups
from roombook.services.notification_dispatcher import NotificationDispatcher
from roombook.services.notification_pipeline import NotificationPipeline
from roombook.services.notification_scheduler import NotificationScheduler


class Engine:

    def __init__(self, session, config):
        self.session = session
        self.lookups = Lookups(session)
        self.conflict_checker = ConflictChecker(session, self.lookups)
        self.scheduler = NotificationScheduler(
            session,
            self.lookups,
            batch_size=config.get('NOTIFICATION_BATCH_SIZE', 100),
            max_retries=config.get('NOTIFICATION_MAX_RETRIES', 3),
            reminder_buffer=timedelta(minutes=config.get('REMINDER_BUFFER_MINUTES', 5)),
        )
        self.bookings = BookingService(
            session,
            self.lookups,
            self.conflict_checker,
            self.scheduler,
            requires_approval=config.get('BOOKING_REQUIRES_APPROVAL', False),
            notify_on_cancel=config.get('NOTIFY_ON_CANCEL', True),
            display_timezone=config.get('DISPLAY_TIMEZONE', 'UTC'),
            working_hours=(config.get('WORKING_HOURS_START', 8), config.get('WORKING_HOURS_END', 18)),
        )
        self.dispatcher = NotificationDispatcher(
            session,
            self.lookups,
            channels=build_channels(config),
            mark_all_delivered=config.get('MARK_RECIPIENTS_DELIVERED_ON_FAILURE', True),
        )
        self.pipeline = NotificationPipeline(self.scheduler, self.dispatcher)


def build_channels(config):
    timeout = config.get('CHANNEL_TIMEOUT_SECONDS', 10)
    # SMS has no provider yet; the dispatcher skips methods without a channel.
    return {
        DeliveryMethodCode.IN_APP: InAppChannel(),
        DeliveryMethodCode.EMAIL: EmailChannel(
            api_url=config.get('EMAIL_API_URL'),
            api_key=config.get('EMAIL_API_KEY'),
            sender=config.get('EMAIL_FROM'),
            timeout=timeout,
        ),
        DeliveryMethodCode.PUSH: PushChannel(
            api_url=config.get('PUSH_API_URL'),
            api_key=config.get('PUSH_API_KEY'),
            timeout=timeout,
        ),
    }


def get_engine(app=None):
    from flask import current_app
    return (app or current_app).extensions['roombook']
