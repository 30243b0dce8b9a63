import logging
import threading

from roombook.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class NotificationPipeline:
    """One tick: dispatch due notifications, then generate upcoming reminders.

    Not re-entrant: a tick that starts while another is still running on the
    same pipeline is skipped instead of queued behind it.
    """

    def __init__(self, scheduler, dispatcher):
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self._lock = threading.Lock()

    @property
    def running(self):
        return self._lock.locked()

    def run_once(self, now=None):
        if not self._lock.acquire(blocking=False):
            logger.warning("Notification processing already in progress, skipping this tick")
            return {'success': True, 'processed': 0, 'skipped': True}

        try:
            now = now or utcnow()
            logger.info("Processing pending notifications...")
            due = self.scheduler.drain_due(now)
            logger.info("Found %d notifications to process", len(due))
            outcome = self.dispatcher.dispatch_batch(due, now)
            reminders = self.scheduler.generate_reminders(now)
            return {
                'success': True,
                'processed': len(due),
                'sent': outcome['sent'],
                'retrying': outcome['retrying'],
                'failed': outcome['failed'],
                'reminders': reminders,
            }
        finally:
            self._lock.release()
