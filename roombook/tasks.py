"""Celery wiring: periodic notification ticks and the booking completion sweep."""
import logging

from celery import Celery, Task, shared_task
from celery.schedules import crontab

from roombook.engine import get_engine

logger = logging.getLogger(__name__)


def celery_init_app(app):
    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config['CELERY'])
    interval = app.config.get('NOTIFICATION_INTERVAL_MINUTES', 5)
    celery_app.conf.beat_schedule = {
        'process-notifications': {
            'task': 'roombook.tasks.process_notifications',
            'schedule': crontab(minute=f"*/{interval}"),
            # A tick still queued when the next one is due is dropped.
            'options': {'expires': interval * 60 - 10},
        },
        'complete-finished-bookings': {
            'task': 'roombook.tasks.complete_finished_bookings',
            'schedule': crontab(minute=15),
        },
    }
    celery_app.set_default()
    app.extensions['celery'] = celery_app
    return celery_app


@shared_task(name='roombook.tasks.process_notifications', ignore_result=True)
def process_notifications():
    logger.info("Running notification processing job")
    result = get_engine().pipeline.run_once()
    logger.info("Processed %s notifications", result.get('processed', 0))
    return result


@shared_task(name='roombook.tasks.complete_finished_bookings', ignore_result=True)
def complete_finished_bookings():
    return get_engine().bookings.complete_finished_bookings()
