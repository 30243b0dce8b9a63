import os
from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), '.env'))


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-prod'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///roombook.db'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Booking rules
    BOOKING_REQUIRES_APPROVAL = _env_bool('BOOKING_REQUIRES_APPROVAL', False)
    NOTIFY_ON_CANCEL = _env_bool('NOTIFY_ON_CANCEL', True)
    WORKING_HOURS_START = 8  # 8 AM
    WORKING_HOURS_END = 18   # 6 PM

    # Notification pipeline
    NOTIFICATION_BATCH_SIZE = int(os.environ.get('NOTIFICATION_BATCH_SIZE', 100))
    NOTIFICATION_MAX_RETRIES = int(os.environ.get('NOTIFICATION_MAX_RETRIES', 3))
    NOTIFICATION_INTERVAL_MINUTES = 5
    REMINDER_BUFFER_MINUTES = 5
    # Observed behaviour: recipients end up Delivered even when one of their channels failed.
    MARK_RECIPIENTS_DELIVERED_ON_FAILURE = _env_bool('MARK_RECIPIENTS_DELIVERED_ON_FAILURE', True)
    DISPLAY_TIMEZONE = os.environ.get('DISPLAY_TIMEZONE', 'UTC')

    # Delivery channels
    EMAIL_API_URL = os.environ.get('EMAIL_API_URL')
    EMAIL_API_KEY = os.environ.get('EMAIL_API_KEY')
    EMAIL_FROM = os.environ.get('EMAIL_FROM', 'Room Booking <bookings@example.com>')
    PUSH_API_URL = os.environ.get('PUSH_API_URL')
    PUSH_API_KEY = os.environ.get('PUSH_API_KEY')
    CHANNEL_TIMEOUT_SECONDS = 10

    CELERY = {
        'broker_url': os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
        'result_backend': os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0'),
        'task_ignore_result': True,
        'timezone': 'UTC',
    }


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    EMAIL_API_URL = None
    PUSH_API_URL = None
    CELERY = {
        'broker_url': 'memory://',
        'result_backend': 'cache+memory://',
        'task_always_eager': True,
        'task_ignore_result': True,
        'timezone': 'UTC',
    }


class ProductionConfig(Config):
    DEBUG = False
    # In prod, rely on env vars strictly
