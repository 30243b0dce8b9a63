"""Delivery channels. Each send() returns on success and raises DeliveryError on failure."""
import logging
from abc import ABC, abstractmethod

import requests

from roombook.errors import DeliveryError
from roombook.models import NotificationTypeCode

logger = logging.getLogger(__name__)

SUBJECT_PREFIXES = {
    NotificationTypeCode.BOOKING_REMINDER.value: "\U0001F514",
    NotificationTypeCode.BOOKING_UPDATED.value: "\U0001F4DD",
}


def format_subject(notification):
    prefix = SUBJECT_PREFIXES.get(notification.type_id)
    return f"{prefix} {notification.title}" if prefix else notification.title


class DeliveryChannel(ABC):

    @abstractmethod
    def send(self, notification, user):
        pass


class InAppChannel(DeliveryChannel):
    """The stored notification row is the in-app message."""

    def send(self, notification, user):
        return None


class EmailChannel(DeliveryChannel):

    def __init__(self, api_url=None, api_key=None, sender=None, timeout=10):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, notification, user):
        if not user.email:
            raise DeliveryError(f"User {user.id} has no email address")

        subject = format_subject(notification)
        if not self.api_url:
            logger.info('[EMAIL] "%s" to %s (EMAIL_API_URL not set, not sent)', subject, user.email)
            return None

        try:
            response = requests.post(
                self.api_url,
                json={
                    'from': self.sender,
                    'to': [user.email],
                    'subject': subject,
                    'text': notification.content,
                },
                headers={'Authorization': f"Bearer {self.api_key}"} if self.api_key else {},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise DeliveryError(f"Email to {user.email} failed: {e}") from e

        logger.info('[EMAIL] Sent "%s" to %s', subject, user.email)
        return None


class PushChannel(DeliveryChannel):

    def __init__(self, api_url=None, api_key=None, timeout=10):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout

    def send(self, notification, user):
        if not user.push_token:
            raise DeliveryError(f"User {user.id} has no push token")

        title = format_subject(notification)
        if not self.api_url:
            logger.info('[PUSH] "%s" to user %s (PUSH_API_URL not set, not sent)', title, user.id)
            return None

        try:
            response = requests.post(
                self.api_url,
                json={
                    'to': user.push_token,
                    'title': title,
                    'body': notification.content,
                    'data': {'notification_id': notification.id, 'booking_id': notification.booking_id},
                },
                headers={'Authorization': f"Bearer {self.api_key}"} if self.api_key else {},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise DeliveryError(f"Push to user {user.id} failed: {e}") from e

        logger.info('[PUSH] Sent "%s" to user %s', title, user.id)
        return None
