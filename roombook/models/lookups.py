"""Lookup tables.

Rows are keyed by stable codes; business logic only ever refers to the enum
members below, never to display names.
"""
from enum import Enum

from roombook.extensions import db


class BookingStatusCode(str, Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'
    REJECTED = 'REJECTED'
    COMPLETED = 'COMPLETED'


class AttendanceStatusCode(str, Enum):
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    DECLINED = 'DECLINED'
    TENTATIVE = 'TENTATIVE'


class NotificationTypeCode(str, Enum):
    BOOKING_CREATED = 'BOOKING_CREATED'
    BOOKING_UPDATED = 'BOOKING_UPDATED'
    BOOKING_CANCELLED = 'BOOKING_CANCELLED'
    BOOKING_APPROVED = 'BOOKING_APPROVED'
    BOOKING_REJECTED = 'BOOKING_REJECTED'
    BOOKING_REMINDER = 'BOOKING_REMINDER'
    SYSTEM_ANNOUNCEMENT = 'SYSTEM_ANNOUNCEMENT'


class NotificationStatusCode(str, Enum):
    PENDING = 'PENDING'
    SENT = 'SENT'
    DELIVERED = 'DELIVERED'
    FAILED = 'FAILED'


class NotificationPriorityCode(str, Enum):
    LOW = 'LOW'
    NORMAL = 'NORMAL'
    HIGH = 'HIGH'
    URGENT = 'URGENT'


class DeliveryMethodCode(str, Enum):
    EMAIL = 'EMAIL'
    IN_APP = 'IN_APP'
    PUSH = 'PUSH'
    SMS = 'SMS'


class DeliveryStatusCode(str, Enum):
    PENDING = 'PENDING'
    DELIVERED = 'DELIVERED'
    FAILED = 'FAILED'
    READ = 'READ'


class LookupMixin:
    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255))

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'description': self.description}


class BookingStatus(LookupMixin, db.Model):
    __tablename__ = 'booking_statuses'


class AttendanceStatus(LookupMixin, db.Model):
    __tablename__ = 'attendance_statuses'


class NotificationType(LookupMixin, db.Model):
    __tablename__ = 'notification_types'


class NotificationStatus(LookupMixin, db.Model):
    __tablename__ = 'notification_statuses'


class NotificationPriority(LookupMixin, db.Model):
    __tablename__ = 'notification_priorities'


class DeliveryMethod(LookupMixin, db.Model):
    __tablename__ = 'delivery_methods'


class DeliveryStatus(LookupMixin, db.Model):
    __tablename__ = 'delivery_statuses'


LOOKUP_TABLES = {
    BookingStatusCode: BookingStatus,
    AttendanceStatusCode: AttendanceStatus,
    NotificationTypeCode: NotificationType,
    NotificationStatusCode: NotificationStatus,
    NotificationPriorityCode: NotificationPriority,
    DeliveryMethodCode: DeliveryMethod,
    DeliveryStatusCode: DeliveryStatus,
}

DESCRIPTIONS = {
    NotificationTypeCode.BOOKING_CREATED: 'Sent when a new booking is created',
    NotificationTypeCode.BOOKING_UPDATED: 'Sent when a booking is updated',
    NotificationTypeCode.BOOKING_CANCELLED: 'Sent when a booking is cancelled',
    NotificationTypeCode.BOOKING_APPROVED: 'Sent when a booking is approved',
    NotificationTypeCode.BOOKING_REJECTED: 'Sent when a booking is rejected',
    NotificationTypeCode.BOOKING_REMINDER: 'Reminder for upcoming bookings',
    NotificationTypeCode.SYSTEM_ANNOUNCEMENT: 'System-wide announcements',
}


def display_name(code):
    # BOOKING_CREATED -> Booking Created
    return code.value.replace('_', ' ').title()


def seed_lookups(session):
    """Insert any missing lookup rows. Safe to run repeatedly."""
    created = 0
    for enum_cls, model in LOOKUP_TABLES.items():
        for code in enum_cls:
            if session.get(model, code.value) is None:
                session.add(model(id=code.value, name=display_name(code), description=DESCRIPTIONS.get(code)))
                created += 1
    session.commit()
    return created
