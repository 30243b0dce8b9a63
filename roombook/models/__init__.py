from roombook.models.user import User
from roombook.models.room import Building, Feature, Room, room_features
from roombook.models.booking import Booking, BookingCategory, BookingHost, BookingParticipant
from roombook.models.notification import Notification, NotificationRecipient, NotificationRecipientMethod
from roombook.models.lookups import (
    AttendanceStatus,
    AttendanceStatusCode,
    BookingStatus,
    BookingStatusCode,
    DeliveryMethod,
    DeliveryMethodCode,
    DeliveryStatus,
    DeliveryStatusCode,
    NotificationPriority,
    NotificationPriorityCode,
    NotificationStatus,
    NotificationStatusCode,
    NotificationType,
    NotificationTypeCode,
    seed_lookups,
)
