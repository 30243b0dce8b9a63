import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from roombook.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)
from roombook.models import (
    AttendanceStatusCode,
    Booking,
    BookingHost,
    BookingParticipant,
    BookingStatusCode,
    Notification,
    NotificationStatusCode,
    NotificationTypeCode,
    Room,
    User,
)
from roombook.services.notification_scheduler import unique_ids
from roombook.utils.db import atomic
from roombook.utils.timeutils import format_local, parse_datetime, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    BookingStatusCode.PENDING: {BookingStatusCode.CONFIRMED, BookingStatusCode.REJECTED, BookingStatusCode.CANCELLED},
    BookingStatusCode.CONFIRMED: {BookingStatusCode.CANCELLED, BookingStatusCode.COMPLETED},
}

EDITABLE_STATUSES = (BookingStatusCode.PENDING, BookingStatusCode.CONFIRMED)


def normalize_ids(values) -> List[int]:
    """Accept a list, a single value or comma-separated strings ("1,2") and return int ids."""
    if values is None:
        return []
    if not isinstance(values, (list, tuple, set)):
        values = [values]
    ids = []
    for value in values:
        parts = str(value).split(',') if isinstance(value, str) else [value]
        for part in parts:
            if isinstance(part, str):
                part = part.strip()
                if not part:
                    continue
            try:
                ids.append(int(part))
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid id: {part!r}")
    return ids


@dataclass
class BookingDetails:
    title: str
    start_time: datetime
    end_time: datetime
    room_ids: List[int]
    booking_category_id: Optional[int] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    is_public: bool = False
    open_enrollment: bool = False
    is_after_hours: bool = False
    host_ids: List[int] = field(default_factory=list)
    participant_ids: List[int] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data):
        if not data:
            raise ValidationError("No input data provided")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        try:
            start = parse_datetime(data['start_time'])
            end = parse_datetime(data['end_time'])
        except KeyError as e:
            raise ValidationError(f"{e.args[0]} is required")
        except ValueError:
            raise ValidationError("start_time and end_time must be ISO 8601 timestamps")

        title = data.get('title') or ''
        if not isinstance(title, str):
            raise ValidationError("title must be a string")

        room_ids = data.get('room_ids')
        if room_ids is None and 'room_id' in data:
            room_ids = [data['room_id']]

        return cls(
            title=title.strip(),
            start_time=start,
            end_time=end,
            room_ids=normalize_ids(room_ids),
            booking_category_id=data.get('booking_category_id'),
            description=data.get('description'),
            notes=data.get('notes'),
            is_public=bool(data.get('is_public', False)),
            open_enrollment=bool(data.get('open_enrollment', False)),
            is_after_hours=bool(data.get('is_after_hours', False)),
            host_ids=normalize_ids(data.get('host_ids')),
            participant_ids=normalize_ids(data.get('participant_ids')),
        )


class BookingService:
    """Create, edit and cancel bookings.

    Each operation runs the conflict check and the write in one transaction,
    with the target rooms row-locked, and enqueues its notification in that
    same transaction.
    """

    def __init__(self, session, lookups, conflict_checker, scheduler, requires_approval=False,
                 notify_on_cancel=True, display_timezone='UTC', working_hours=(8, 18)):
        self.session = session
        self.lookups = lookups
        self.checker = conflict_checker
        self.scheduler = scheduler
        self.requires_approval = requires_approval
        self.notify_on_cancel = notify_on_cancel
        self.display_timezone = display_timezone
        self.working_hours = working_hours

    @staticmethod
    def validate_details(details: BookingDetails):
        if not details.title:
            raise ValidationError("Title is required")
        if not details.room_ids:
            raise ValidationError("At least one room is required")
        if details.end_time <= details.start_time:
            raise ValidationError("End date and time must be after start date and time")

    def check_availability(self, room_ids, start_time, end_time):
        """Read-only pre-flight check. Create/Update repeat it under lock."""
        room_ids = normalize_ids(room_ids)
        if not room_ids or not start_time or not end_time:
            raise ValidationError("Missing required parameters")
        try:
            start_time, end_time = parse_datetime(start_time), parse_datetime(end_time)
        except ValueError:
            raise ValidationError("start_time and end_time must be ISO 8601 timestamps")
        if end_time <= start_time:
            raise ValidationError("End date and time must be after start date and time")

        conflicts = []
        for room_id in room_ids:
            room = self.session.get(Room, room_id)
            if room is None:
                raise NotFoundError(f"Room {room_id} not found")
            overlapping = self.checker.find_conflicts(room_id, start_time, end_time)
            if overlapping:
                conflicts.append(self.checker.describe(room, overlapping))

        return {'available': not conflicts, 'conflicts': conflicts}

    def create_booking(self, user, details: BookingDetails, force=False):
        """Book every room in details.room_ids. Returns the new bookings.

        Any conflict refuses the whole request unless ``force`` is set.
        """
        self.validate_details(details)

        with atomic(self.session, "Failed to create booking. Please try again."):
            status = BookingStatusCode.PENDING if self.requires_approval else BookingStatusCode.CONFIRMED
            status_id = self.lookups.require(status)
            attendance_id = self.lookups.require(AttendanceStatusCode.PENDING)

            rooms = self._lock_rooms(details.room_ids)
            self._ensure_users_exist(details.host_ids + details.participant_ids)
            self._guard_conflicts(rooms, details, force)

            bookings = []
            for room in rooms:
                booking = Booking(
                    title=details.title,
                    description=details.description,
                    notes=details.notes,
                    start_time=details.start_time,
                    end_time=details.end_time,
                    room_id=room.id,
                    user_id=user.id,
                    status_id=status_id,
                    booking_category_id=details.booking_category_id,
                    is_public=details.is_public,
                    open_enrollment=details.open_enrollment,
                    is_after_hours=details.is_after_hours,
                    created_by=user.id,
                    updated_by=user.id,
                )
                self._set_attendees(booking, details, attendance_id)
                self.session.add(booking)
                self.session.flush()

                self.scheduler.enqueue(
                    NotificationTypeCode.BOOKING_CREATED,
                    title="New Booking",
                    content=f'Booking "{booking.title}" in {room.display_name} has been scheduled for '
                            f'{self._describe_period(booking)}',
                    recipient_ids=unique_ids(details.host_ids, details.participant_ids),
                    booking_id=booking.id,
                    created_by=user.id,
                )
                bookings.append(booking)

        logger.info("User %s created %d booking(s): %s", user.id, len(bookings), [b.id for b in bookings])
        return bookings

    def update_booking(self, booking_id, user, details: BookingDetails):
        """Edit a booking in place. Unlike create, conflicts can never be forced here."""
        self.validate_details(details)
        if len(details.room_ids) != 1:
            raise ValidationError("A booking can only be moved to a single room")

        with atomic(self.session, "Failed to update booking. Please try again."):
            booking = self._get_for_owner(booking_id, user, 'edit')
            if booking.is_deleted or BookingStatusCode(booking.status_id) not in EDITABLE_STATUSES:
                raise InvalidStatusTransition("Only pending or confirmed bookings can be edited")
            attendance_id = self.lookups.require(AttendanceStatusCode.PENDING)

            rooms = self._lock_rooms(details.room_ids)
            self._ensure_users_exist(details.host_ids + details.participant_ids)
            self._guard_conflicts(rooms, details, exclude_booking_id=booking.id)

            room = rooms[0]
            booking.title = details.title
            booking.description = details.description
            booking.notes = details.notes
            booking.start_time = details.start_time
            booking.end_time = details.end_time
            booking.room_id = room.id
            booking.room = room
            booking.booking_category_id = details.booking_category_id
            booking.is_public = details.is_public
            booking.open_enrollment = details.open_enrollment
            booking.is_after_hours = details.is_after_hours
            booking.updated_by = user.id

            # Attendees are replaced wholesale, not merged.
            booking.hosts.clear()
            booking.participants.clear()
            self.session.flush()
            self._set_attendees(booking, details, attendance_id)

            self.scheduler.enqueue(
                NotificationTypeCode.BOOKING_UPDATED,
                title="Booking Updated",
                content=f'Booking "{booking.title}" in {room.display_name} has been updated for '
                        f'{self._describe_period(booking)}',
                recipient_ids=unique_ids(details.host_ids, details.participant_ids),
                booking_id=booking.id,
                created_by=user.id,
            )

        logger.info("User %s updated booking %s", user.id, booking_id)
        return booking

    def cancel_booking(self, booking_id, user, confirm=False):
        """Soft-delete the booking and sweep its still-pending notifications.

        Sent, Delivered and Failed notifications are left untouched.
        """
        with atomic(self.session, "Failed to cancel booking. Please try again."):
            booking = self._get_for_owner(booking_id, user, 'cancel')
            if not confirm:
                raise ValidationError("You must confirm cancellation")

            self._transition(booking, BookingStatusCode.CANCELLED)
            now = utcnow()
            booking.soft_delete(now)
            booking.updated_by = user.id

            pending = self.lookups.require(NotificationStatusCode.PENDING)
            stale = self.session.query(Notification).filter(
                Notification.booking_id == booking.id,
                Notification.status_id == pending,
                Notification.deleted_at.is_(None),
            ).all()
            for notification in stale:
                notification.soft_delete(now)
                notification.updated_by = str(user.id)

            if self.notify_on_cancel:
                self.scheduler.enqueue(
                    NotificationTypeCode.BOOKING_CANCELLED,
                    title="Booking Cancelled",
                    content=f'Booking "{booking.title}" in {booking.room.display_name} on '
                            f'{self._describe_period(booking)} has been cancelled',
                    recipient_ids=unique_ids([h.user_id for h in booking.hosts],
                                             [p.user_id for p in booking.participants]),
                    booking_id=booking.id,
                    created_by=user.id,
                )

        logger.info("User %s cancelled booking %s (%d pending notifications withdrawn)",
                    user.id, booking_id, len(stale))
        return booking

    def approve_booking(self, booking_id, approver):
        return self._review(booking_id, approver, BookingStatusCode.CONFIRMED)

    def reject_booking(self, booking_id, approver, reason=None):
        return self._review(booking_id, approver, BookingStatusCode.REJECTED, reason)

    def _review(self, booking_id, approver, target, reason=None):
        if not approver.is_admin:
            raise AuthorizationError("Admin privilege required")

        with atomic(self.session, "Failed to review booking. Please try again."):
            booking = self.get_booking(booking_id)
            self._transition(booking, target)
            booking.updated_by = approver.id

            if target == BookingStatusCode.CONFIRMED:
                type_code, title, verb = NotificationTypeCode.BOOKING_APPROVED, "Booking Approved", "approved"
            else:
                type_code, title, verb = NotificationTypeCode.BOOKING_REJECTED, "Booking Rejected", "rejected"
            content = f'Your booking "{booking.title}" in {booking.room.display_name} for ' \
                      f'{self._describe_period(booking)} has been {verb}'
            if reason:
                content += f": {reason}"
            self.scheduler.enqueue(type_code, title=title, content=content, recipient_ids=[booking.user_id],
                                   booking_id=booking.id, created_by=approver.id)

        logger.info("Booking %s %s by %s", booking_id, verb, approver.id)
        return booking

    def complete_finished_bookings(self, now=None):
        """Mark confirmed bookings that have ended as Completed. Returns how many changed."""
        now = now or utcnow()
        with atomic(self.session, "Failed to complete finished bookings."):
            finished = self.session.query(Booking).filter(
                Booking.status_id == self.lookups.require(BookingStatusCode.CONFIRMED),
                Booking.deleted_at.is_(None),
                Booking.end_time <= now,
            ).all()
            for booking in finished:
                self._transition(booking, BookingStatusCode.COMPLETED)
                booking.updated_by = None
        logger.info("Completed %d finished bookings", len(finished))
        return len(finished)

    def get_booking(self, booking_id):
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found.")
        return booking

    def get_user_bookings(self, user_id, now=None):
        """Get upcoming active bookings for a user."""
        now = now or utcnow()
        active = [self.lookups.require(code) for code in EDITABLE_STATUSES]
        return self.session.query(Booking).filter(
            Booking.user_id == user_id,
            Booking.status_id.in_(active),
            Booking.deleted_at.is_(None),
            Booking.end_time > now
        ).order_by(Booking.start_time).all()

    def get_available_time_slots(self, room_id, target_date: date, duration=60, now=None):
        """
        Return free slots inside working hours for a room on a given date.
        Gaps shorter than ``duration`` minutes are dropped.
        """
        room = self.session.get(Room, room_id)
        if room is None:
            raise NotFoundError(f"Room {room_id} not found")

        start_hour, end_hour = self.working_hours
        start_of_day = datetime.combine(target_date, datetime.min.time()).replace(hour=start_hour)
        end_of_day = datetime.combine(target_date, datetime.min.time()).replace(hour=end_hour)
        min_gap = timedelta(minutes=duration)

        bookings = self.session.query(Booking).filter(
            Booking.room_id == room.id,
            Booking.status_id != self.lookups.require(BookingStatusCode.CANCELLED),
            Booking.deleted_at.is_(None),
            Booking.start_time < end_of_day,
            Booking.end_time > start_of_day
        ).order_by(Booking.start_time).all()

        cursor = start_of_day
        # Can't book in the past
        now = now or utcnow()
        if start_of_day < now < end_of_day:
            cursor = now.replace(second=0, microsecond=0)
            if cursor.minute % 15 != 0:
                cursor += timedelta(minutes=15 - cursor.minute % 15)

        free_slots = []
        for b in bookings:
            if b.start_time - cursor >= min_gap:
                free_slots.append({'start': cursor.isoformat(), 'end': b.start_time.isoformat()})
            cursor = max(cursor, b.end_time)

        if end_of_day - cursor >= min_gap:
            free_slots.append({'start': cursor.isoformat(), 'end': end_of_day.isoformat()})

        return free_slots

    def _get_for_owner(self, booking_id, user, action):
        booking = self.get_booking(booking_id)
        # Only the creator can change the booking
        if booking.user_id != user.id:
            raise AuthorizationError(f"Not authorized to {action} this booking")
        return booking

    def _transition(self, booking, target):
        current = BookingStatusCode(booking.status_id)
        if target not in ALLOWED_TRANSITIONS.get(current, ()):
            raise InvalidStatusTransition(f"Cannot move booking from {current.value} to {target.value}")
        booking.status_id = self.lookups.require(target)

    def _lock_rooms(self, room_ids):
        rooms = {}
        # Lock in id order so two writers never wait on each other's rooms.
        for room_id in sorted(set(room_ids)):
            room = self.checker.lock_room(room_id)
            if room is None:
                raise ValidationError(f"Room {room_id} not found")
            if not room.is_active:
                raise ValidationError(f"{room.name} is not available for booking")
            rooms[room_id] = room
        return [rooms[room_id] for room_id in dict.fromkeys(room_ids)]

    def _ensure_users_exist(self, user_ids):
        wanted = set(user_ids)
        if not wanted:
            return
        found = {uid for (uid,) in self.session.query(User.id).filter(User.id.in_(wanted)).all()}
        missing = sorted(wanted - found)
        if missing:
            raise ValidationError(f"Unknown users: {missing}")

    def _guard_conflicts(self, rooms, details, force=False, exclude_booking_id=None):
        conflicts = []
        for room in rooms:
            overlapping = self.checker.find_conflicts(room.id, details.start_time, details.end_time,
                                                      exclude_booking_id=exclude_booking_id)
            if overlapping:
                conflicts.append(self.checker.describe(room, overlapping))
        if not conflicts:
            return
        if not force:
            raise ConflictError(conflicts)
        logger.warning("Forcing booking over conflicts in %s", [c['room_name'] for c in conflicts])

    @staticmethod
    def _set_attendees(booking, details, attendance_id):
        booking.hosts = [BookingHost(user_id=uid, status_id=attendance_id) for uid in unique_ids(details.host_ids)]
        booking.participants = [
            BookingParticipant(user_id=uid, status_id=attendance_id) for uid in unique_ids(details.participant_ids)
        ]

    def _describe_period(self, booking):
        start = format_local(booking.start_time, self.display_timezone)
        end = format_local(booking.end_time, self.display_timezone, "%I:%M %p")
        return f"{start} to {end}"
