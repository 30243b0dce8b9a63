from datetime import datetime

from sqlalchemy import and_, or_

from roombook.models import Booking, BookingStatusCode, Room


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open [start, end) overlap. Touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def overlaps_by_cases(existing_start, existing_end, new_start, new_end) -> bool:
    """Same test as intervals_overlap, spelled out as the three booking cases."""
    starts_during = existing_start <= new_start < existing_end
    ends_during = existing_start < new_end <= existing_end
    contains = new_start <= existing_start and existing_end <= new_end
    return starts_during or ends_during or contains


class ConflictChecker:

    def __init__(self, session, lookups):
        self.session = session
        self.lookups = lookups

    def find_conflicts(self, room_id, start_time, end_time, exclude_booking_id=None):
        """Return non-cancelled bookings in room_id that overlap [start_time, end_time)."""
        cancelled = self.lookups.require(BookingStatusCode.CANCELLED)
        query = self.session.query(Booking).filter(
            Booking.room_id == room_id,
            Booking.status_id != cancelled,
            Booking.deleted_at.is_(None),
            or_(
                # Case 1: new booking starts during an existing booking
                and_(Booking.start_time <= start_time, Booking.end_time > start_time),
                # Case 2: new booking ends during an existing booking
                and_(Booking.start_time < end_time, Booking.end_time >= end_time),
                # Case 3: new booking completely contains an existing booking
                and_(Booking.start_time >= start_time, Booking.end_time <= end_time),
            ),
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_time).all()

    def has_conflict(self, room_id, start_time, end_time, exclude_booking_id=None) -> bool:
        return bool(self.find_conflicts(room_id, start_time, end_time, exclude_booking_id))

    def lock_room(self, room_id):
        """Row-lock the room for the rest of the transaction (no-op on SQLite)."""
        return self.session.query(Room).filter(Room.id == room_id).with_for_update().first()

    def describe(self, room, bookings):
        return {
            'room_id': room.id,
            'room_name': room.name,
            'message': f"{room.name} is already booked for the selected time period",
            'conflicts': [
                {
                    'id': b.id,
                    'title': b.title,
                    'start_time': b.start_time.isoformat(),
                    'end_time': b.end_time.isoformat(),
                }
                for b in bookings
            ],
        }
