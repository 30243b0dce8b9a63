"""Error taxonomy shared by the booking lifecycle and the notification pipeline."""


class BookingEngineError(Exception):
    status_code = 500

    def __init__(self, message, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self):
        body = {'error': self.message}
        body.update(self.payload)
        return body


class ValidationError(BookingEngineError):
    status_code = 400


class InvalidStatusTransition(ValidationError):
    pass


class NotFoundError(BookingEngineError):
    status_code = 404


class AuthorizationError(BookingEngineError):
    status_code = 403


class ConflictError(BookingEngineError):
    """Raised when a booking overlaps existing ones.

    ``conflicts`` is a list of per-room dicts (room id, room name, message and
    the overlapping bookings) so callers can explain what is in the way.
    """

    status_code = 409

    def __init__(self, conflicts):
        names = ', '.join(c['room_name'] for c in conflicts)
        super().__init__(f"Already booked for the selected time period: {names}", conflicts=conflicts)
        self.conflicts = conflicts


class PersistenceError(BookingEngineError):
    status_code = 500


class DeliveryError(BookingEngineError):
    """Channel send failure. Recovered by the dispatcher's retry counter."""
