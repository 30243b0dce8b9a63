from roombook.extensions import db
from roombook.models.mixins import SoftDeleteMixin, TimestampMixin


class BookingCategory(db.Model):
    __tablename__ = 'booking_categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.String(255))


class Booking(SoftDeleteMixin, TimestampMixin, db.Model):
    __tablename__ = 'bookings'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text)
    notes = db.Column(db.Text)

    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False, index=True)

    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    status_id = db.Column(db.String(32), db.ForeignKey('booking_statuses.id'), nullable=False)
    booking_category_id = db.Column(db.Integer, db.ForeignKey('booking_categories.id'), nullable=True)

    is_public = db.Column(db.Boolean, default=False)
    open_enrollment = db.Column(db.Boolean, default=False)
    is_after_hours = db.Column(db.Boolean, default=False)

    created_by = db.Column(db.Integer)
    updated_by = db.Column(db.Integer)

    room = db.relationship('Room', lazy='joined')
    user = db.relationship('User', lazy='joined')
    category = db.relationship('BookingCategory')
    hosts = db.relationship('BookingHost', back_populates='booking', cascade='all, delete-orphan')
    participants = db.relationship('BookingParticipant', back_populates='booking', cascade='all, delete-orphan')
    notifications = db.relationship('Notification', back_populates='booking', lazy='dynamic')

    __table_args__ = (
        db.CheckConstraint('start_time < end_time', name='ck_booking_time_range'),
        db.Index('ix_booking_room_range', 'room_id', 'start_time', 'end_time'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'notes': self.notes,
            'room_id': self.room_id,
            'room_name': self.room.name if self.room else None,
            'user_id': self.user_id,
            'status': self.status_id,
            'booking_category_id': self.booking_category_id,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'is_public': self.is_public,
            'open_enrollment': self.open_enrollment,
            'is_after_hours': self.is_after_hours,
            'host_ids': [h.user_id for h in self.hosts],
            'participant_ids': [p.user_id for p in self.participants],
            'deleted': {'at': self.deleted_at.isoformat()} if self.deleted_at else None,
        }


class BookingHost(db.Model):
    __tablename__ = 'booking_hosts'

    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id', ondelete='CASCADE'), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), primary_key=True)
    status_id = db.Column(db.String(32), db.ForeignKey('attendance_statuses.id'), nullable=False)

    booking = db.relationship('Booking', back_populates='hosts')
    user = db.relationship('User')


class BookingParticipant(db.Model):
    __tablename__ = 'booking_participants'

    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id', ondelete='CASCADE'), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), primary_key=True)
    status_id = db.Column(db.String(32), db.ForeignKey('attendance_statuses.id'), nullable=False)

    booking = db.relationship('Booking', back_populates='participants')
    user = db.relationship('User')
