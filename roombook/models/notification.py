from roombook.extensions import db
from roombook.models.mixins import SoftDeleteMixin, TimestampMixin


class Notification(SoftDeleteMixin, TimestampMixin, db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)

    type_id = db.Column(db.String(32), db.ForeignKey('notification_types.id'), nullable=False)
    status_id = db.Column(db.String(32), db.ForeignKey('notification_statuses.id'), nullable=False, index=True)
    priority_id = db.Column(db.String(32), db.ForeignKey('notification_priorities.id'), nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id'), nullable=True, index=True)

    scheduled_for = db.Column(db.DateTime, nullable=False, index=True)
    sent_at = db.Column(db.DateTime)
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    max_retries = db.Column(db.Integer, nullable=False, default=3)
    error_message = db.Column(db.Text)

    created_by = db.Column(db.String(64))
    updated_by = db.Column(db.String(64))

    booking = db.relationship('Booking', back_populates='notifications')
    recipients = db.relationship(
        'NotificationRecipient', back_populates='notification', cascade='all, delete-orphan', lazy='selectin'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'type': self.type_id,
            'status': self.status_id,
            'priority': self.priority_id,
            'booking_id': self.booking_id,
            'scheduled_for': self.scheduled_for.isoformat(),
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
            'retry_count': self.retry_count,
            'max_retries': self.max_retries,
        }


class NotificationRecipient(db.Model):
    __tablename__ = 'notification_recipients'

    id = db.Column(db.Integer, primary_key=True)
    notification_id = db.Column(db.Integer, db.ForeignKey('notifications.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    delivery_status_id = db.Column(db.String(32), db.ForeignKey('delivery_statuses.id'), nullable=False)
    read_at = db.Column(db.DateTime)

    notification = db.relationship('Notification', back_populates='recipients')
    user = db.relationship('User', lazy='joined')
    delivery_methods = db.relationship(
        'NotificationRecipientMethod', back_populates='recipient', cascade='all, delete-orphan', lazy='selectin'
    )

    __table_args__ = (db.UniqueConstraint('notification_id', 'user_id', name='uq_notification_recipient'),)


class NotificationRecipientMethod(db.Model):
    __tablename__ = 'notification_recipient_methods'

    recipient_id = db.Column(
        db.Integer, db.ForeignKey('notification_recipients.id', ondelete='CASCADE'), primary_key=True
    )
    delivery_method_id = db.Column(db.String(32), db.ForeignKey('delivery_methods.id'), primary_key=True)

    recipient = db.relationship('NotificationRecipient', back_populates='delivery_methods')
