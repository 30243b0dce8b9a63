from flask import Blueprint, current_app, jsonify, request

from roombook.api.routes.errors import register_error_handlers
from roombook.engine import get_engine
from roombook.errors import NotFoundError
from roombook.extensions import db
from roombook.models import (
    DeliveryMethodCode,
    DeliveryStatusCode,
    Notification,
    NotificationRecipient,
    NotificationRecipientMethod,
)
from roombook.utils.decorators import admin_required, post_only, token_required
from roombook.utils.timeutils import utcnow

notifications_bp = Blueprint('notifications', __name__)
register_error_handlers(notifications_bp)


@notifications_bp.route('/process', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
@post_only
@token_required
@admin_required
def process_notifications(current_user):
    current_app.logger.info("Manually triggering notification processing")
    try:
        result = get_engine().pipeline.run_once()
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Error processing notifications")
        return jsonify({'success': False, 'processed': 0, 'error': str(e)}), 500
    return jsonify(result), 200


@notifications_bp.route('/', methods=['GET'])
@token_required
def get_my_notifications(current_user):
    """In-app inbox: live notifications addressed to the user over IN_APP."""
    rows = (
        db.session.query(Notification, NotificationRecipient)
        .join(NotificationRecipient, NotificationRecipient.notification_id == Notification.id)
        .join(NotificationRecipientMethod, NotificationRecipientMethod.recipient_id == NotificationRecipient.id)
        .filter(
            NotificationRecipient.user_id == current_user.id,
            NotificationRecipientMethod.delivery_method_id == DeliveryMethodCode.IN_APP.value,
            Notification.deleted_at.is_(None),
        )
        .order_by(Notification.scheduled_for.desc())
        .all()
    )
    results = []
    for notification, recipient in rows:
        item = notification.to_dict()
        item['delivery_status'] = recipient.delivery_status_id
        item['read_at'] = recipient.read_at.isoformat() if recipient.read_at else None
        results.append(item)
    return jsonify(results)


@notifications_bp.route('/<int:notification_id>/read', methods=['POST'])
@token_required
def mark_read(current_user, notification_id):
    recipient = NotificationRecipient.query.filter_by(
        notification_id=notification_id, user_id=current_user.id
    ).first()
    if recipient is None:
        raise NotFoundError("Notification not found")

    recipient.delivery_status_id = get_engine().lookups.require(DeliveryStatusCode.READ)
    recipient.read_at = recipient.read_at or utcnow()
    db.session.commit()
    return jsonify({'message': 'Notification marked as read'}), 200
