from datetime import datetime

from flask import Blueprint, jsonify, request

from roombook.api.routes.errors import register_error_handlers
from roombook.engine import get_engine
from roombook.errors import ValidationError
from roombook.services.booking_service import BookingDetails
from roombook.utils.decorators import admin_required, token_required
from roombook.utils.timeutils import utcnow

bookings_bp = Blueprint('bookings', __name__)
register_error_handlers(bookings_bp)


@bookings_bp.route('/', methods=['POST'])
@token_required
def create_booking(current_user):
    data = request.get_json()
    details = BookingDetails.from_payload(data)
    bookings = get_engine().bookings.create_booking(current_user, details, force=bool(data.get('force')))
    return jsonify([b.to_dict() for b in bookings]), 201


@bookings_bp.route('/<int:booking_id>', methods=['GET'])
@token_required
def get_booking(current_user, booking_id):
    return jsonify(get_engine().bookings.get_booking(booking_id).to_dict())


@bookings_bp.route('/<int:booking_id>', methods=['PUT'])
@token_required
def update_booking(current_user, booking_id):
    data = request.get_json()
    details = BookingDetails.from_payload(data)
    booking = get_engine().bookings.update_booking(booking_id, current_user, details)
    return jsonify(booking.to_dict()), 200


@bookings_bp.route('/<int:booking_id>/cancel', methods=['POST'])
@token_required
def cancel_booking(current_user, booking_id):
    data = request.get_json(silent=True) or {}
    get_engine().bookings.cancel_booking(booking_id, current_user, confirm=data.get('confirm') in (True, 'true'))
    return jsonify({'message': 'Booking cancelled successfully.'}), 200


@bookings_bp.route('/<int:booking_id>/approve', methods=['POST'])
@token_required
@admin_required
def approve_booking(current_user, booking_id):
    booking = get_engine().bookings.approve_booking(booking_id, current_user)
    return jsonify(booking.to_dict()), 200


@bookings_bp.route('/<int:booking_id>/reject', methods=['POST'])
@token_required
@admin_required
def reject_booking(current_user, booking_id):
    data = request.get_json(silent=True) or {}
    booking = get_engine().bookings.reject_booking(booking_id, current_user, reason=data.get('reason'))
    return jsonify(booking.to_dict()), 200


@bookings_bp.route('/my_bookings', methods=['GET'])
@token_required
def get_my_bookings(current_user):
    bookings = get_engine().bookings.get_user_bookings(current_user.id)
    return jsonify([b.to_dict() for b in bookings])


@bookings_bp.route('/availability', methods=['POST'])
@token_required
def check_availability(current_user):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    result = get_engine().bookings.check_availability(
        data.get('room_ids'), data.get('start_time'), data.get('end_time')
    )
    return jsonify(result), 200


@bookings_bp.route('/rooms/<int:room_id>/slots', methods=['GET'])
@token_required
def get_time_slots(current_user, room_id):
    date_str = request.args.get('date')
    try:
        target_date = datetime.strptime(date_str, "%Y-%m-%d").date() if date_str else utcnow().date()
        duration = int(request.args.get('duration', 60))
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD and duration a number of minutes")
    slots = get_engine().bookings.get_available_time_slots(room_id, target_date, duration)
    return jsonify({'room_id': room_id, 'date': target_date.isoformat(), 'slots': slots})
