from functools import wraps

import jwt
from flask import current_app, jsonify, request

from roombook.extensions import db
from roombook.models.user import User


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None
        if 'Authorization' in request.headers:
            # Bearer <token>
            auth_header = request.headers['Authorization']
            if auth_header.startswith("Bearer "):
                token = auth_header.split(" ")[1]

        if not token:
            return jsonify({'message': 'Token is missing!'}), 401

        try:
            data = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            return jsonify({'message': 'Token is invalid!', 'error': str(e)}), 401

        current_user = db.session.get(User, data.get('user_id'))
        if not current_user or not current_user.is_active:
            return jsonify({'message': 'Token is invalid!', 'error': 'User not found'}), 401

        return f(current_user, *args, **kwargs)

    return decorated


def admin_required(f):
    # Stack under @token_required, which passes current_user as the first arg.
    @wraps(f)
    def decorated(*args, **kwargs):
        current_user = args[0]
        if not current_user.is_admin:
            return jsonify({'message': 'Admin privilege required'}), 403
        return f(*args, **kwargs)
    return decorated


def post_only(f):
    """Answer anything but POST with a JSON 405 before auth runs."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if request.method != 'POST':
            return jsonify({'success': False, 'error': 'Method not allowed'}), 405
        return f(*args, **kwargs)
    return decorated
