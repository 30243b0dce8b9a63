from datetime import timedelta

import jwt
from flask import Blueprint, current_app, jsonify, request
from werkzeug.security import check_password_hash

from roombook.models import User
from roombook.utils.timeutils import utcnow

auth_bp = Blueprint('auth', __name__)


def issue_token(user, hours=24):
    return jwt.encode({
        'user_id': user.id,
        'exp': utcnow() + timedelta(hours=hours)
    }, current_app.config['SECRET_KEY'], algorithm="HS256")


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json() or {}
    user = User.query.filter_by(username=data.get('username')).first()

    if not user or not user.password_hash or not check_password_hash(user.password_hash, data.get('password') or ''):
        return jsonify({'message': 'Invalid credentials'}), 401

    return jsonify({'token': issue_token(user), 'username': user.username, 'role': user.role})
