from flask import Blueprint, request, jsonify, current_app
from werkzeug.security import generate_password_hash, check_password_hash
from leaguenight.app import db
from leaguenight.models import User
from leaguenight.auth_utils import generate_token, login_required, csrf_token_for_bearer

auth_bp = Blueprint('auth', __name__)

_MIN_PASSWORD_LENGTH = 8


def _configured_admin_emails():
    raw_value = current_app.config.get('ADMIN_EMAILS', '')
    return {
        item.strip().lower()
        for item in str(raw_value).split(',')
        if item and item.strip()
    }


def _is_configured_admin_email(email):
    normalized = (email or '').strip().lower()
    return normalized in _configured_admin_emails()


def _password_error(raw_password):
    password = str(raw_password or '')
    if len(password) < _MIN_PASSWORD_LENGTH:
        return f'Password must be at least {_MIN_PASSWORD_LENGTH} characters'
    return None


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('username') or not data.get('email') \
            or not data.get('password'):
        return jsonify({'success': False, 'error': 'Username, email, and password are required'}), 400

    username = str(data['username']).strip()
    email = str(data['email']).strip().lower()
    password_error = _password_error(data.get('password'))
    if password_error:
        return jsonify({'success': False, 'error': password_error}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'success': False, 'error': 'Username already taken'}), 409
    if User.query.filter_by(email=email).first():
        return jsonify({'success': False, 'error': 'Email already registered'}), 409

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(data['password']),
        is_admin=_is_configured_admin_email(email),
        name=data.get('name', ''),
        skill_level=data.get('skill_level'),
    )
    db.session.add(user)
    db.session.commit()
    token = generate_token(user.id)
    return jsonify({'success': True, 'data': {'token': token, 'user': user.to_dict()}}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('email') or not data.get('password'):
        return jsonify({'success': False, 'error': 'Email and password are required'}), 400

    email = str(data['email']).strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, data['password']):
        return jsonify({'success': False, 'error': 'Invalid email or password'}), 401

    if not user.is_admin and _is_configured_admin_email(user.email):
        user.is_admin = True
        db.session.commit()

    token = generate_token(user.id)
    return jsonify({'success': True, 'data': {'token': token, 'user': user.to_dict()}})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'success': True, 'data': request.current_user.to_dict()})


@auth_bp.route('/csrf', methods=['GET'])
@login_required
def get_csrf_token():
    auth_header = request.headers.get('Authorization', '')
    token = csrf_token_for_bearer(auth_header)
    if not token:
        return jsonify({'success': False, 'error': 'Unable to generate CSRF token'}), 400
    return jsonify({'success': True, 'data': {'csrf_token': token}})
