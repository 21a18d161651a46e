from flask import Flask, request, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_cors import CORS
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
from leaguenight.config import config

db = SQLAlchemy()
socketio = SocketIO()


def _parse_allowed_origins(raw_origins):
    if not raw_origins:
        return '*'

    if isinstance(raw_origins, (list, tuple, set)):
        cleaned = [origin for origin in raw_origins if origin]
        return cleaned or '*'

    raw_text = str(raw_origins).strip()
    if not raw_text or raw_text == '*':
        return '*'

    origins = [origin.strip() for origin in raw_text.split(',') if origin.strip()]
    return origins or '*'


def _register_error_handlers(app):
    from leaguenight.errors import LeagueNightError, conflict

    @app.errorhandler(LeagueNightError)
    def _handle_league_night_error(exc):
        if exc.status_code >= 500:
            app.logger.error('League night failure: %s (%s)', exc.message, exc.code)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(IntegrityError)
    def _handle_integrity_error(exc):
        db.session.rollback()
        app.logger.warning('Unhandled storage constraint violation: %s', exc.orig)
        error = conflict('Conflict')
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc):
        if not request.path.startswith('/api/'):
            return exc
        return jsonify({'success': False, 'error': exc.description}), exc.code

    @app.errorhandler(Exception)
    def _handle_unexpected_error(exc):
        db.session.rollback()
        app.logger.exception('Unexpected error on %s %s', request.method, request.path)
        return jsonify({'success': False, 'error': 'Unexpected server error'}), 500


def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    allowed_origins = _parse_allowed_origins(app.config.get('CORS_ALLOWED_ORIGINS', '*'))
    if str(config_name).strip().lower() == 'production':
        secret_key = str(app.config.get('SECRET_KEY') or '').strip()
        if not secret_key or secret_key == 'dev-secret-key-change-in-prod':
            raise RuntimeError('SECRET_KEY must be set to a non-default value in production')
        if allowed_origins == '*':
            raise RuntimeError('CORS_ALLOWED_ORIGINS must be explicitly set in production')

    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'threading'),
    )
    CORS(app, resources={r'/api/*': {'origins': allowed_origins}})

    @app.before_request
    def _enforce_origin_for_mutating_api_requests():
        if request.method in {'GET', 'HEAD', 'OPTIONS'}:
            return None
        if not request.path.startswith('/api/'):
            return None

        origin = str(request.headers.get('Origin') or '').strip()
        if not origin:
            return None

        configured_origins = _parse_allowed_origins(
            app.config.get('CORS_ALLOWED_ORIGINS', '*')
        )
        if configured_origins != '*' and origin not in configured_origins:
            return jsonify({'success': False, 'error': 'Invalid request origin'}), 403

        auth_header = str(request.headers.get('Authorization') or '').strip()
        if not auth_header:
            return None

        csrf_header = request.headers.get('X-CSRF-Token')
        from leaguenight.auth_utils import csrf_token_matches
        if not csrf_token_matches(auth_header, csrf_header):
            return jsonify({'success': False, 'error': 'Invalid CSRF token'}), 403
        return None

    _register_error_handlers(app)

    from leaguenight.routes.auth import auth_bp
    from leaguenight.routes.leagues import leagues_bp
    from leaguenight.routes.league_nights import league_nights_bp
    from leaguenight.routes.league_nights.realtime import register_socket_handlers

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(leagues_bp, url_prefix='/api/leagues')
    app.register_blueprint(league_nights_bp, url_prefix='/api/leagues')
    register_socket_handlers(socketio)

    @app.route('/api/health')
    def health():
        return jsonify({'success': True, 'data': {'status': 'ok'}})

    with app.app_context():
        from leaguenight import models  # noqa: F401
        db.create_all()

    return app
