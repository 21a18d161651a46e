"""Socket.IO room membership for live league-night updates."""
from flask import request
from flask_socketio import emit, join_room, leave_room
from leaguenight.app import db
from leaguenight.auth_utils import authenticate
from leaguenight.errors import AuthenticationError
from leaguenight.models import LeagueNightInstance
from leaguenight.services.broadcast import night_room
from leaguenight.services.nights import membership_for


def _night_id_from(payload):
    raw_value = payload.get('night_id', payload.get('nightId'))
    if isinstance(raw_value, bool):
        return None
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return None


def _authorize_night_join(night_id, token):
    try:
        user = authenticate(token)
    except AuthenticationError as exc:
        return None, exc.message
    if night_id is None:
        return None, 'Invalid night'

    night = db.session.get(LeagueNightInstance, night_id)
    if not night:
        return None, 'League night not found'
    if not user.is_admin and not membership_for(night.league_id, user.id):
        return None, 'Forbidden room'
    return night, None


def on_join_night(data):
    payload = data if isinstance(data, dict) else {}
    token = payload.get('token') or request.args.get('token') or ''
    night_id = _night_id_from(payload)
    night, error = _authorize_night_join(night_id, token)
    if error:
        status = {'night_id': night_id, 'joined': False, 'error': error}
        emit('night_status', status)
        return status

    join_room(night_room(night.id))
    status = {'night_id': night.id, 'joined': True, 'status': night.status}
    emit('night_status', status)
    return status


def on_leave_night(data):
    payload = data if isinstance(data, dict) else {}
    night_id = _night_id_from(payload)
    if night_id is not None:
        leave_room(night_room(night_id))


def register_socket_handlers(sio):
    """Attach the room handlers to the server ``sio`` is currently bound to.

    ``init_app`` builds a fresh server per app, so this runs once per app.
    """
    sio.on_event('join_night', on_join_night)
    sio.on_event('leave_night', on_leave_night)
