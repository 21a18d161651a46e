"""Fan-out of committed league-night mutations to Socket.IO rooms."""
from leaguenight.app import socketio

SOCKET_EVENT = 'night_event'

CHECKIN = 'CHECKIN'
PARTNERSHIP_REQUEST = 'PARTNERSHIP_REQUEST'
PARTNERSHIP = 'PARTNERSHIP'
MATCH = 'MATCH'
NIGHT = 'NIGHT'

CREATE = 'create'
UPDATE = 'update'
DELETE = 'delete'


def night_room(night_id):
    return f'league_night_{night_id}'


def build_message(event, change_type, payload):
    return {'event': event, 'type': change_type, 'payload': payload}


def broadcast(night_id, event, change_type, payload):
    """Emit one change. Call only after the owning transaction committed."""
    socketio.emit(
        SOCKET_EVENT,
        build_message(event, change_type, payload),
        room=night_room(night_id),
    )


def broadcast_many(night_id, event, change_type, payloads):
    for payload in payloads:
        broadcast(night_id, event, change_type, payload)
