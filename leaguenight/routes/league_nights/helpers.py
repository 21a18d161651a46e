"""Shared request helpers for the league-night routes."""
from flask import request, jsonify
from leaguenight.errors import ValidationError, ForbiddenError
from leaguenight.services.nights import get_night_or_404, start_if_due

NIGHT_PATH = '/<int:league_id>/nights/<int:night_id>'


def _payload():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON payload')
    return data


def _first_present(data, *keys):
    for key in keys:
        if data.get(key) is not None:
            return data.get(key)
    return None


def _parse_id(raw_value, label):
    if isinstance(raw_value, bool):
        raw_value = None
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} is required')
    if value <= 0:
        raise ValidationError(f'{label} is required')
    return value


def _required_id(data, label, *keys):
    return _parse_id(_first_present(data, *keys), label)


def _acting_user_id(data):
    """The token's user; a body userId must name the same player."""
    user_id = request.current_user.id
    claimed = _first_present(data, 'userId', 'user_id')
    if claimed is not None and _parse_id(claimed, 'User ID') != user_id:
        raise ForbiddenError()
    return user_id


def _load_night(league_id, night_id):
    night = get_night_or_404(league_id, night_id)
    start_if_due(night)
    return night


def _ok(data, status=200):
    return jsonify({'success': True, 'data': data}), status
