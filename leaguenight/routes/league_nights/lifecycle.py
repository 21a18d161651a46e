"""Admin night lifecycle routes: start, end, courts, auto-assignment."""
from flask import request
from leaguenight.auth_utils import login_required
from leaguenight.errors import ValidationError
from leaguenight.routes.league_nights import league_nights_bp
from leaguenight.routes.league_nights.helpers import (
    NIGHT_PATH, _payload, _acting_user_id, _load_night, _ok,
)
from leaguenight.services import nights


@league_nights_bp.route(f'{NIGHT_PATH}/start', methods=['POST'])
@login_required
def start_league_night(league_id, night_id):
    _acting_user_id(_payload())
    night = _load_night(league_id, night_id)
    nights.require_league_admin(league_id, request.current_user)
    night, auto_result = nights.start_night(night)
    return _ok({
        'night': nights.night_to_dict(night),
        'message': 'League night started successfully',
        'auto_assignment': auto_result,
    })


@league_nights_bp.route(f'{NIGHT_PATH}/end', methods=['POST'])
@login_required
def end_league_night(league_id, night_id):
    _acting_user_id(_payload())
    night = _load_night(league_id, night_id)
    nights.require_league_admin(league_id, request.current_user)
    night, remaining = nights.end_night(night)
    message = (
        f'League night ended. {remaining} active match(es) can still finish.'
        if remaining else 'League night ended successfully'
    )
    return _ok({
        'night': nights.night_to_dict(night),
        'active_matches_remaining': remaining,
        'message': message,
    })


@league_nights_bp.route(f'{NIGHT_PATH}/courts', methods=['POST'])
@login_required
def update_courts(league_id, night_id):
    data = _payload()
    _acting_user_id(data)
    labels = data.get('courtLabels', data.get('court_labels'))
    if not isinstance(labels, list):
        raise ValidationError('court_labels array is required')
    night = _load_night(league_id, night_id)
    nights.require_league_admin(league_id, request.current_user)
    night, auto_result = nights.update_courts(night, labels)
    return _ok({'night': nights.night_to_dict(night), 'auto_assignment': auto_result})


@league_nights_bp.route(f'{NIGHT_PATH}/auto-assignment', methods=['POST'])
@login_required
def toggle_auto_assignment(league_id, night_id):
    data = _payload()
    _acting_user_id(data)
    enabled = data.get('enabled')
    if not isinstance(enabled, bool):
        raise ValidationError('enabled must be true or false')
    night = _load_night(league_id, night_id)
    nights.require_league_admin(league_id, request.current_user, allow_organizer=True)
    night, auto_result = nights.set_auto_assignment(night, enabled)
    return _ok({'night': nights.night_to_dict(night), 'auto_assignment': auto_result})
