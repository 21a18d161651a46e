"""Check-in routes and night read views."""
from flask import request
from leaguenight.auth_utils import login_required
from leaguenight.routes.league_nights import league_nights_bp
from leaguenight.routes.league_nights.helpers import (
    NIGHT_PATH, _payload, _acting_user_id, _load_night, _ok,
)
from leaguenight.services import checkins as checkin_service
from leaguenight.services.nights import night_to_dict, require_member, snapshot


@league_nights_bp.route(NIGHT_PATH, methods=['GET'])
def get_league_night(league_id, night_id):
    night = _load_night(league_id, night_id)
    return _ok(night_to_dict(night))


@league_nights_bp.route(f'{NIGHT_PATH}/state', methods=['GET'])
def get_night_state(league_id, night_id):
    """Authoritative snapshot; clients re-fetch this after reconnecting."""
    night = _load_night(league_id, night_id)
    return _ok(snapshot(night))


@league_nights_bp.route(f'{NIGHT_PATH}/checkins', methods=['GET'])
def get_checked_in_players(league_id, night_id):
    night = _load_night(league_id, night_id)
    return _ok(checkin_service.list_checkins(night))


@league_nights_bp.route(f'{NIGHT_PATH}/checkin', methods=['POST'])
@login_required
def check_in(league_id, night_id):
    data = _payload()
    user_id = _acting_user_id(data)
    night = _load_night(league_id, night_id)
    require_member(league_id, request.current_user)
    checkin, counters = checkin_service.check_in(night, user_id)
    return _ok({'checkin': checkin, **counters}, 201)


@league_nights_bp.route(f'{NIGHT_PATH}/checkin', methods=['DELETE'])
@login_required
def uncheck_in(league_id, night_id):
    data = _payload()
    user_id = _acting_user_id(data)
    night = _load_night(league_id, night_id)
    checkin, counters = checkin_service.uncheck_in(night, user_id)
    return _ok({'checkin': checkin, **counters})
