"""Match scheduling and score handshake routes."""
from flask import request
from leaguenight.auth_utils import login_required
from leaguenight.models import Match
from leaguenight.routes.league_nights import league_nights_bp
from leaguenight.routes.league_nights.helpers import (
    NIGHT_PATH, _payload, _acting_user_id, _required_id, _load_night, _ok,
)
from leaguenight.services import scoring
from leaguenight.services.nights import require_league_admin
from leaguenight.services.scheduler import create_matches as schedule_matches


def _match_and_partnership(night, data):
    """Resolve the match and the acting player's side of it."""
    user_id = _acting_user_id(data)
    match_id = _required_id(data, 'Match ID', 'matchId', 'match_id')
    match = scoring.get_match_or_404(night, match_id)
    return match, scoring.partnership_for_player(match, user_id)


@league_nights_bp.route(f'{NIGHT_PATH}/matches', methods=['GET'])
def get_matches(league_id, night_id):
    night = _load_night(league_id, night_id)
    matches = Match.query.filter_by(night_id=night.id).order_by(Match.created_at.desc()).all()
    return _ok([m.to_dict() for m in matches])


@league_nights_bp.route(f'{NIGHT_PATH}/create-matches', methods=['POST'])
@login_required
def create_matches(league_id, night_id):
    _acting_user_id(_payload())
    night = _load_night(league_id, night_id)
    require_league_admin(league_id, request.current_user)
    result = schedule_matches(night)
    status = 201 if result['matches'] else 200
    return _ok(result, status)


@league_nights_bp.route(f'{NIGHT_PATH}/submit-score', methods=['POST'])
@login_required
def submit_score(league_id, night_id):
    data = _payload()
    night = _load_night(league_id, night_id)
    match, partnership_id = _match_and_partnership(night, data)
    return _ok(scoring.submit_score(
        night, match.id, partnership_id,
        data.get('team1Score', data.get('team1_score')),
        data.get('team2Score', data.get('team2_score')),
    ))


@league_nights_bp.route(f'{NIGHT_PATH}/confirm-score', methods=['POST'])
@login_required
def confirm_score(league_id, night_id):
    data = _payload()
    night = _load_night(league_id, night_id)
    match, partnership_id = _match_and_partnership(night, data)
    return _ok(scoring.confirm_score(night, match.id, partnership_id))


@league_nights_bp.route(f'{NIGHT_PATH}/dispute-score', methods=['POST'])
@login_required
def dispute_score(league_id, night_id):
    data = _payload()
    night = _load_night(league_id, night_id)
    match, partnership_id = _match_and_partnership(night, data)
    return _ok(scoring.dispute_score(night, match.id, partnership_id))


@league_nights_bp.route(f'{NIGHT_PATH}/cancel-score', methods=['POST'])
@login_required
def cancel_score(league_id, night_id):
    data = _payload()
    night = _load_night(league_id, night_id)
    match, partnership_id = _match_and_partnership(night, data)
    return _ok(scoring.cancel_score(night, match.id, partnership_id))


@league_nights_bp.route(f'{NIGHT_PATH}/matches/<int:match_id>/override-score', methods=['POST'])
@login_required
def override_score(league_id, night_id, match_id):
    data = _payload()
    _acting_user_id(data)
    night = _load_night(league_id, night_id)
    require_league_admin(league_id, request.current_user)
    return _ok(scoring.override_match_score(
        night, match_id,
        data.get('team1Score', data.get('team1_score')),
        data.get('team2Score', data.get('team2_score')),
    ))


@league_nights_bp.route(f'{NIGHT_PATH}/matches/<int:match_id>/cancel', methods=['POST'])
@login_required
def cancel_match(league_id, night_id, match_id):
    _acting_user_id(_payload())
    night = _load_night(league_id, night_id)
    require_league_admin(league_id, request.current_user)
    return _ok(scoring.cancel_match(night, match_id))
