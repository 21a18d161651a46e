"""Partnership negotiation routes."""
from flask import request
from leaguenight.auth_utils import login_required
from leaguenight.errors import ForbiddenError
from leaguenight.routes.league_nights import league_nights_bp
from leaguenight.routes.league_nights.helpers import (
    NIGHT_PATH, _payload, _acting_user_id, _required_id, _parse_id, _load_night, _ok,
)
from leaguenight.services import negotiation


@league_nights_bp.route(f'{NIGHT_PATH}/partnership-request', methods=['POST'])
@login_required
def create_partnership_request(league_id, night_id):
    data = _payload()
    requester_id = request.current_user.id
    claimed = data.get('requesterId', data.get('requester_id'))
    if claimed is not None and _parse_id(claimed, 'Requester ID') != requester_id:
        raise ForbiddenError()
    requested_id = _required_id(data, 'Requested player ID', 'requestedId', 'requested_id')
    night = _load_night(league_id, night_id)
    return _ok(negotiation.send_request(night, requester_id, requested_id), 201)


@league_nights_bp.route(f'{NIGHT_PATH}/partnership-accept', methods=['POST'])
@login_required
def accept_partnership_request(league_id, night_id):
    data = _payload()
    user_id = _acting_user_id(data)
    request_id = _required_id(data, 'Request ID', 'requestId', 'request_id')
    night = _load_night(league_id, night_id)
    return _ok(negotiation.accept_request(night, request_id, user_id))


@league_nights_bp.route(f'{NIGHT_PATH}/partnership-reject', methods=['POST'])
@login_required
def reject_partnership_request(league_id, night_id):
    data = _payload()
    user_id = _acting_user_id(data)
    request_id = _required_id(data, 'Request ID', 'requestId', 'request_id')
    night = _load_night(league_id, night_id)
    return _ok(negotiation.reject_request(night, request_id, user_id))


@league_nights_bp.route(f'{NIGHT_PATH}/partnership', methods=['DELETE'])
@login_required
def remove_partnership(league_id, night_id):
    data = _payload()
    user_id = _acting_user_id(data)
    night = _load_night(league_id, night_id)
    return _ok(negotiation.remove_partnership(night, user_id))


@league_nights_bp.route(f'{NIGHT_PATH}/partnership-requests', methods=['GET'])
@login_required
def get_partnership_requests(league_id, night_id):
    user_id = _acting_user_id(request.args)
    night = _load_night(league_id, night_id)
    return _ok(negotiation.requests_for_player(night, user_id))
