"""Tests for partnership negotiation, including the acceptance race."""
import json

from leaguenight.app import db
from leaguenight.models import ConfirmedPartnership, PartnershipRequest, PartnershipSeat


def _data(res):
    return json.loads(res.data)['data']


def _checked_in(env, *players):
    for player in players:
        assert env.check_in(player).status_code == 201


def test_accept_creates_partnership_and_declines_other_requests(league_night):
    env = league_night(players=4)
    a, b, c, d = env.players
    _checked_in(env, a, b, c, d)

    r1 = _data(env.send_request(a, b))
    r2 = _data(env.send_request(a, c))
    r3 = _data(env.send_request(d, b))
    r4 = _data(env.send_request(c, d))
    assert r1['status'] == 'pending'

    res = env.accept(b, r1['id'])
    assert res.status_code == 200
    data = _data(res)
    assert {data['partnership']['player1_id'], data['partnership']['player2_id']} == {a['id'], b['id']}
    assert data['partnership']['is_active'] is True
    assert data['request']['status'] == 'accepted'
    assert {r['id'] for r in data['declined_requests']} == {r2['id'], r3['id']}
    assert all(r['status'] == 'declined' for r in data['declined_requests'])

    pending = {r['id'] for r in env.state()['partnership_requests']}
    assert pending == {r4['id']}


def test_send_request_requires_both_checked_in(league_night):
    env = league_night(players=2)
    a, b = env.players
    env.check_in(a)

    res = env.send_request(a, b)
    assert res.status_code == 400
    assert json.loads(res.data)['code'] == 'NotCheckedIn'


def test_send_request_to_self_is_invalid(league_night):
    env = league_night(players=1)
    a = env.players[0]
    env.check_in(a)
    assert env.send_request(a, a).status_code == 400


def test_duplicate_request_in_either_direction(league_night):
    env = league_night(players=2)
    a, b = env.players
    _checked_in(env, a, b)
    assert env.send_request(a, b).status_code == 201

    same_way = env.send_request(a, b)
    assert same_way.status_code == 409
    assert json.loads(same_way.data)['code'] == 'DuplicateRequest'

    reverse = env.send_request(b, a)
    assert reverse.status_code == 409
    assert json.loads(reverse.data)['code'] == 'DuplicateRequest'


def test_request_to_partnered_player_is_conflict(league_night):
    env = league_night(players=3)
    a, b, c = env.players
    env.partner(a, b)
    env.check_in(c)

    res = env.send_request(c, a)
    assert res.status_code == 409
    assert json.loads(res.data)['code'] == 'AlreadyPartnered'


def test_requester_id_must_match_token(league_night):
    env = league_night(players=3)
    a, b, c = env.players
    _checked_in(env, a, b, c)
    res = env.post('/partnership-request', a, {'requesterId': c['id'], 'requestedId': b['id']})
    assert res.status_code == 403


def test_only_requested_player_may_accept(league_night):
    env = league_night(players=2)
    a, b = env.players
    _checked_in(env, a, b)
    req = _data(env.send_request(a, b))

    res = env.accept(a, req['id'])
    assert res.status_code == 403
    assert json.loads(res.data)['error'] == "You can't do that"


def test_reject_then_accept_is_not_pending(league_night):
    env = league_night(players=2)
    a, b = env.players
    _checked_in(env, a, b)
    req = _data(env.send_request(a, b))

    # The requester may withdraw
    withdrawn = env.post('/partnership-reject', a, {'requestId': req['id'], 'userId': a['id']})
    assert withdrawn.status_code == 200
    assert _data(withdrawn)['status'] == 'declined'

    res = env.accept(b, req['id'])
    assert res.status_code == 409
    assert json.loads(res.data)['code'] == 'NotPending'

    again = env.post('/partnership-reject', b, {'requestId': req['id'], 'userId': b['id']})
    assert again.status_code == 409


def test_reject_by_outsider_is_forbidden(league_night):
    env = league_night(players=3)
    a, b, c = env.players
    _checked_in(env, a, b, c)
    req = _data(env.send_request(a, b))
    res = env.post('/partnership-reject', c, {'requestId': req['id'], 'userId': c['id']})
    assert res.status_code == 403


def test_unknown_request_is_not_found(league_night):
    env = league_night(players=1)
    a = env.players[0]
    assert env.accept(a, 9999).status_code == 404


def test_concurrent_acceptance_loses_to_seat_constraint(league_night, monkeypatch):
    env = league_night(players=3)
    a, b, c = env.players
    _checked_in(env, a, b, c)
    r1 = _data(env.send_request(a, b))
    r2 = _data(env.send_request(a, c))

    # Interleave two acceptances: B's commit must not have declined R2 yet,
    # and C's prechecks run before B's seat is visible.
    monkeypatch.setattr(
        'leaguenight.services.negotiation.decline_pending_requests_for',
        lambda *args, **kwargs: [],
    )
    assert env.accept(b, r1['id']).status_code == 200
    monkeypatch.setattr('leaguenight.services.negotiation._seated_ids', lambda *args: set())

    res = env.accept(c, r2['id'])
    assert res.status_code == 409
    assert json.loads(res.data)['code'] == 'AlreadyPartnered'
    monkeypatch.undo()

    db.session.expire_all()
    active = ConfirmedPartnership.query.filter_by(night_id=env.night_id, is_active=True).all()
    assert len(active) == 1
    assert set(active[0].player_ids) == {a['id'], b['id']}
    assert PartnershipSeat.query.filter_by(night_id=env.night_id, player_id=c['id']).first() is None
    assert db.session.get(PartnershipRequest, r2['id']).status == 'pending'


def test_second_accept_after_commit_reports_already_partnered(league_night):
    env = league_night(players=3)
    a, b, c = env.players
    _checked_in(env, a, b, c)
    r1 = _data(env.send_request(b, a))
    r2 = _data(env.send_request(c, a))

    assert env.accept(a, r1['id']).status_code == 200
    res = env.accept(a, r2['id'])
    assert res.status_code == 409
    assert json.loads(res.data)['code'] == 'AlreadyPartnered'


def test_remove_partnership_frees_both_players(league_night):
    env = league_night(players=3)
    a, b, c = env.players
    partnership = env.partner(a, b)

    res = env.delete('/partnership', b, {'userId': b['id']})
    assert res.status_code == 200
    assert _data(res)['id'] == partnership['id']
    assert _data(res)['is_active'] is False

    env.check_in(c)
    assert env.send_request(c, a).status_code == 201
    assert env.send_request(b, c).status_code == 201

    none_left = env.delete('/partnership', b, {'userId': b['id']})
    assert none_left.status_code == 404


def test_partnership_requests_view(league_night):
    env = league_night(players=3)
    a, b, c = env.players
    _checked_in(env, a, b, c)
    sent = _data(env.send_request(a, b))
    received = _data(env.send_request(c, a))

    res = env.get('/partnership-requests', a, userId=a['id'])
    assert res.status_code == 200
    data = _data(res)
    assert [r['id'] for r in data['outgoing']] == [sent['id']]
    assert [r['id'] for r in data['incoming']] == [received['id']]
    assert data['partnership'] is None

    other = env.get('/partnership-requests', a, userId=b['id'])
    assert other.status_code == 403
