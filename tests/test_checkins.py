"""Tests for the check-in ledger."""
import json

from leaguenight.models import CheckIn


def test_check_in_creates_row_and_derives_counter(league_night):
    env = league_night(players=2)
    first, second = env.players

    res = env.check_in(first)
    assert res.status_code == 201
    data = json.loads(res.data)
    assert data['success'] is True
    assert data['data']['checkin']['player_id'] == first['id']
    assert data['data']['checked_in_count'] == 1

    res = env.check_in(second)
    assert json.loads(res.data)['data']['checked_in_count'] == 2

    night = json.loads(env.get().data)['data']
    assert night['checked_in_count'] == 2
    assert night['partnerships_count'] == 0
    assert night['possible_games'] == 0


def test_double_check_in_is_conflict(league_night):
    env = league_night(players=1)
    player = env.players[0]
    assert env.check_in(player).status_code == 201

    res = env.check_in(player)
    assert res.status_code == 409
    data = json.loads(res.data)
    assert data['success'] is False
    assert data['code'] == 'AlreadyCheckedIn'
    assert CheckIn.query.filter_by(night_id=env.night_id, player_id=player['id']).count() == 1


def test_check_in_requires_token(league_night):
    env = league_night(players=1)
    res = env.client.post(env.path('/checkin'), json={'userId': env.players[0]['id']})
    assert res.status_code == 401
    assert json.loads(res.data)['success'] is False


def test_check_in_rejects_mismatched_user_id(league_night):
    env = league_night(players=2)
    first, second = env.players
    res = env.post('/checkin', first, {'userId': second['id']})
    assert res.status_code == 403
    assert json.loads(res.data)['code'] == 'Forbidden'


def test_non_member_cannot_check_in(league_night, register):
    env = league_night(players=0)
    outsider = register('outsider')
    res = env.check_in(outsider)
    assert res.status_code == 403


def test_uncheck_in_removes_row(league_night):
    env = league_night(players=1)
    player = env.players[0]
    env.check_in(player)

    res = env.delete('/checkin', player, {'userId': player['id']})
    assert res.status_code == 200
    assert json.loads(res.data)['data']['checked_in_count'] == 0

    missing = env.delete('/checkin', player, {'userId': player['id']})
    assert missing.status_code == 404


def test_uncheck_in_blocked_while_partnered(league_night):
    env = league_night(players=2)
    first, second = env.players
    env.partner(first, second)

    res = env.delete('/checkin', first, {'userId': first['id']})
    assert res.status_code == 409
    assert json.loads(res.data)['code'] == 'PartnershipActive'

    removed = env.delete('/partnership', first, {'userId': first['id']})
    assert removed.status_code == 200
    res = env.delete('/checkin', first, {'userId': first['id']})
    assert res.status_code == 200


def test_uncheck_in_declines_pending_requests(league_night):
    env = league_night(players=3)
    first, second, third = env.players
    for player in env.players:
        env.check_in(player)
    outgoing = json.loads(env.send_request(first, second).data)['data']
    incoming = json.loads(env.send_request(third, first).data)['data']

    assert env.delete('/checkin', first, {'userId': first['id']}).status_code == 200

    state = env.state()
    pending_ids = {r['id'] for r in state['partnership_requests']}
    assert outgoing['id'] not in pending_ids
    assert incoming['id'] not in pending_ids


def test_checkins_list_includes_partner(league_night):
    env = league_night(players=3)
    first, second, third = env.players
    env.partner(first, second)
    env.check_in(third)

    res = env.get('/checkins')
    rows = {row['player_id']: row for row in json.loads(res.data)['data']}
    assert rows[first['id']]['partner_id'] == second['id']
    assert rows[second['id']]['partner_id'] == first['id']
    assert rows[third['id']]['partner_id'] is None


def test_check_in_refused_after_night_ends(league_night):
    env = league_night(players=1, start=True)
    assert env.post('/end', env.admin).status_code == 200

    res = env.check_in(env.players[0])
    assert res.status_code == 400
    assert json.loads(res.data)['code'] == 'InvalidTransition'
