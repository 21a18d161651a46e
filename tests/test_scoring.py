"""Tests for the two-party score handshake and admin overrides."""
import json

import pytest
from leaguenight.errors import ValidationError
from leaguenight.services.scoring import parse_scores, validate_game_score


def _body(res):
    return json.loads(res.data)


def _live_match(league_night, **kwargs):
    env = league_night(players=4, start=True, **kwargs)
    p = env.players
    first = env.partner(p[0], p[1])
    second = env.partner(p[2], p[3])
    match = env.create_matches()['matches'][0]
    assert match['partnership1_id'] == first['id']
    assert match['partnership2_id'] == second['id']
    return env, match


def _submit(env, player, match, team1, team2):
    return env.post('/submit-score', player, {
        'matchId': match['id'], 'team1Score': team1, 'team2Score': team2, 'userId': player['id'],
    })


@pytest.mark.parametrize('team1,team2', [(11, 7), (7, 11), (11, 0), (11, 8), (11, 9), (12, 10), (15, 13)])
def test_valid_game_scores(app, team1, team2):
    validate_game_score(team1, team2)


@pytest.mark.parametrize('team1,team2', [(10, 8), (11, 10), (13, 10), (9, 3), (12, 9), (9, 12)])
def test_invalid_game_scores(app, team1, team2):
    with pytest.raises(ValidationError) as excinfo:
        validate_game_score(team1, team2)
    assert excinfo.value.code == 'InvalidScore'


@pytest.mark.parametrize('team1,team2', [(5, 5), (-1, 11), ('eleven', 3), (True, 3), (11.5, 3), (100, 3)])
def test_parse_scores_rejects_bad_values(app, team1, team2):
    with pytest.raises(ValidationError):
        parse_scores(team1, team2)


def test_parse_scores_accepts_numeric_strings(app):
    assert parse_scores('11', 7) == (11, 7)


def test_submit_then_confirm_by_opponent(league_night):
    env, match = _live_match(league_night)
    p = env.players

    res = _submit(env, p[0], match, 11, 7)
    assert res.status_code == 200
    pending = _body(res)['data']
    assert pending['score_status'] == 'pending'
    assert pending['pending_submitted_by_partnership_id'] == match['partnership1_id']
    assert pending['pending_team1_score'] == 11
    assert pending['team1_score'] is None

    own_confirm = env.post('/confirm-score', p[1], {'matchId': match['id']})
    assert own_confirm.status_code == 403
    assert _body(own_confirm)['code'] == 'Forbidden'

    res = env.post('/confirm-score', p[3], {'matchId': match['id'], 'userId': p[3]['id']})
    assert res.status_code == 200
    final = _body(res)['data']
    assert final['team1_score'] == 11
    assert final['team2_score'] == 7
    assert final['status'] == 'completed'
    assert final['score_status'] == 'confirmed'
    assert final['pending_submitted_by_partnership_id'] is None

    standings = _body(env.client.get(f'/api/leagues/{env.league_id}/standings'))['data']
    by_user = {row['user_id']: row for row in standings}
    assert by_user[p[0]['id']]['games_won'] == 1
    assert by_user[p[1]['id']]['total_points'] == 11
    assert by_user[p[2]['id']]['games_lost'] == 1
    assert by_user[p[3]['id']]['total_points'] == 7
    assert standings[0]['games_won'] == 1


def test_confirmed_match_cannot_be_confirmed_again(league_night):
    env, match = _live_match(league_night)
    p = env.players
    _submit(env, p[0], match, 11, 7)
    assert env.post('/confirm-score', p[2], {'matchId': match['id']}).status_code == 200

    again = env.post('/confirm-score', p[2], {'matchId': match['id']})
    assert again.status_code == 409
    assert _body(again)['code'] == 'NotPending'
    assert _submit(env, p[2], match, 11, 3).status_code == 400


def test_outsider_cannot_submit(league_night, register):
    env, match = _live_match(league_night)
    player = env.players[0]
    # Checked in and a league member, but not in this match
    extra = register()
    env.client.post(f'/api/leagues/{env.league_id}/join', headers=extra['headers'])
    env.check_in(extra)

    res = _submit(env, extra, match, 11, 7)
    assert res.status_code == 403
    assert _body(res)['code'] == 'NotParticipant'
    assert _submit(env, player, match, 11, 7).status_code == 200


def test_second_submission_is_already_pending(league_night):
    env, match = _live_match(league_night)
    p = env.players
    assert _submit(env, p[0], match, 11, 7).status_code == 200

    res = _submit(env, p[2], match, 7, 11)
    assert res.status_code == 409
    assert _body(res)['code'] == 'AlreadyPending'


def test_invalid_score_is_rejected(league_night):
    env, match = _live_match(league_night)
    res = _submit(env, env.players[0], match, 11, 10)
    assert res.status_code == 400
    assert _body(res)['code'] == 'InvalidScore'


def test_confirm_without_submission_is_not_pending(league_night):
    env, match = _live_match(league_night)
    res = env.post('/confirm-score', env.players[2], {'matchId': match['id']})
    assert res.status_code == 409
    assert _body(res)['code'] == 'NotPending'


def test_dispute_clears_pending_and_blocks_resubmission(league_night):
    env, match = _live_match(league_night)
    p = env.players
    _submit(env, p[0], match, 11, 7)

    own_dispute = env.post('/dispute-score', p[0], {'matchId': match['id']})
    assert own_dispute.status_code == 403

    res = env.post('/dispute-score', p[2], {'matchId': match['id']})
    assert res.status_code == 200
    disputed = _body(res)['data']
    assert disputed['status'] == 'disputed'
    assert disputed['score_status'] == 'disputed'
    assert disputed['pending_team1_score'] is None
    assert disputed['pending_submitted_by_partnership_id'] is None

    resubmit = _submit(env, p[2], match, 11, 9)
    assert resubmit.status_code == 400
    assert _body(resubmit)['code'] == 'InvalidTransition'


def test_admin_override_resolves_dispute(league_night):
    env, match = _live_match(league_night)
    p = env.players
    _submit(env, p[0], match, 11, 7)
    env.post('/dispute-score', p[2], {'matchId': match['id']})

    path = f'/matches/{match["id"]}/override-score'
    denied = env.post(path, p[0], {'team1Score': 11, 'team2Score': 9})
    assert denied.status_code == 403

    res = env.post(path, env.admin, {'team1Score': 9, 'team2Score': 11})
    assert res.status_code == 200
    final = _body(res)['data']
    assert final['status'] == 'completed'
    assert final['score_status'] == 'confirmed'
    assert (final['team1_score'], final['team2_score']) == (9, 11)

    again = env.post(path, env.admin, {'team1Score': 11, 'team2Score': 9})
    assert again.status_code == 400
    assert _body(again)['code'] == 'InvalidTransition'


def test_override_still_rejects_ties(league_night):
    env, match = _live_match(league_night)
    res = env.post(f'/matches/{match["id"]}/override-score', env.admin, {
        'team1Score': 4, 'team2Score': 4,
    })
    assert res.status_code == 400


def test_submitter_can_cancel_and_resubmit(league_night):
    env, match = _live_match(league_night)
    p = env.players
    _submit(env, p[0], match, 11, 7)

    not_yours = env.post('/cancel-score', p[2], {'matchId': match['id']})
    assert not_yours.status_code == 403

    res = env.post('/cancel-score', p[1], {'matchId': match['id']})
    assert res.status_code == 200
    reset = _body(res)['data']
    assert reset['status'] == 'active'
    assert reset['score_status'] == 'none'
    assert reset['pending_team1_score'] is None

    assert _submit(env, p[3], match, 5, 11).status_code == 200


def test_admin_cancel_match_frees_partnerships(league_night):
    env, match = _live_match(league_night)
    p = env.players

    denied = env.post(f'/matches/{match["id"]}/cancel', p[0])
    assert denied.status_code == 403

    res = env.post(f'/matches/{match["id"]}/cancel', env.admin)
    assert res.status_code == 200
    assert _body(res)['data']['status'] == 'cancelled'

    removed = env.delete('/partnership', p[0], {'userId': p[0]['id']})
    assert removed.status_code == 200

    again = env.post(f'/matches/{match["id"]}/cancel', env.admin)
    assert again.status_code == 400


def test_unknown_match_is_not_found(league_night):
    env, _ = _live_match(league_night)
    res = env.post('/confirm-score', env.players[0], {'matchId': 4242})
    assert res.status_code == 404


def test_handshake_is_closed_after_night_ends(league_night):
    env, match = _live_match(league_night)
    p = env.players
    assert env.post('/end', env.admin).status_code == 200

    res = _submit(env, p[0], match, 11, 7)
    assert res.status_code == 400
    assert _body(res)['code'] == 'InvalidTransition'

    # The admin can still settle a match left on court
    path = f'/matches/{match["id"]}/override-score'
    settled = env.post(path, env.admin, {'team1Score': 11, 'team2Score': 7})
    assert settled.status_code == 200
    assert _body(settled)['data']['status'] == 'completed'


def test_pending_score_cannot_be_confirmed_after_night_ends(league_night):
    env, match = _live_match(league_night)
    p = env.players
    assert _submit(env, p[0], match, 11, 7).status_code == 200
    env.post('/end', env.admin)

    for suffix, player in (('/confirm-score', p[2]), ('/dispute-score', p[2]), ('/cancel-score', p[0])):
        res = env.post(suffix, player, {'matchId': match['id']})
        assert res.status_code == 400
        assert _body(res)['code'] == 'InvalidTransition'

    state = env.state()
    assert state['matches'][0]['score_status'] == 'pending'
