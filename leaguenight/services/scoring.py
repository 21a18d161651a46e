"""Score handshake: one partnership submits, the other confirms or disputes.

Each transition is a single conditional UPDATE keyed on the current
``score_status`` (and submitter, where it matters), so two partnerships
acting at once resolve to one winner and one typed conflict.
"""
from flask import current_app
from sqlalchemy.exc import IntegrityError
from leaguenight.app import db
from leaguenight.errors import NotFoundError, ValidationError, forbidden, conflict
from leaguenight.models import Match, PlayerStat, LIVE_MATCH_STATUSES
from leaguenight.services.broadcast import broadcast, MATCH, UPDATE
from leaguenight.services.nights import require_not_completed
from leaguenight.services.scheduler import auto_assign
from leaguenight.time_utils import utcnow_naive

_CLEARED_PENDING = {
    'pending_team1_score': None,
    'pending_team2_score': None,
    'pending_submitted_by_partnership_id': None,
}


def _coerce_score(raw_value):
    if isinstance(raw_value, bool):
        return None
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        return None
    if isinstance(raw_value, float) and raw_value != value:
        return None
    return value


def parse_scores(team1_raw, team2_raw):
    team1_score = _coerce_score(team1_raw)
    team2_score = _coerce_score(team2_raw)
    if team1_score is None or team2_score is None:
        raise ValidationError('Both scores must be integers', code='InvalidScore')
    max_points = current_app.config.get('SCORE_MAX_POINTS', 99)
    if team1_score < 0 or team2_score < 0:
        raise ValidationError('Scores must be non-negative', code='InvalidScore')
    if team1_score > max_points or team2_score > max_points:
        raise ValidationError(f'Scores must be at most {max_points}', code='InvalidScore')
    if team1_score == team2_score:
        raise ValidationError('Game cannot end in a tie', code='InvalidScore')
    return team1_score, team2_score


def validate_game_score(team1_score, team2_score):
    """Apply the first-to-target, win-by rule for player submissions."""
    target = current_app.config.get('SCORE_TARGET_POINTS', 11)
    win_by = current_app.config.get('SCORE_WIN_BY', 2)
    high = max(team1_score, team2_score)
    low = min(team1_score, team2_score)
    margin = high - low
    if high < target:
        raise ValidationError(
            f'Winning score must be at least {target} points', code='InvalidScore'
        )
    if margin < win_by:
        raise ValidationError(f'Must win by at least {win_by} points', code='InvalidScore')
    if low >= target - win_by and margin != win_by:
        raise ValidationError(
            f'When the opponent has {target - win_by}+ points, must win by exactly {win_by}',
            code='InvalidScore',
        )


def get_match_or_404(night, match_id):
    match = db.session.get(Match, match_id)
    if not match or match.night_id != night.id:
        raise NotFoundError('Match not found')
    return match


def partnership_for_player(match, player_id):
    partnership_id = match.partnership_for_player(player_id)
    if partnership_id is None:
        raise forbidden('NotParticipant')
    return partnership_id


def _require_participant(match, partnership_id):
    if partnership_id not in match.partnership_ids:
        raise forbidden('NotParticipant')


def _record_stats(league_id, match):
    """Add a final result to every player's league totals (caller commits)."""
    team1_won = match.team1_score > match.team2_score
    sides = (
        (match.partnership1, match.team1_score, team1_won),
        (match.partnership2, match.team2_score, not team1_won),
    )
    for partnership, points, won in sides:
        for user_id in partnership.player_ids:
            stat = PlayerStat.query.filter_by(league_id=league_id, user_id=user_id).first()
            if not stat:
                stat = PlayerStat(
                    league_id=league_id, user_id=user_id,
                    games_played=0, games_won=0, games_lost=0, total_points=0,
                )
                db.session.add(stat)
            stat.games_played += 1
            stat.total_points += points
            if won:
                stat.games_won += 1
            else:
                stat.games_lost += 1


def _commit_or_conflict(code):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise conflict(code)


def _publish(night, match):
    db.session.refresh(match)
    payload = match.to_dict()
    broadcast(night.id, MATCH, UPDATE, payload)
    return payload


def submit_score(night, match_id, submitting_partnership_id, team1_raw, team2_raw):
    require_not_completed(night)
    match = get_match_or_404(night, match_id)
    _require_participant(match, submitting_partnership_id)
    if match.score_status == 'pending':
        raise conflict('AlreadyPending')
    if match.status != 'active' or match.score_status != 'none':
        raise ValidationError(
            'Match cannot be scored in its current state', code='InvalidTransition'
        )
    team1_score, team2_score = parse_scores(team1_raw, team2_raw)
    validate_game_score(team1_score, team2_score)

    updated = Match.query.filter_by(
        id=match.id, status='active', score_status='none'
    ).update({
        'score_status': 'pending',
        'pending_team1_score': team1_score,
        'pending_team2_score': team2_score,
        'pending_submitted_by_partnership_id': submitting_partnership_id,
        'updated_at': utcnow_naive(),
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise conflict('AlreadyPending')
    _commit_or_conflict('AlreadyPending')
    return _publish(night, match)


def _require_pending_from_opponent(match, acting_partnership_id):
    _require_participant(match, acting_partnership_id)
    if match.score_status != 'pending':
        raise conflict('NotPending')
    if acting_partnership_id == match.pending_submitted_by_partnership_id:
        raise forbidden()


def confirm_score(night, match_id, confirming_partnership_id):
    require_not_completed(night)
    match = get_match_or_404(night, match_id)
    _require_pending_from_opponent(match, confirming_partnership_id)
    submitter_id = match.pending_submitted_by_partnership_id
    team1_score = match.pending_team1_score
    team2_score = match.pending_team2_score

    now = utcnow_naive()
    updated = Match.query.filter_by(
        id=match.id, score_status='pending',
        pending_submitted_by_partnership_id=submitter_id,
    ).update({
        'score_status': 'confirmed',
        'status': 'completed',
        'team1_score': team1_score,
        'team2_score': team2_score,
        'completed_at': now,
        'updated_at': now,
        **_CLEARED_PENDING,
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise conflict('NotPending')
    db.session.refresh(match)
    _record_stats(night.league_id, match)
    _commit_or_conflict('NotPending')
    current_app.logger.info(
        'Match %s confirmed %s-%s on night %s', match.id, team1_score, team2_score, night.id
    )

    payload = _publish(night, match)
    auto_assign(night)
    return payload


def dispute_score(night, match_id, disputing_partnership_id):
    require_not_completed(night)
    match = get_match_or_404(night, match_id)
    _require_pending_from_opponent(match, disputing_partnership_id)
    submitter_id = match.pending_submitted_by_partnership_id

    updated = Match.query.filter_by(
        id=match.id, score_status='pending',
        pending_submitted_by_partnership_id=submitter_id,
    ).update({
        'score_status': 'disputed',
        'status': 'disputed',
        'updated_at': utcnow_naive(),
        **_CLEARED_PENDING,
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise conflict('NotPending')
    _commit_or_conflict('NotPending')
    current_app.logger.info('Match %s disputed on night %s', match.id, night.id)
    return _publish(night, match)


def cancel_score(night, match_id, acting_partnership_id):
    """Withdraw a pending submission; only the submitter may do this."""
    require_not_completed(night)
    match = get_match_or_404(night, match_id)
    _require_participant(match, acting_partnership_id)
    if match.score_status != 'pending':
        raise conflict('NotPending')
    if acting_partnership_id != match.pending_submitted_by_partnership_id:
        raise forbidden()

    updated = Match.query.filter_by(
        id=match.id, score_status='pending',
        pending_submitted_by_partnership_id=acting_partnership_id,
    ).update({
        'score_status': 'none',
        'status': 'active',
        'updated_at': utcnow_naive(),
        **_CLEARED_PENDING,
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise conflict('NotPending')
    _commit_or_conflict('NotPending')
    return _publish(night, match)


def override_match_score(night, match_id, team1_raw, team2_raw):
    """Admin override: set final scores directly, bypassing the handshake.

    Unlike the player handshake this still works after the night has ended,
    so matches left on court at ``end`` can be settled.
    """
    match = get_match_or_404(night, match_id)
    team1_score, team2_score = parse_scores(team1_raw, team2_raw)
    if match.status not in LIVE_MATCH_STATUSES:
        raise ValidationError(
            'Only active or disputed matches can be overridden', code='InvalidTransition'
        )

    now = utcnow_naive()
    updated = Match.query.filter(
        Match.id == match.id,
        Match.status.in_(LIVE_MATCH_STATUSES),
    ).update({
        'score_status': 'confirmed',
        'status': 'completed',
        'team1_score': team1_score,
        'team2_score': team2_score,
        'completed_at': now,
        'updated_at': now,
        **_CLEARED_PENDING,
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise conflict('NotPending')
    db.session.refresh(match)
    _record_stats(night.league_id, match)
    _commit_or_conflict('NotPending')
    current_app.logger.info(
        'Match %s score overridden to %s-%s on night %s',
        match.id, team1_score, team2_score, night.id,
    )

    payload = _publish(night, match)
    auto_assign(night)
    return payload


def cancel_match(night, match_id):
    """Admin cancellation of a live match; frees its court and partnerships."""
    match = get_match_or_404(night, match_id)
    if match.status not in LIVE_MATCH_STATUSES:
        raise ValidationError('Only live matches can be cancelled', code='InvalidTransition')

    updated = Match.query.filter(
        Match.id == match.id,
        Match.status.in_(LIVE_MATCH_STATUSES),
    ).update({
        'status': 'cancelled',
        'score_status': 'none',
        'updated_at': utcnow_naive(),
        **_CLEARED_PENDING,
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise conflict('NotPending')
    _commit_or_conflict('NotPending')
    current_app.logger.info('Match %s cancelled on night %s', match.id, night.id)

    payload = _publish(night, match)
    auto_assign(night)
    return payload
