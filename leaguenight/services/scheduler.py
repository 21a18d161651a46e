"""Court assignment: pairs queued partnerships onto free courts."""
from flask import current_app
from sqlalchemy.exc import IntegrityError
from leaguenight.app import db
from leaguenight.errors import ValidationError, LeagueNightError, conflict
from leaguenight.models import ConfirmedPartnership, Match, LIVE_MATCH_STATUSES
from leaguenight.services.broadcast import broadcast_many, MATCH, CREATE
from leaguenight.services.nights import court_labels_for
from leaguenight.time_utils import utcnow_naive


def pair_partnerships(queue, played_pairs, limit):
    """Greedy pairing in queue order.

    ``queue`` is a list of partnership ids, next-up first. The head of the
    queue takes the earliest later entry it has not played tonight; if every
    remaining entry is a rematch it takes the next one in line anyway.
    Returns ``[(first_id, second_id, is_repeat), ...]`` with at most
    ``limit`` pairs. Unpaired ids stay queued.
    """
    remaining = list(queue)
    pairs = []
    while len(remaining) >= 2 and len(pairs) < limit:
        head = remaining.pop(0)
        opponent_index = None
        for index, candidate in enumerate(remaining):
            if frozenset((head, candidate)) not in played_pairs:
                opponent_index = index
                break
        is_repeat = opponent_index is None
        if is_repeat:
            opponent_index = 0
        opponent = remaining.pop(opponent_index)
        pairs.append((head, opponent, is_repeat))
    return pairs


def _played_matches(night_id):
    return Match.query.filter(
        Match.night_id == night_id,
        Match.status != 'cancelled',
    ).all()


def _played_pairs(night_id):
    return {frozenset(m.partnership_ids) for m in _played_matches(night_id)}


def games_played_tonight(night_id):
    counts = {}
    for match in _played_matches(night_id):
        for partnership_id in match.partnership_ids:
            counts[partnership_id] = counts.get(partnership_id, 0) + 1
    return counts


def _live_matches(night_id):
    return Match.query.filter(
        Match.night_id == night_id,
        Match.status.in_(LIVE_MATCH_STATUSES),
    ).all()


def queue_state(night):
    """Partnerships waiting for a court and courts without a live match.

    The queue puts the fewest games played tonight first, then the oldest
    partnership, so a pair that just came off court waits behind pairs that
    have played less.
    """
    live = _live_matches(night.id)
    busy_partnerships = {pid for m in live for pid in m.partnership_ids}
    occupied_courts = {m.court_label for m in live}

    partnerships = ConfirmedPartnership.query.filter_by(
        night_id=night.id, is_active=True
    ).order_by(ConfirmedPartnership.created_at.asc(), ConfirmedPartnership.id.asc()).all()
    games = games_played_tonight(night.id)
    queued = [p for p in partnerships if p.id not in busy_partnerships]
    # sort() is stable, so creation order breaks ties
    queued.sort(key=lambda p: games.get(p.id, 0))
    free_courts = [label for label in court_labels_for(night) if label not in occupied_courts]
    return queued, free_courts, len(occupied_courts)


def create_matches(night):
    """Assign queued partnerships to free courts and commit the new matches."""
    if night.status != 'active':
        raise ValidationError('League night is not active', code='InvalidTransition')

    queued, free_courts, courts_in_use = queue_state(night)
    pairs = pair_partnerships(
        [p.id for p in queued], _played_pairs(night.id), len(free_courts)
    )

    now = utcnow_naive()
    created = []
    for (first_id, second_id, is_repeat), court_label in zip(pairs, free_courts):
        match = Match(
            night_id=night.id,
            partnership1_id=first_id,
            partnership2_id=second_id,
            court_label=court_label,
            status='active',
            score_status='none',
            is_repeat_pairing=is_repeat,
            created_at=now,
            updated_at=now,
        )
        db.session.add(match)
        created.append(match)
        if is_repeat:
            current_app.logger.warning(
                'Repeat pairing on night %s: partnerships %s and %s have already played',
                night.id, first_id, second_id,
            )

    if created:
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise conflict('CourtOccupied')
        current_app.logger.info(
            'Created %s match(es) on night %s', len(created), night.id
        )

    payloads = [m.to_dict() for m in created]
    broadcast_many(night.id, MATCH, CREATE, payloads)

    waiting = len(queued) - 2 * len(created)
    courts_left = len(free_courts) - len(created)
    return {
        'matches': payloads,
        'partnerships_waiting': waiting,
        'queue_info': {
            'total_partnerships': len(queued) + 2 * courts_in_use,
            'partnerships_waiting': waiting,
            'courts_available': courts_left,
            'courts_in_use': courts_in_use + len(created),
            'total_courts': len(court_labels_for(night)),
            'next_match_possible': waiting >= 2 and courts_left > 0,
        },
    }


def auto_assign(night):
    """Best-effort scheduling after a state change frees partnerships or courts."""
    if night.status != 'active' or not night.auto_assignment_enabled:
        return None
    try:
        return create_matches(night)
    except LeagueNightError as exc:
        current_app.logger.warning(
            'Auto-assignment on night %s skipped: %s', night.id, exc.message
        )
        return None
