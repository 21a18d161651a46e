"""League-night lookup, lifecycle, derived counters and snapshots."""
from datetime import date as date_cls, datetime, time as time_cls
from flask import current_app
from leaguenight.app import db
from leaguenight.errors import NotFoundError, ForbiddenError, ValidationError
from leaguenight.models import (
    League, LeagueMembership, LeagueNightInstance, CheckIn, PartnershipRequest,
    ConfirmedPartnership, Match, LIVE_MATCH_STATUSES,
)
from leaguenight.services.broadcast import broadcast, NIGHT, UPDATE
from leaguenight.time_utils import utcnow_naive, isoformat_or_none

_LIFECYCLE = {
    'scheduled': 'active',
    'active': 'completed',
}


def get_league_or_404(league_id):
    league = db.session.get(League, league_id)
    if not league:
        raise NotFoundError('League not found')
    return league


def get_night_or_404(league_id, night_id):
    night = db.session.get(LeagueNightInstance, night_id)
    if not night or night.league_id != league_id:
        raise NotFoundError('League night not found')
    return night


def membership_for(league_id, user_id):
    return LeagueMembership.query.filter_by(league_id=league_id, user_id=user_id).first()


def require_member(league_id, user):
    if getattr(user, 'is_admin', False):
        return None
    membership = membership_for(league_id, user.id)
    if not membership:
        raise ForbiddenError('Join this league first')
    return membership


def require_league_admin(league_id, user, allow_organizer=False):
    if getattr(user, 'is_admin', False):
        return None
    membership = membership_for(league_id, user.id)
    allowed = {'admin', 'organizer'} if allow_organizer else {'admin'}
    if not membership or membership.role not in allowed:
        raise ForbiddenError()
    return membership


def require_not_completed(night):
    if night.status == 'completed':
        raise ValidationError('This league night has ended', code='InvalidTransition')


def court_labels_for(night):
    """Labels for every available court, padded with generated names."""
    labels = [str(label) for label in night.court_labels if str(label).strip()]
    labels = labels[:night.courts_available or 0]
    next_number = len(labels) + 1
    while len(labels) < (night.courts_available or 0):
        candidate = f'Court {next_number}'
        next_number += 1
        if candidate not in labels:
            labels.append(candidate)
    return labels


def night_counters(night_id):
    """Counters derived from the ledger on every read, never cached."""
    checked_in = CheckIn.query.filter_by(night_id=night_id).count()
    partnerships = ConfirmedPartnership.query.filter_by(
        night_id=night_id, is_active=True
    ).count()
    live_matches = Match.query.filter(
        Match.night_id == night_id,
        Match.status.in_(LIVE_MATCH_STATUSES),
    ).count()
    return {
        'checked_in_count': checked_in,
        'partnerships_count': partnerships,
        'possible_games': (partnerships // 2) * 2,
        'live_matches_count': live_matches,
    }


def night_to_dict(night):
    data = night.to_dict()
    data.update(night_counters(night.id))
    data['court_labels'] = court_labels_for(night)
    return data


def snapshot(night):
    """Full authoritative state of one night, used for client resync.

    ``as_of`` is read before the queries run: anything committed earlier is
    already reflected, so clients can drop broadcasts older than it.
    """
    as_of = utcnow_naive()
    checkins = CheckIn.query.filter_by(night_id=night.id).order_by(CheckIn.checked_in_at.asc()).all()
    requests = PartnershipRequest.query.filter_by(
        night_id=night.id, status='pending'
    ).order_by(PartnershipRequest.created_at.asc()).all()
    partnerships = ConfirmedPartnership.query.filter_by(
        night_id=night.id, is_active=True
    ).order_by(ConfirmedPartnership.created_at.asc()).all()
    matches = Match.query.filter_by(night_id=night.id).order_by(Match.created_at.asc()).all()
    return {
        'as_of': isoformat_or_none(as_of),
        'night': night_to_dict(night),
        'checkins': [c.to_dict() for c in checkins],
        'partnership_requests': [r.to_dict() for r in requests],
        'partnerships': [p.to_dict() for p in partnerships],
        'matches': [m.to_dict() for m in matches],
    }


def parse_start_time(raw_value):
    """``'HH:MM'`` to a ``time``; None when the value is not a valid clock time."""
    try:
        hour, minute = (int(part) for part in str(raw_value or '').split(':'))
    except ValueError:
        return None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        return None
    return time_cls(hour, minute)


def schedule_night(league, night_date, court_labels=None, courts_available=None, start_time=None):
    if not isinstance(night_date, date_cls):
        raise ValidationError('A valid night date is required')
    if start_time is not None and parse_start_time(start_time) is None:
        raise ValidationError('startTime must be HH:MM')
    labels = list(court_labels) if court_labels is not None else list(league.court_labels)
    if courts_available is None:
        courts_available = len(labels) or current_app.config.get('DEFAULT_COURTS_AVAILABLE', 4)
    if courts_available < 0:
        raise ValidationError('courts_available must be non-negative')

    night = LeagueNightInstance(
        league_id=league.id,
        date=night_date,
        start_time=start_time or '18:00',
        status='scheduled',
        courts_available=courts_available,
        auto_assignment_enabled=current_app.config.get('AUTO_ASSIGN_DEFAULT', True),
    )
    night.court_labels = labels
    db.session.add(night)
    db.session.commit()
    current_app.logger.info('Scheduled league night %s for league %s', night.id, league.id)
    return night


def _advance(night, expected_status):
    next_status = _LIFECYCLE.get(expected_status)
    now = utcnow_naive()
    values = {'status': next_status, 'updated_at': now}
    if next_status == 'active':
        values['started_at'] = now
    else:
        values['ended_at'] = now
    # Guarded on the current status so two admins racing cannot skip a step
    updated = LeagueNightInstance.query.filter_by(
        id=night.id, status=expected_status
    ).update(values, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise ValidationError(
            f'League night is not {expected_status}', code='InvalidTransition'
        )
    db.session.commit()
    db.session.refresh(night)
    broadcast(night.id, NIGHT, UPDATE, night_to_dict(night))
    return night


def start_night(night):
    if night.status != 'scheduled':
        raise ValidationError('League night has already started', code='InvalidTransition')
    _advance(night, 'scheduled')
    current_app.logger.info('League night %s started', night.id)

    from leaguenight.services.scheduler import auto_assign
    auto_result = auto_assign(night)
    return night, auto_result


def start_if_due(night, now=None):
    """Start a scheduled night once its date and start time (UTC) have arrived.

    Only fires on the night's own date; a night whose date passed without a
    start stays scheduled for an admin to handle. Returns the auto-assignment
    result, or None when nothing started.
    """
    if night.status != 'scheduled' or not current_app.config.get('AUTO_START_NIGHTS', True):
        return None
    starts_at = parse_start_time(night.start_time)
    now = now or utcnow_naive()
    if starts_at is None or now.date() != night.date:
        return None
    if now < datetime.combine(night.date, starts_at):
        return None

    try:
        _advance(night, 'scheduled')
    except ValidationError:
        # A concurrent request started it first
        db.session.refresh(night)
        return None
    current_app.logger.info('League night %s auto-started at %s', night.id, night.start_time)

    from leaguenight.services.scheduler import auto_assign
    return auto_assign(night)


def end_night(night):
    if night.status == 'completed':
        raise ValidationError('League night is already ended', code='InvalidTransition')
    if night.status != 'active':
        raise ValidationError('League night has not started', code='InvalidTransition')
    _advance(night, 'active')
    remaining = Match.query.filter(
        Match.night_id == night.id,
        Match.status.in_(LIVE_MATCH_STATUSES),
    ).count()
    current_app.logger.info(
        'League night %s ended with %s live match(es) remaining', night.id, remaining
    )
    return night, remaining


def update_courts(night, court_labels):
    require_not_completed(night)
    cleaned = [str(label).strip() for label in court_labels if str(label).strip()]
    if len(set(cleaned)) != len(cleaned):
        raise ValidationError('Court labels must be unique')
    previous = night.courts_available
    night.court_labels = cleaned
    night.courts_available = len(cleaned)
    night.updated_at = utcnow_naive()
    db.session.commit()
    broadcast(night.id, NIGHT, UPDATE, night_to_dict(night))

    auto_result = None
    if night.courts_available > previous and night.status == 'active':
        from leaguenight.services.scheduler import auto_assign
        auto_result = auto_assign(night)
    return night, auto_result


def set_auto_assignment(night, enabled):
    night.auto_assignment_enabled = bool(enabled)
    night.updated_at = utcnow_naive()
    db.session.commit()
    broadcast(night.id, NIGHT, UPDATE, night_to_dict(night))

    auto_result = None
    if night.auto_assignment_enabled and night.status == 'active':
        from leaguenight.services.scheduler import auto_assign
        auto_result = auto_assign(night)
    return night, auto_result
