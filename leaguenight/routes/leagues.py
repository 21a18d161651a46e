"""League and membership routes."""
from datetime import date as date_cls
from flask import Blueprint, request, jsonify
from sqlalchemy.exc import IntegrityError
from leaguenight.app import db
from leaguenight.auth_utils import login_required
from leaguenight.errors import ValidationError, conflict
from leaguenight.models import League, LeagueMembership, LeagueNightInstance, PlayerStat
from leaguenight.services import nights

leagues_bp = Blueprint('leagues', __name__)


def _clean_labels(raw_labels):
    if raw_labels is None:
        return None
    if not isinstance(raw_labels, list):
        raise ValidationError('court_labels must be an array')
    return [str(label).strip() for label in raw_labels if str(label).strip()]


def _parse_date(raw_value):
    try:
        return date_cls.fromisoformat(str(raw_value or '').strip())
    except ValueError:
        raise ValidationError('date must be YYYY-MM-DD')


def _league_to_dict(league):
    data = league.to_dict()
    data['member_count'] = LeagueMembership.query.filter_by(league_id=league.id).count()
    return data


@leagues_bp.route('', methods=['POST'])
@login_required
def create_league():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON payload')
    name = str(data.get('name') or '').strip()
    if not name:
        raise ValidationError('League name is required')

    league = League(
        name=name,
        description=str(data.get('description') or '').strip(),
        created_by_id=request.current_user.id,
    )
    league.court_labels = _clean_labels(data.get('courtLabels', data.get('court_labels'))) or []
    db.session.add(league)
    db.session.flush()
    db.session.add(LeagueMembership(
        league_id=league.id, user_id=request.current_user.id, role='admin',
    ))
    db.session.commit()
    return jsonify({'success': True, 'data': _league_to_dict(league)}), 201


@leagues_bp.route('/<int:league_id>', methods=['GET'])
def get_league(league_id):
    league = nights.get_league_or_404(league_id)
    upcoming = LeagueNightInstance.query.filter_by(league_id=league.id).order_by(
        LeagueNightInstance.date.asc()
    ).all()
    data = _league_to_dict(league)
    data['nights'] = [n.to_dict() for n in upcoming]
    return jsonify({'success': True, 'data': data})


@leagues_bp.route('/<int:league_id>/join', methods=['POST'])
@login_required
def join_league(league_id):
    league = nights.get_league_or_404(league_id)
    user = request.current_user
    if nights.membership_for(league.id, user.id):
        raise conflict('AlreadyMember')

    membership = LeagueMembership(league_id=league.id, user_id=user.id, role='player')
    db.session.add(membership)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise conflict('AlreadyMember')
    return jsonify({'success': True, 'data': membership.to_dict()}), 201


@leagues_bp.route('/<int:league_id>/standings', methods=['GET'])
def get_standings(league_id):
    league = nights.get_league_or_404(league_id)
    stats = PlayerStat.query.filter_by(league_id=league.id).all()
    stats.sort(key=lambda s: (-s.games_won, -s.average_points, s.user_id))
    return jsonify({'success': True, 'data': [s.to_dict() for s in stats]})


@leagues_bp.route('/<int:league_id>/nights', methods=['POST'])
@login_required
def schedule_league_night(league_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON payload')
    league = nights.get_league_or_404(league_id)
    nights.require_league_admin(league.id, request.current_user)

    courts_available = data.get('courtsAvailable', data.get('courts_available'))
    if courts_available is not None:
        if isinstance(courts_available, bool):
            raise ValidationError('courts_available must be an integer')
        try:
            courts_available = int(courts_available)
        except (TypeError, ValueError):
            raise ValidationError('courts_available must be an integer')

    night = nights.schedule_night(
        league,
        _parse_date(data.get('date')),
        court_labels=_clean_labels(data.get('courtLabels', data.get('court_labels'))),
        courts_available=courts_available,
        start_time=str(data.get('startTime', data.get('start_time')) or '').strip() or None,
    )
    return jsonify({'success': True, 'data': nights.night_to_dict(night)}), 201
