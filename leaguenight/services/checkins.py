"""Check-in ledger."""
from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from leaguenight.app import db
from leaguenight.errors import NotFoundError, conflict
from leaguenight.models import CheckIn, PartnershipRequest, PartnershipSeat
from leaguenight.services.broadcast import (
    broadcast, broadcast_many, CHECKIN, PARTNERSHIP_REQUEST, CREATE, UPDATE, DELETE,
)
from leaguenight.services.nights import require_not_completed, night_counters
from leaguenight.time_utils import utcnow_naive


def active_checkin(night_id, player_id):
    return CheckIn.query.filter_by(night_id=night_id, player_id=player_id).first()


def checked_in_ids(night_id, player_ids=None):
    query = CheckIn.query.filter_by(night_id=night_id)
    if player_ids is not None:
        query = query.filter(CheckIn.player_id.in_(list(player_ids)))
    return {ci.player_id for ci in query.all()}


def decline_pending_requests_for(night_id, player_ids, exclude_request_id=None, now=None):
    """Decline every pending request touching any of ``player_ids``.

    Runs inside the caller's transaction and returns the affected requests.
    """
    player_ids = list(player_ids)
    query = PartnershipRequest.query.filter(
        PartnershipRequest.night_id == night_id,
        PartnershipRequest.status == 'pending',
        or_(
            PartnershipRequest.requester_id.in_(player_ids),
            PartnershipRequest.requested_id.in_(player_ids),
        ),
    )
    if exclude_request_id is not None:
        query = query.filter(PartnershipRequest.id != exclude_request_id)
    stale = query.all()
    now = now or utcnow_naive()
    for req in stale:
        req.status = 'declined'
        req.responded_at = now
        req.updated_at = now
    return stale


def check_in(night, player_id):
    require_not_completed(night)
    if active_checkin(night.id, player_id):
        raise conflict('AlreadyCheckedIn')

    checkin = CheckIn(night_id=night.id, player_id=player_id)
    db.session.add(checkin)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise conflict('AlreadyCheckedIn')

    payload = checkin.to_dict()
    broadcast(night.id, CHECKIN, CREATE, payload)
    return payload, night_counters(night.id)


def uncheck_in(night, player_id):
    require_not_completed(night)
    checkin = active_checkin(night.id, player_id)
    if not checkin:
        raise NotFoundError('You are not checked in for this night')
    if PartnershipSeat.query.filter_by(night_id=night.id, player_id=player_id).first():
        raise conflict('PartnershipActive')

    payload = checkin.to_dict()
    declined = decline_pending_requests_for(night.id, [player_id])
    db.session.delete(checkin)
    db.session.commit()

    broadcast(night.id, CHECKIN, DELETE, payload)
    broadcast_many(night.id, PARTNERSHIP_REQUEST, UPDATE, [r.to_dict() for r in declined])
    if declined:
        current_app.logger.info(
            'Declined %s pending request(s) after player %s unchecked from night %s',
            len(declined), player_id, night.id,
        )
    return payload, night_counters(night.id)


def list_checkins(night):
    """Checked-in players with their current partner, if any."""
    checkins = CheckIn.query.filter_by(night_id=night.id).order_by(CheckIn.checked_in_at.asc()).all()
    seats = {
        seat.player_id: seat.partnership_id
        for seat in PartnershipSeat.query.filter_by(night_id=night.id).all()
    }
    partner_by_player = {}
    for player_id, partnership_id in seats.items():
        for other_id, other_partnership in seats.items():
            if other_id != player_id and other_partnership == partnership_id:
                partner_by_player[player_id] = other_id

    results = []
    for checkin in checkins:
        data = checkin.to_dict()
        data['partnership_id'] = seats.get(checkin.player_id)
        data['partner_id'] = partner_by_player.get(checkin.player_id)
        results.append(data)
    return results
