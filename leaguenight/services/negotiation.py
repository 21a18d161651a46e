"""Partnership negotiation: pairwise requests turned into confirmed partnerships.

Mutual exclusion lives in the database. A pending request is unique per
unordered pair (partial index), and a player holds at most one
``PartnershipSeat`` per night (unique constraint). Acceptance writes the
request transition, the partnership, both seats and the cascading
declines in one transaction, so readers see all of it or none of it.
"""
from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from leaguenight.app import db
from leaguenight.errors import NotFoundError, ValidationError, forbidden, conflict
from leaguenight.models import (
    PartnershipRequest, ConfirmedPartnership, PartnershipSeat, Match, LIVE_MATCH_STATUSES,
)
from leaguenight.services.broadcast import (
    broadcast, broadcast_many, PARTNERSHIP_REQUEST, PARTNERSHIP, CREATE, UPDATE,
)
from leaguenight.services.checkins import checked_in_ids, decline_pending_requests_for
from leaguenight.services.nights import require_not_completed
from leaguenight.time_utils import utcnow_naive


def _seated_ids(night_id, player_ids):
    seats = PartnershipSeat.query.filter(
        PartnershipSeat.night_id == night_id,
        PartnershipSeat.player_id.in_(list(player_ids)),
    ).all()
    return {seat.player_id for seat in seats}


def _require_both_checked_in(night_id, player_ids):
    if checked_in_ids(night_id, player_ids) != set(player_ids):
        raise ValidationError(
            'Both players must be checked in to form a partnership', code='NotCheckedIn'
        )


def _pending_between(night_id, low_id, high_id):
    return PartnershipRequest.query.filter_by(
        night_id=night_id, pair_low_id=low_id, pair_high_id=high_id, status='pending'
    ).first()


def get_request_or_404(night, request_id):
    req = db.session.get(PartnershipRequest, request_id)
    if not req or req.night_id != night.id:
        raise NotFoundError('Partnership request not found')
    return req


def active_partnership_for(night_id, player_id):
    seat = PartnershipSeat.query.filter_by(night_id=night_id, player_id=player_id).first()
    if not seat:
        return None
    return db.session.get(ConfirmedPartnership, seat.partnership_id)


def send_request(night, requester_id, requested_id):
    require_not_completed(night)
    if requester_id == requested_id:
        raise ValidationError('Cannot partner with yourself')

    pair = {requester_id, requested_id}
    _require_both_checked_in(night.id, pair)
    if _seated_ids(night.id, pair):
        raise conflict('AlreadyPartnered')

    low_id, high_id = min(pair), max(pair)
    if _pending_between(night.id, low_id, high_id):
        raise conflict('DuplicateRequest')

    req = PartnershipRequest(
        night_id=night.id,
        requester_id=requester_id,
        requested_id=requested_id,
        pair_low_id=low_id,
        pair_high_id=high_id,
        status='pending',
    )
    db.session.add(req)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise conflict('DuplicateRequest')

    payload = req.to_dict()
    broadcast(night.id, PARTNERSHIP_REQUEST, CREATE, payload)
    return payload


def accept_request(night, request_id, acting_player_id):
    """Accept as the requested player.

    One unit of work: the request becomes accepted, the partnership and both
    seats are inserted, and every other pending request involving either
    player is declined. A seat collision means a concurrent acceptance won
    and the whole unit is rolled back as ``AlreadyPartnered``.
    """
    require_not_completed(night)
    req = get_request_or_404(night, request_id)
    if acting_player_id != req.requested_id:
        raise forbidden()

    players = (req.requester_id, req.requested_id)
    if _seated_ids(night.id, players):
        raise conflict('AlreadyPartnered')
    if req.status != 'pending':
        raise conflict('NotPending')
    _require_both_checked_in(night.id, players)

    now = utcnow_naive()
    try:
        updated = PartnershipRequest.query.filter_by(
            id=req.id, status='pending'
        ).update(
            {'status': 'accepted', 'responded_at': now, 'updated_at': now},
            synchronize_session=False,
        )
        if not updated:
            db.session.rollback()
            # Declined by a competing acceptance that already seated a player
            if _seated_ids(night.id, players):
                raise conflict('AlreadyPartnered')
            raise conflict('NotPending')

        partnership = ConfirmedPartnership(
            night_id=night.id,
            player1_id=req.requester_id,
            player2_id=req.requested_id,
            request_id=req.id,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        db.session.add(partnership)
        db.session.flush()
        for player_id in players:
            db.session.add(PartnershipSeat(
                night_id=night.id, player_id=player_id, partnership_id=partnership.id,
            ))
        db.session.flush()

        declined = decline_pending_requests_for(
            night.id, players, exclude_request_id=req.id, now=now
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning(
            'Acceptance of request %s lost a partnership race on night %s', request_id, night.id
        )
        raise conflict('AlreadyPartnered')

    db.session.refresh(req)
    partnership_payload = partnership.to_dict()
    request_payload = req.to_dict()
    declined_payloads = [r.to_dict() for r in declined]

    broadcast(night.id, PARTNERSHIP, CREATE, partnership_payload)
    broadcast(night.id, PARTNERSHIP_REQUEST, UPDATE, request_payload)
    broadcast_many(night.id, PARTNERSHIP_REQUEST, UPDATE, declined_payloads)
    return {
        'partnership': partnership_payload,
        'request': request_payload,
        'declined_requests': declined_payloads,
    }


def reject_request(night, request_id, acting_player_id):
    """Decline (requested player) or withdraw (requester) a pending request."""
    require_not_completed(night)
    req = get_request_or_404(night, request_id)
    if not req.involves(acting_player_id):
        raise forbidden()
    if req.status != 'pending':
        raise conflict('NotPending')

    now = utcnow_naive()
    updated = PartnershipRequest.query.filter_by(
        id=req.id, status='pending'
    ).update(
        {'status': 'declined', 'responded_at': now, 'updated_at': now},
        synchronize_session=False,
    )
    if not updated:
        db.session.rollback()
        raise conflict('NotPending')
    db.session.commit()
    db.session.refresh(req)

    payload = req.to_dict()
    broadcast(night.id, PARTNERSHIP_REQUEST, UPDATE, payload)
    return payload


def remove_partnership(night, player_id):
    """Deactivate the player's partnership and release both seats."""
    require_not_completed(night)
    partnership = active_partnership_for(night.id, player_id)
    if not partnership:
        raise NotFoundError('You do not have an active partnership')

    live_match = Match.query.filter(
        Match.night_id == night.id,
        Match.status.in_(LIVE_MATCH_STATUSES),
        or_(
            Match.partnership1_id == partnership.id,
            Match.partnership2_id == partnership.id,
        ),
    ).first()
    if live_match:
        raise conflict('PartnershipActive', details={'match_id': live_match.id})

    now = utcnow_naive()
    updated = ConfirmedPartnership.query.filter_by(
        id=partnership.id, is_active=True
    ).update(
        {'is_active': False, 'deactivated_at': now, 'updated_at': now},
        synchronize_session=False,
    )
    if not updated:
        db.session.rollback()
        raise NotFoundError('You do not have an active partnership')
    PartnershipSeat.query.filter_by(partnership_id=partnership.id).delete(
        synchronize_session=False
    )
    db.session.commit()
    db.session.refresh(partnership)

    payload = partnership.to_dict()
    broadcast(night.id, PARTNERSHIP, UPDATE, payload)
    return payload


def requests_for_player(night, player_id):
    """Pending incoming/outgoing requests and the current partnership."""
    pending = PartnershipRequest.query.filter(
        PartnershipRequest.night_id == night.id,
        PartnershipRequest.status == 'pending',
        or_(
            PartnershipRequest.requester_id == player_id,
            PartnershipRequest.requested_id == player_id,
        ),
    ).order_by(PartnershipRequest.created_at.asc()).all()
    partnership = active_partnership_for(night.id, player_id)
    return {
        'incoming': [r.to_dict() for r in pending if r.requested_id == player_id],
        'outgoing': [r.to_dict() for r in pending if r.requester_id == player_id],
        'partnership': partnership.to_dict() if partnership else None,
    }
