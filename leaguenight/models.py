import json
from leaguenight.app import db
from leaguenight.time_utils import utcnow_naive, isoformat_or_none

NIGHT_STATUSES = ('scheduled', 'active', 'completed')
REQUEST_STATUSES = ('pending', 'accepted', 'declined')
MATCH_STATUSES = ('active', 'completed', 'disputed', 'cancelled')
SCORE_STATUSES = ('none', 'pending', 'confirmed', 'disputed')
LIVE_MATCH_STATUSES = ('active', 'disputed')
LEAGUE_ROLES = ('player', 'organizer', 'admin')


def _safe_json(raw_value, fallback=None):
    if fallback is None:
        fallback = {}
    if not raw_value:
        return fallback
    try:
        return json.loads(raw_value)
    except (TypeError, ValueError):
        return fallback


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    name = db.Column(db.String(120), default='')
    skill_level = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id, 'username': self.username, 'email': self.email,
            'name': self.name, 'skill_level': self.skill_level,
            'is_admin': self.is_admin,
            'created_at': isoformat_or_none(self.created_at),
        }

    def to_public_dict(self):
        return {
            'id': self.id, 'username': self.username,
            'name': self.name, 'skill_level': self.skill_level,
        }


# ── Leagues ───────────────────────────────────────────────────────────

class League(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default='')
    court_labels_json = db.Column(db.Text, default='[]')
    created_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    creator = db.relationship('User', backref='leagues_created')

    @property
    def court_labels(self):
        return _safe_json(self.court_labels_json, [])

    @court_labels.setter
    def court_labels(self, labels):
        self.court_labels_json = json.dumps(list(labels or []))

    def to_dict(self):
        return {
            'id': self.id, 'name': self.name, 'description': self.description,
            'court_labels': self.court_labels,
            'created_by_id': self.created_by_id,
            'created_at': isoformat_or_none(self.created_at),
        }


class LeagueMembership(db.Model):
    __table_args__ = (
        db.UniqueConstraint('league_id', 'user_id', name='uq_league_membership_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    league_id = db.Column(db.Integer, db.ForeignKey('league.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    role = db.Column(db.String(20), default='player', nullable=False)  # player, organizer, admin
    joined_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    user = db.relationship('User', backref='memberships')
    league = db.relationship('League', backref='memberships')

    def to_dict(self):
        return {
            'id': self.id, 'league_id': self.league_id,
            'user_id': self.user_id, 'role': self.role,
            'joined_at': isoformat_or_none(self.joined_at),
        }


class LeagueNightInstance(db.Model):
    """One scheduled playing session of a league."""
    id = db.Column(db.Integer, primary_key=True)
    league_id = db.Column(db.Integer, db.ForeignKey('league.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), default='18:00')
    status = db.Column(db.String(20), default='scheduled', nullable=False)  # scheduled, active, completed
    courts_available = db.Column(db.Integer, default=0, nullable=False)
    court_labels_json = db.Column(db.Text, default='[]')
    auto_assignment_enabled = db.Column(db.Boolean, default=True, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    league = db.relationship('League', backref='nights')

    @property
    def court_labels(self):
        return _safe_json(self.court_labels_json, [])

    @court_labels.setter
    def court_labels(self, labels):
        self.court_labels_json = json.dumps(list(labels or []))

    def to_dict(self):
        return {
            'id': self.id, 'league_id': self.league_id,
            'date': self.date.isoformat() if self.date else None,
            'start_time': self.start_time, 'status': self.status,
            'courts_available': self.courts_available,
            'court_labels': self.court_labels,
            'auto_assignment_enabled': self.auto_assignment_enabled,
            'started_at': isoformat_or_none(self.started_at),
            'ended_at': isoformat_or_none(self.ended_at),
            'updated_at': isoformat_or_none(self.updated_at),
        }


# ── Check-in ledger ───────────────────────────────────────────────────

class CheckIn(db.Model):
    __table_args__ = (
        db.UniqueConstraint('night_id', 'player_id', name='uq_check_in_night_player'),
    )

    id = db.Column(db.Integer, primary_key=True)
    night_id = db.Column(db.Integer, db.ForeignKey('league_night_instance.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    checked_in_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    player = db.relationship('User', backref='check_ins')

    def to_dict(self):
        return {
            'id': self.id, 'night_id': self.night_id,
            'player_id': self.player_id,
            'checked_in_at': isoformat_or_none(self.checked_in_at),
            'player': self.player.to_public_dict() if self.player else None,
        }


# ── Partnership negotiation ───────────────────────────────────────────

class PartnershipRequest(db.Model):
    """A pairwise request; at most one pending per unordered pair per night."""
    __table_args__ = (
        db.Index(
            'uq_partnership_request_pending_pair',
            'night_id', 'pair_low_id', 'pair_high_id',
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    night_id = db.Column(db.Integer, db.ForeignKey('league_night_instance.id'), nullable=False)
    requester_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    requested_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    # Ordered copy of the pair so the partial index covers both directions
    pair_low_id = db.Column(db.Integer, nullable=False)
    pair_high_id = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), default='pending', nullable=False)  # pending, accepted, declined
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    responded_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    requester = db.relationship('User', foreign_keys=[requester_id])
    requested = db.relationship('User', foreign_keys=[requested_id])

    def involves(self, user_id):
        return user_id in (self.requester_id, self.requested_id)

    def to_dict(self):
        return {
            'id': self.id, 'night_id': self.night_id,
            'requester_id': self.requester_id,
            'requested_id': self.requested_id,
            'status': self.status,
            'created_at': isoformat_or_none(self.created_at),
            'responded_at': isoformat_or_none(self.responded_at),
            'updated_at': isoformat_or_none(self.updated_at),
            'requester': self.requester.to_public_dict() if self.requester else None,
            'requested': self.requested.to_public_dict() if self.requested else None,
        }


class ConfirmedPartnership(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    night_id = db.Column(db.Integer, db.ForeignKey('league_night_instance.id'), nullable=False)
    player1_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    player2_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    request_id = db.Column(db.Integer, db.ForeignKey('partnership_request.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    deactivated_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    player1 = db.relationship('User', foreign_keys=[player1_id])
    player2 = db.relationship('User', foreign_keys=[player2_id])

    @property
    def player_ids(self):
        return (self.player1_id, self.player2_id)

    def partner_of(self, user_id):
        if user_id == self.player1_id:
            return self.player2_id
        if user_id == self.player2_id:
            return self.player1_id
        return None

    def to_dict(self):
        return {
            'id': self.id, 'night_id': self.night_id,
            'player1_id': self.player1_id, 'player2_id': self.player2_id,
            'request_id': self.request_id, 'is_active': self.is_active,
            'created_at': isoformat_or_none(self.created_at),
            'deactivated_at': isoformat_or_none(self.deactivated_at),
            'updated_at': isoformat_or_none(self.updated_at),
            'player1': self.player1.to_public_dict() if self.player1 else None,
            'player2': self.player2.to_public_dict() if self.player2 else None,
        }


class PartnershipSeat(db.Model):
    """One row per player holding an active partnership on a night.

    The unique constraint is what rejects the second of two racing
    acceptances that would both consume the same player.
    """
    __table_args__ = (
        db.UniqueConstraint('night_id', 'player_id', name='uq_partnership_seat_night_player'),
    )

    id = db.Column(db.Integer, primary_key=True)
    night_id = db.Column(db.Integer, db.ForeignKey('league_night_instance.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    partnership_id = db.Column(
        db.Integer, db.ForeignKey('confirmed_partnership.id'), nullable=False
    )


# ── Matches ───────────────────────────────────────────────────────────

class Match(db.Model):
    __table_args__ = (
        db.Index(
            'uq_match_live_court',
            'night_id', 'court_label',
            unique=True,
            sqlite_where=db.text("status IN ('active', 'disputed')"),
            postgresql_where=db.text("status IN ('active', 'disputed')"),
        ),
        db.Index('ix_match_night_status', 'night_id', 'status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    night_id = db.Column(db.Integer, db.ForeignKey('league_night_instance.id'), nullable=False)
    partnership1_id = db.Column(
        db.Integer, db.ForeignKey('confirmed_partnership.id'), nullable=False
    )
    partnership2_id = db.Column(
        db.Integer, db.ForeignKey('confirmed_partnership.id'), nullable=False
    )
    court_label = db.Column(db.String(80), nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)  # active, completed, disputed, cancelled
    score_status = db.Column(db.String(20), default='none', nullable=False)  # none, pending, confirmed, disputed
    team1_score = db.Column(db.Integer, nullable=True)
    team2_score = db.Column(db.Integer, nullable=True)
    pending_team1_score = db.Column(db.Integer, nullable=True)
    pending_team2_score = db.Column(db.Integer, nullable=True)
    pending_submitted_by_partnership_id = db.Column(db.Integer, nullable=True)
    is_repeat_pairing = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    completed_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    partnership1 = db.relationship('ConfirmedPartnership', foreign_keys=[partnership1_id])
    partnership2 = db.relationship('ConfirmedPartnership', foreign_keys=[partnership2_id])

    @property
    def partnership_ids(self):
        return (self.partnership1_id, self.partnership2_id)

    def opponent_of(self, partnership_id):
        if partnership_id == self.partnership1_id:
            return self.partnership2_id
        if partnership_id == self.partnership2_id:
            return self.partnership1_id
        return None

    def partnership_for_player(self, user_id):
        for partnership in (self.partnership1, self.partnership2):
            if partnership and user_id in partnership.player_ids:
                return partnership.id
        return None

    def to_dict(self):
        return {
            'id': self.id, 'night_id': self.night_id,
            'partnership1_id': self.partnership1_id,
            'partnership2_id': self.partnership2_id,
            'court_label': self.court_label,
            'status': self.status, 'score_status': self.score_status,
            'team1_score': self.team1_score, 'team2_score': self.team2_score,
            'pending_team1_score': self.pending_team1_score,
            'pending_team2_score': self.pending_team2_score,
            'pending_submitted_by_partnership_id': self.pending_submitted_by_partnership_id,
            'is_repeat_pairing': self.is_repeat_pairing,
            'created_at': isoformat_or_none(self.created_at),
            'completed_at': isoformat_or_none(self.completed_at),
            'updated_at': isoformat_or_none(self.updated_at),
            'partnership1': self.partnership1.to_dict() if self.partnership1 else None,
            'partnership2': self.partnership2.to_dict() if self.partnership2 else None,
        }


class PlayerStat(db.Model):
    """Per-league running totals updated when a score becomes final."""
    __table_args__ = (
        db.UniqueConstraint('league_id', 'user_id', name='uq_player_stat_league_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    league_id = db.Column(db.Integer, db.ForeignKey('league.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    games_played = db.Column(db.Integer, default=0, nullable=False)
    games_won = db.Column(db.Integer, default=0, nullable=False)
    games_lost = db.Column(db.Integer, default=0, nullable=False)
    total_points = db.Column(db.Integer, default=0, nullable=False)

    @property
    def average_points(self):
        if not self.games_played:
            return 0.0
        return round(self.total_points / self.games_played, 2)

    def to_dict(self):
        return {
            'league_id': self.league_id, 'user_id': self.user_id,
            'games_played': self.games_played, 'games_won': self.games_won,
            'games_lost': self.games_lost, 'total_points': self.total_points,
            'average_points': self.average_points,
        }
