"""Local, read-only mirror of one league night.

The cache changes only through ``load_snapshot`` (authoritative state from
``GET .../state``), ``apply_event`` (realtime messages) and
``apply_response`` (the caller's own mutation results). Every change is an
upsert or removal keyed by entity id, so applying the same event twice, or
an event and the response it echoes, leaves the same state.

It keeps the same subset the server snapshot holds: all check-ins,
pending requests, active partnerships and every match. Requests that
leave ``pending`` and partnerships that go inactive are dropped.
"""
import threading
from datetime import datetime

CHECKIN = 'CHECKIN'
PARTNERSHIP_REQUEST = 'PARTNERSHIP_REQUEST'
PARTNERSHIP = 'PARTNERSHIP'
MATCH = 'MATCH'
NIGHT = 'NIGHT'

_KIND_BY_EVENT = {
    CHECKIN: 'checkins',
    PARTNERSHIP_REQUEST: 'partnership_requests',
    PARTNERSHIP: 'partnerships',
    MATCH: 'matches',
}
_SNAPSHOT_EVENTS = (
    ('checkins', CHECKIN),
    ('partnership_requests', PARTNERSHIP_REQUEST),
    ('partnerships', PARTNERSHIP),
    ('matches', MATCH),
)


def _parse_timestamp(raw_value):
    if not raw_value:
        return None
    try:
        return datetime.fromisoformat(str(raw_value))
    except ValueError:
        return None


def _entity_key(event, payload):
    # One check-in per player per night; the row id changes on re-check-in
    if event == CHECKIN:
        return payload.get('player_id')
    return payload.get('id')


def _version(event, payload):
    field = 'checked_in_at' if event == CHECKIN else 'updated_at'
    return _parse_timestamp(payload.get(field))


def _retained(event, payload):
    if event == PARTNERSHIP_REQUEST:
        return payload.get('status') == 'pending'
    if event == PARTNERSHIP:
        return bool(payload.get('is_active'))
    return True


class NightStateCache:
    def __init__(self, night_id=None):
        self.night_id = night_id
        self.night = None
        self._lock = threading.RLock()
        self._entities = {kind: {} for kind in _KIND_BY_EVENT.values()}
        # (event, key) -> (version, removed); survives removal so a late
        # create cannot resurrect an entity a newer event already retired
        self._versions = {}
        # Server time the last snapshot was read at
        self._as_of = None

    # ── Mutation paths ───────────────────────────────────────────────

    def load_snapshot(self, snapshot):
        """Replace everything with the server's authoritative state."""
        with self._lock:
            for entities in self._entities.values():
                entities.clear()
            self._versions.clear()
            self._as_of = None
            self.night = dict(snapshot.get('night') or {}) or None
            if self.night and self.night_id is None:
                self.night_id = self.night.get('id')
            for field, event in _SNAPSHOT_EVENTS:
                for payload in snapshot.get(field) or []:
                    self._upsert(event, payload)
            self._as_of = _parse_timestamp(snapshot.get('as_of'))

    def apply_event(self, message):
        """Apply one ``{event, type, payload}`` message. Returns True if state changed."""
        if not isinstance(message, dict):
            return False
        event = message.get('event')
        change_type = message.get('type')
        payload = message.get('payload')
        if not isinstance(payload, dict):
            return False

        with self._lock:
            if event == NIGHT:
                return self._apply_night(payload)
            if event not in _KIND_BY_EVENT:
                return False
            if self.night_id is not None and payload.get('night_id') not in (None, self.night_id):
                return False
            if change_type == 'delete':
                return self._remove(event, payload)
            return self._upsert(event, payload)

    def apply_response(self, event, payload, change_type='update'):
        """Fold a direct mutation response in exactly like its broadcast copy."""
        return self.apply_event({'event': event, 'type': change_type, 'payload': payload})

    def _is_stale(self, event, key, version):
        previous = self._versions.get((event, key))
        if previous is None:
            # Absent from the snapshot: anything older than it is already gone
            return bool(self._as_of and version and version < self._as_of)
        if version is None or previous[0] is None:
            return False
        previous_version, removed = previous
        if removed:
            return version <= previous_version
        return version < previous_version

    def _upsert(self, event, payload):
        key = _entity_key(event, payload)
        if key is None:
            return False
        version = _version(event, payload)
        if self._is_stale(event, key, version):
            return False

        entities = self._entities[_KIND_BY_EVENT[event]]
        if _retained(event, payload):
            entities[key] = dict(payload)
            self._versions[(event, key)] = (version, False)
        else:
            entities.pop(key, None)
            self._versions[(event, key)] = (version, True)
        return True

    def _remove(self, event, payload):
        key = _entity_key(event, payload)
        if key is None:
            return False
        version = _version(event, payload)
        if self._is_stale(event, key, version):
            return False
        self._entities[_KIND_BY_EVENT[event]].pop(key, None)
        self._versions[(event, key)] = (version, True)
        return True

    def _apply_night(self, payload):
        if self.night_id is not None and payload.get('id') != self.night_id:
            return False
        current = _parse_timestamp((self.night or {}).get('updated_at'))
        incoming = _parse_timestamp(payload.get('updated_at'))
        if current and incoming and incoming < current:
            return False
        self.night = dict(payload)
        return True

    # ── Read-only accessors ──────────────────────────────────────────

    def checked_in_ids(self):
        with self._lock:
            return set(self._entities['checkins'])

    def is_checked_in(self, player_id):
        return player_id in self.checked_in_ids()

    def active_partnerships(self):
        with self._lock:
            return sorted(
                (dict(p) for p in self._entities['partnerships'].values()),
                key=lambda p: (p.get('created_at') or '', p.get('id')),
            )

    def partnership_for(self, player_id):
        for partnership in self.active_partnerships():
            if player_id in (partnership.get('player1_id'), partnership.get('player2_id')):
                return partnership
        return None

    def partner_of(self, player_id):
        partnership = self.partnership_for(player_id)
        if not partnership:
            return None
        if partnership.get('player1_id') == player_id:
            return partnership.get('player2_id')
        return partnership.get('player1_id')

    def pending_requests_for(self, player_id):
        with self._lock:
            pending = sorted(
                (dict(r) for r in self._entities['partnership_requests'].values()),
                key=lambda r: (r.get('created_at') or '', r.get('id')),
            )
        return {
            'incoming': [r for r in pending if r.get('requested_id') == player_id],
            'outgoing': [r for r in pending if r.get('requester_id') == player_id],
        }

    def matches(self, status=None):
        with self._lock:
            found = [dict(m) for m in self._entities['matches'].values()]
        if status is not None:
            found = [m for m in found if m.get('status') == status]
        return sorted(found, key=lambda m: m.get('id') or 0)

    def match_for_partnership(self, partnership_id):
        for match in self.matches():
            if match.get('status') not in ('active', 'disputed'):
                continue
            if partnership_id in (match.get('partnership1_id'), match.get('partnership2_id')):
                return match
        return None

    @property
    def checked_in_count(self):
        return len(self.checked_in_ids())

    @property
    def partnerships_count(self):
        with self._lock:
            return len(self._entities['partnerships'])

    @property
    def possible_games(self):
        return (self.partnerships_count // 2) * 2

    def state(self):
        """Comparable view of the mirrored entities, keyed by id."""
        with self._lock:
            return {
                kind: {key: dict(value) for key, value in entities.items()}
                for kind, entities in self._entities.items()
            }
