"""Tests for the client-side night state cache."""
from leaguenight.client.cache import NightStateCache


def _event(event, change_type, **payload):
    payload.setdefault('night_id', 5)
    return {'event': event, 'type': change_type, 'payload': payload}


def _checkin(player_id, at='2026-03-10T18:00:00'):
    return _event('CHECKIN', 'create', id=player_id * 10, player_id=player_id, checked_in_at=at)


def _request(request_id, requester, requested, status='pending', at='2026-03-10T18:01:00'):
    change = 'create' if status == 'pending' else 'update'
    return _event(
        'PARTNERSHIP_REQUEST', change, id=request_id, requester_id=requester,
        requested_id=requested, status=status, created_at='2026-03-10T18:01:00', updated_at=at,
    )


def _partnership(partnership_id, first, second, active=True, at='2026-03-10T18:02:00'):
    return _event(
        'PARTNERSHIP', 'create' if active else 'update', id=partnership_id,
        player1_id=first, player2_id=second, is_active=active,
        created_at='2026-03-10T18:02:00', updated_at=at,
    )


def _match(match_id, status='active', score_status='none', at='2026-03-10T18:05:00'):
    return _event(
        'MATCH', 'update', id=match_id, partnership1_id=1, partnership2_id=2,
        status=status, score_status=score_status, updated_at=at,
    )


def test_applying_an_event_twice_is_idempotent():
    once = NightStateCache(5)
    twice = NightStateCache(5)
    events = [_checkin(1), _checkin(2), _request(7, 1, 2), _partnership(3, 1, 2), _match(9)]
    for message in events:
        once.apply_event(message)
        twice.apply_event(message)
        twice.apply_event(message)
    assert once.state() == twice.state()
    assert twice.checked_in_count == 2


def test_checkin_delete_removes_player():
    cache = NightStateCache(5)
    cache.apply_event(_checkin(1))
    removed = _checkin(1)
    removed['type'] = 'delete'
    assert cache.apply_event(removed) is True
    assert cache.checked_in_ids() == set()

    # A late duplicate of the create must not bring the row back
    assert cache.apply_event(_checkin(1)) is False
    # A genuine re-check-in is newer and does
    assert cache.apply_event(_checkin(1, at='2026-03-10T19:00:00')) is True
    assert cache.is_checked_in(1)


def test_resolved_requests_leave_the_pending_view():
    cache = NightStateCache(5)
    cache.apply_event(_request(7, 1, 2))
    assert [r['id'] for r in cache.pending_requests_for(2)['incoming']] == [7]
    assert [r['id'] for r in cache.pending_requests_for(1)['outgoing']] == [7]

    cache.apply_event(_request(7, 1, 2, status='declined', at='2026-03-10T18:03:00'))
    assert cache.pending_requests_for(2) == {'incoming': [], 'outgoing': []}

    # The first create arriving late is stale
    cache.apply_event(_request(7, 1, 2))
    assert cache.pending_requests_for(2)['incoming'] == []


def test_partnership_lifecycle_and_partner_lookup():
    cache = NightStateCache(5)
    cache.apply_event(_partnership(3, 1, 2))
    assert cache.partner_of(1) == 2
    assert cache.partner_of(2) == 1
    assert cache.partner_of(4) is None

    cache.apply_event(_partnership(3, 1, 2, active=False, at='2026-03-10T18:30:00'))
    assert cache.partner_of(1) is None
    assert cache.partnerships_count == 0


def test_stale_match_update_is_ignored():
    cache = NightStateCache(5)
    cache.apply_event(_match(9, status='completed', score_status='confirmed', at='2026-03-10T18:20:00'))
    assert cache.apply_event(_match(9, score_status='pending', at='2026-03-10T18:10:00')) is False
    assert cache.matches()[0]['status'] == 'completed'
    assert cache.matches(status='active') == []


def test_response_and_broadcast_copy_converge():
    from_broadcast = NightStateCache(5)
    from_response = NightStateCache(5)
    message = _match(9, score_status='pending', at='2026-03-10T18:10:00')

    from_broadcast.apply_event(message)
    from_response.apply_response('MATCH', message['payload'])
    from_response.apply_event(message)
    assert from_broadcast.state() == from_response.state()


def test_events_for_other_nights_are_ignored():
    cache = NightStateCache(5)
    foreign = _checkin(1)
    foreign['payload']['night_id'] = 6
    assert cache.apply_event(foreign) is False
    assert cache.apply_event({'event': 'UNKNOWN', 'type': 'create', 'payload': {'id': 1}}) is False
    assert cache.apply_event({'event': 'CHECKIN', 'type': 'create', 'payload': None}) is False


def test_load_snapshot_replaces_everything():
    cache = NightStateCache()
    cache.apply_event(_checkin(1))
    cache.apply_event(_partnership(3, 1, 2))
    cache.load_snapshot({
        'night': {'id': 5, 'status': 'active', 'updated_at': '2026-03-10T18:00:00'},
        'checkins': [_checkin(4)['payload'], _checkin(6)['payload']],
        'partnership_requests': [],
        'partnerships': [_partnership(8, 4, 6)['payload']],
        'matches': [],
    })
    assert cache.night_id == 5
    assert cache.night['status'] == 'active'
    assert cache.checked_in_ids() == {4, 6}
    assert cache.partner_of(4) == 6
    assert cache.partner_of(1) is None


def test_night_updates_respect_order():
    cache = NightStateCache(5)
    cache.apply_event({'event': 'NIGHT', 'type': 'update', 'payload': {
        'id': 5, 'status': 'completed', 'updated_at': '2026-03-10T22:00:00',
    }})
    cache.apply_event({'event': 'NIGHT', 'type': 'update', 'payload': {
        'id': 5, 'status': 'active', 'updated_at': '2026-03-10T18:00:00',
    }})
    assert cache.night['status'] == 'completed'


def test_possible_games_rounds_down_to_even():
    cache = NightStateCache(5)
    for partnership_id in range(1, 4):
        cache.apply_event(_partnership(partnership_id, partnership_id * 10, partnership_id * 10 + 1))
    assert cache.partnerships_count == 3
    assert cache.possible_games == 2
    assert cache.match_for_partnership(1) is None


def test_events_older_than_snapshot_cannot_resurrect_removed_entities():
    cache = NightStateCache(5)
    # Player 1 checked in at 18:00 and unchecked before the 18:10 snapshot
    cache.load_snapshot({
        'as_of': '2026-03-10T18:10:00',
        'night': {'id': 5, 'updated_at': '2026-03-10T17:00:00'},
        'checkins': [_checkin(2)['payload']],
        'partnership_requests': [],
        'partnerships': [],
        'matches': [],
    })

    assert cache.apply_event(_checkin(1)) is False
    assert cache.apply_event(_request(7, 1, 2)) is False
    assert cache.checked_in_ids() == {2}

    # Entities in the snapshot still take newer copies, and fresh rows still land
    assert cache.apply_event(_checkin(3, at='2026-03-10T18:11:00')) is True
    assert cache.apply_event(_match(9, at='2026-03-10T18:12:00')) is True
    assert cache.checked_in_ids() == {2, 3}


def test_snapshot_without_as_of_accepts_late_events():
    cache = NightStateCache(5)
    cache.load_snapshot({'night': {'id': 5}, 'checkins': []})
    assert cache.apply_event(_checkin(1)) is True
