"""Wires the HTTP facade, realtime feed and local cache for one league night."""
import logging
from leaguenight.client.cache import (
    NightStateCache, CHECKIN, PARTNERSHIP_REQUEST, PARTNERSHIP, MATCH,
)
from leaguenight.client.realtime import WILDCARD
from leaguenight.errors import TransportError

logger = logging.getLogger(__name__)


class LeagueNightSession:
    """A player's live view of one night.

    The cache is fed by realtime events and by this player's own mutation
    responses; after every reconnect it is reloaded from ``/state``.
    """

    def __init__(self, api, realtime, league_id, night_id, user_id, cache=None):
        self.api = api
        self.realtime = realtime
        self.league_id = league_id
        self.night_id = night_id
        self.user_id = user_id
        self.cache = cache or NightStateCache(night_id)
        self._teardown = []

    def start(self):
        self._teardown.append(self.realtime.subscribe(WILDCARD, self.cache.apply_event))
        self._teardown.append(self.realtime.on_reconnect(self.resync))
        self.realtime.connect()
        self.resync()
        return self

    def stop(self):
        while self._teardown:
            self._teardown.pop()()
        self.realtime.disconnect()

    def resync(self):
        """Reload the authoritative snapshot. Returns False if the server was unreachable."""
        try:
            state = self.api.fetch_state(self.league_id, self.night_id)
        except TransportError as exc:
            logger.warning('Resync of night %s failed: %s', self.night_id, exc.message)
            return False
        self.cache.load_snapshot(state)
        logger.info('Resynced night %s from snapshot', self.night_id)
        return True

    # ── Actions; each folds the confirmed response into the cache ─────

    def check_in(self):
        data = self.api.check_in(self.league_id, self.night_id, self.user_id)
        self.cache.apply_response(CHECKIN, data['checkin'], 'create')
        return data

    def uncheck_in(self):
        data = self.api.uncheck_in(self.league_id, self.night_id, self.user_id)
        self.cache.apply_response(CHECKIN, data['checkin'], 'delete')
        return data

    def send_request(self, requested_id):
        data = self.api.send_request(self.league_id, self.night_id, self.user_id, requested_id)
        self.cache.apply_response(PARTNERSHIP_REQUEST, data, 'create')
        return data

    def accept_request(self, request_id):
        data = self.api.accept_request(self.league_id, self.night_id, request_id, self.user_id)
        self.cache.apply_response(PARTNERSHIP, data['partnership'], 'create')
        self.cache.apply_response(PARTNERSHIP_REQUEST, data['request'])
        for declined in data.get('declined_requests') or []:
            self.cache.apply_response(PARTNERSHIP_REQUEST, declined)
        return data

    def reject_request(self, request_id):
        data = self.api.reject_request(self.league_id, self.night_id, request_id, self.user_id)
        self.cache.apply_response(PARTNERSHIP_REQUEST, data)
        return data

    def remove_partnership(self):
        data = self.api.remove_partnership(self.league_id, self.night_id, self.user_id)
        self.cache.apply_response(PARTNERSHIP, data)
        return data

    def submit_score(self, match_id, team1_score, team2_score):
        data = self.api.submit_score(
            self.league_id, self.night_id, match_id, team1_score, team2_score, self.user_id
        )
        self.cache.apply_response(MATCH, data)
        return data

    def confirm_score(self, match_id):
        data = self.api.confirm_score(self.league_id, self.night_id, match_id, self.user_id)
        self.cache.apply_response(MATCH, data)
        return data

    def dispute_score(self, match_id):
        data = self.api.dispute_score(self.league_id, self.night_id, match_id, self.user_id)
        self.cache.apply_response(MATCH, data)
        return data

    def cancel_score(self, match_id):
        data = self.api.cancel_score(self.league_id, self.night_id, match_id, self.user_id)
        self.cache.apply_response(MATCH, data)
        return data
