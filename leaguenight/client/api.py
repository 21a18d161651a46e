"""HTTP client for the league-night request surface.

Every call returns the ``data`` member of the success envelope and raises
the typed errors from ``leaguenight.errors`` for a failure envelope, so a
client sees the same taxonomy the server raised.
"""
import logging
import requests
from leaguenight.errors import LeagueNightError, TransportError, error_for_status

logger = logging.getLogger(__name__)


class LeagueNightApi:
    def __init__(self, base_url, token=None, session=None, timeout=10):
        self.base_url = str(base_url).rstrip('/')
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _night_path(self, league_id, night_id, suffix=''):
        return f'/api/leagues/{league_id}/nights/{night_id}{suffix}'

    def _request(self, method, path, json=None, params=None):
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        try:
            response = self.session.request(
                method, f'{self.base_url}{path}',
                json=json, params=params, headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning('%s %s failed: %s', method, path, exc)
            raise TransportError(f'Could not reach {self.base_url}') from exc

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            if response.status_code >= 400:
                raise error_for_status(response.status_code)
            raise LeagueNightError('Unexpected response from server', code='BadResponse')

        if response.status_code >= 400 or body.get('success') is False:
            raise error_for_status(response.status_code, body.get('error'), body.get('code'))
        return body.get('data')

    # ── Auth ─────────────────────────────────────────────────────────

    def register(self, username, email, password, **extra):
        data = self._request('POST', '/api/auth/register', json={
            'username': username, 'email': email, 'password': password, **extra,
        })
        self.token = data['token']
        return data['user']

    def login(self, email, password):
        data = self._request('POST', '/api/auth/login', json={'email': email, 'password': password})
        self.token = data['token']
        return data['user']

    def me(self):
        return self._request('GET', '/api/auth/me')

    # ── Leagues ──────────────────────────────────────────────────────

    def create_league(self, name, court_labels=None, description=''):
        return self._request('POST', '/api/leagues', json={
            'name': name, 'description': description, 'courtLabels': court_labels or [],
        })

    def join_league(self, league_id):
        return self._request('POST', f'/api/leagues/{league_id}/join')

    def schedule_night(self, league_id, night_date, court_labels=None, courts_available=None):
        body = {'date': str(night_date)}
        if court_labels is not None:
            body['courtLabels'] = list(court_labels)
        if courts_available is not None:
            body['courtsAvailable'] = courts_available
        return self._request('POST', f'/api/leagues/{league_id}/nights', json=body)

    # ── Reads ────────────────────────────────────────────────────────

    def fetch_night(self, league_id, night_id):
        return self._request('GET', self._night_path(league_id, night_id))

    def fetch_state(self, league_id, night_id):
        return self._request('GET', self._night_path(league_id, night_id, '/state'))

    def fetch_checkins(self, league_id, night_id):
        return self._request('GET', self._night_path(league_id, night_id, '/checkins'))

    def fetch_requests(self, league_id, night_id, user_id):
        return self._request(
            'GET', self._night_path(league_id, night_id, '/partnership-requests'),
            params={'userId': user_id},
        )

    def fetch_matches(self, league_id, night_id):
        return self._request('GET', self._night_path(league_id, night_id, '/matches'))

    # ── Check-in and negotiation ─────────────────────────────────────

    def check_in(self, league_id, night_id, user_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/checkin'), json={'userId': user_id}
        )

    def uncheck_in(self, league_id, night_id, user_id):
        return self._request(
            'DELETE', self._night_path(league_id, night_id, '/checkin'), json={'userId': user_id}
        )

    def send_request(self, league_id, night_id, requester_id, requested_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/partnership-request'),
            json={'requesterId': requester_id, 'requestedId': requested_id},
        )

    def accept_request(self, league_id, night_id, request_id, user_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/partnership-accept'),
            json={'requestId': request_id, 'userId': user_id},
        )

    def reject_request(self, league_id, night_id, request_id, user_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/partnership-reject'),
            json={'requestId': request_id, 'userId': user_id},
        )

    def remove_partnership(self, league_id, night_id, user_id):
        return self._request(
            'DELETE', self._night_path(league_id, night_id, '/partnership'),
            json={'userId': user_id},
        )

    # ── Scores ───────────────────────────────────────────────────────

    def submit_score(self, league_id, night_id, match_id, team1_score, team2_score, user_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/submit-score'),
            json={
                'matchId': match_id, 'team1Score': team1_score,
                'team2Score': team2_score, 'userId': user_id,
            },
        )

    def confirm_score(self, league_id, night_id, match_id, user_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/confirm-score'),
            json={'matchId': match_id, 'userId': user_id},
        )

    def dispute_score(self, league_id, night_id, match_id, user_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/dispute-score'),
            json={'matchId': match_id, 'userId': user_id},
        )

    def cancel_score(self, league_id, night_id, match_id, user_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/cancel-score'),
            json={'matchId': match_id, 'userId': user_id},
        )

    def override_score(self, league_id, night_id, match_id, team1_score, team2_score, user_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, f'/matches/{match_id}/override-score'),
            json={'userId': user_id, 'team1Score': team1_score, 'team2Score': team2_score},
        )

    # ── Admin ────────────────────────────────────────────────────────

    def start_night(self, league_id, night_id):
        return self._request('POST', self._night_path(league_id, night_id, '/start'))

    def end_night(self, league_id, night_id):
        return self._request('POST', self._night_path(league_id, night_id, '/end'))

    def create_matches(self, league_id, night_id):
        return self._request('POST', self._night_path(league_id, night_id, '/create-matches'))

    def cancel_match(self, league_id, night_id, match_id):
        return self._request(
            'POST', self._night_path(league_id, night_id, f'/matches/{match_id}/cancel')
        )

    def update_courts(self, league_id, night_id, court_labels):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/courts'),
            json={'courtLabels': list(court_labels)},
        )

    def set_auto_assignment(self, league_id, night_id, enabled):
        return self._request(
            'POST', self._night_path(league_id, night_id, '/auto-assignment'),
            json={'enabled': bool(enabled)},
        )
