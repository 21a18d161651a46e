import itertools
import json

import pytest
from leaguenight.app import create_app, db


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _auth(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def register(client):
    """Return a function that registers a fresh user and returns its id/token/headers."""
    counter = itertools.count(1)

    def _register(prefix='player'):
        username = f'{prefix}{next(counter)}'
        res = client.post('/api/auth/register', json={
            'username': username,
            'email': f'{username}@test.com',
            'password': 'password123',
        })
        assert res.status_code == 201
        data = json.loads(res.data)['data']
        return {
            'id': data['user']['id'],
            'token': data['token'],
            'headers': _auth(data['token']),
            'username': username,
        }
    return _register


class NightEnv:
    """One league with an admin, some members and a scheduled night."""

    def __init__(self, client, league_id, night_id, admin, players):
        self.client = client
        self.league_id = league_id
        self.night_id = night_id
        self.admin = admin
        self.players = players

    def path(self, suffix=''):
        return f'/api/leagues/{self.league_id}/nights/{self.night_id}{suffix}'

    def post(self, suffix, actor, body=None):
        return self.client.post(self.path(suffix), json=body or {}, headers=actor['headers'])

    def delete(self, suffix, actor, body=None):
        return self.client.delete(self.path(suffix), json=body or {}, headers=actor['headers'])

    def get(self, suffix='', actor=None, **params):
        headers = actor['headers'] if actor else {}
        return self.client.get(self.path(suffix), query_string=params, headers=headers)

    def check_in(self, player):
        return self.post('/checkin', player, {'userId': player['id']})

    def send_request(self, requester, requested):
        return self.post('/partnership-request', requester, {
            'requesterId': requester['id'], 'requestedId': requested['id'],
        })

    def accept(self, player, request_id):
        return self.post('/partnership-accept', player, {
            'requestId': request_id, 'userId': player['id'],
        })

    def partner(self, first, second):
        """Check both players in (if needed) and confirm a partnership between them."""
        for player in (first, second):
            res = self.check_in(player)
            assert res.status_code in (201, 409)
        sent = self.send_request(first, second)
        assert sent.status_code == 201
        accepted = self.accept(second, json.loads(sent.data)['data']['id'])
        assert accepted.status_code == 200
        return json.loads(accepted.data)['data']['partnership']

    def start(self):
        res = self.post('/start', self.admin)
        assert res.status_code == 200
        return json.loads(res.data)['data']

    def create_matches(self):
        res = self.post('/create-matches', self.admin)
        assert res.status_code in (200, 201)
        return json.loads(res.data)['data']

    def state(self):
        res = self.get('/state')
        assert res.status_code == 200
        return json.loads(res.data)['data']


@pytest.fixture
def league_night(client, register):
    """Factory for a league night; auto-assignment is off unless asked for."""
    def _build(players=4, court_labels=('Court A', 'Court B'), start=False, auto_assign=False):
        admin = register('admin')
        res = client.post('/api/leagues', json={
            'name': 'Tuesday Doubles', 'courtLabels': list(court_labels),
        }, headers=admin['headers'])
        assert res.status_code == 201
        league_id = json.loads(res.data)['data']['id']

        members = []
        for _ in range(players):
            player = register()
            joined = client.post(f'/api/leagues/{league_id}/join', headers=player['headers'])
            assert joined.status_code == 201
            members.append(player)

        res = client.post(f'/api/leagues/{league_id}/nights', json={
            'date': '2099-03-10',
        }, headers=admin['headers'])
        assert res.status_code == 201
        env = NightEnv(client, league_id, json.loads(res.data)['data']['id'], admin, members)

        if not auto_assign:
            toggled = env.post('/auto-assignment', admin, {'enabled': False})
            assert toggled.status_code == 200
        if start:
            env.start()
        return env
    return _build
