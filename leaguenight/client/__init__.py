"""Client-side mirror of a league night: HTTP facade, realtime feed, local cache."""
from leaguenight.client.api import LeagueNightApi
from leaguenight.client.cache import NightStateCache
from leaguenight.client.realtime import RealtimeClient, SocketIOTransport, Transport
from leaguenight.client.session import LeagueNightSession

__all__ = [
    'LeagueNightApi', 'NightStateCache', 'RealtimeClient', 'SocketIOTransport',
    'Transport', 'LeagueNightSession',
]
