"""Realtime synchronizer client.

Holds one transport connection per league night and fans every
``{event, type, payload}`` message out to local subscribers. It keeps no
league state itself: after a reconnect the owner must re-fetch the night
snapshot (see ``on_reconnect``) because messages sent while the socket was
down are gone.
"""
import logging
import threading
import socketio
from socketio import exceptions as socketio_exceptions
from leaguenight.errors import JoinRefusedError, TransportError

logger = logging.getLogger(__name__)

NIGHT_EVENT = 'night_event'
WILDCARD = '*'

CONNECTING = 'connecting'
CONNECTED = 'connected'
DISCONNECTED = 'disconnected'
ERROR = 'error'


class Transport:
    """One connection attempt at a time; reports messages and unexpected closes."""

    def open(self, on_message, on_close):
        raise NotImplementedError

    def close(self):
        raise NotImplementedError


class SocketIOTransport(Transport):
    """Socket.IO transport that joins one league-night room after connecting.

    Reconnection is disabled on the underlying client; the backoff policy
    lives in ``RealtimeClient``.
    """

    def __init__(self, url, night_id, token, client=None, socketio_path='socket.io',
                 join_timeout=10):
        self.url = url
        self.night_id = night_id
        self.token = token
        self.socketio_path = socketio_path
        self.join_timeout = join_timeout
        self._client = client or socketio.Client(reconnection=False)
        self._on_message = None
        self._on_close = None
        self._closing = False
        self._client.on(NIGHT_EVENT, self._handle_message)
        self._client.on('disconnect', self._handle_disconnect)

    def open(self, on_message, on_close):
        """Connect and join the night room; returns only once the server accepted the join."""
        self._on_message = on_message
        self._on_close = on_close
        self._closing = False
        try:
            self._client.connect(self.url, socketio_path=self.socketio_path)
            status = self._client.call(
                'join_night',
                {'night_id': self.night_id, 'token': self.token},
                timeout=self.join_timeout,
            )
        except socketio_exceptions.SocketIOError as exc:
            self.close()
            raise TransportError(f'Could not reach {self.url}: {exc}') from exc

        if not isinstance(status, dict) or not status.get('joined'):
            reason = status.get('error') if isinstance(status, dict) else None
            self.close()
            raise JoinRefusedError(
                f'Join for night {self.night_id} refused: {reason or "no reply"}'
            )

    def close(self):
        self._closing = True
        try:
            self._client.disconnect()
        except socketio_exceptions.SocketIOError as exc:
            logger.debug('Ignoring disconnect failure: %s', exc)

    def _handle_message(self, data):
        if self._on_message:
            self._on_message(data)

    def _handle_disconnect(self, *args):
        if not self._closing and self._on_close:
            self._on_close()


class _Subscription:
    __slots__ = ('event', 'callback')

    def __init__(self, event, callback):
        self.event = event
        self.callback = callback


def _spawn_daemon(target):
    thread = threading.Thread(target=target, name='leaguenight-reconnect', daemon=True)
    thread.start()
    return thread


class RealtimeClient:
    def __init__(self, transport, base_delay=1.0, max_delay=30.0, max_retries=10,
                 sleep=None, spawn=None):
        self.transport = transport
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retries = max_retries
        self.status = DISCONNECTED
        self._stop = threading.Event()
        self._sleep = sleep or self._stop.wait
        self._spawn = spawn or _spawn_daemon
        self._lock = threading.Lock()
        self._subscriptions = []
        self._status_listeners = []
        self._reconnect_hooks = []
        self._reconnecting = False

    @classmethod
    def from_config(cls, transport, config, **kwargs):
        """Build from a Flask-style config mapping (``REALTIME_*`` keys)."""
        return cls(
            transport,
            base_delay=config.get('REALTIME_BASE_DELAY_SECONDS', 1.0),
            max_delay=config.get('REALTIME_MAX_DELAY_SECONDS', 30.0),
            max_retries=config.get('REALTIME_MAX_RETRIES', 10),
            **kwargs,
        )

    def reconnect_delay(self, attempt):
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, event, callback):
        """Register ``callback`` for ``event`` (or ``'*'``); returns an unsubscribe function."""
        subscription = _Subscription(event, callback)
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe():
            with self._lock:
                self._subscriptions = [s for s in self._subscriptions if s is not subscription]
        return unsubscribe

    def on_status(self, callback):
        with self._lock:
            self._status_listeners.append(callback)

        def remove():
            with self._lock:
                if callback in self._status_listeners:
                    self._status_listeners.remove(callback)
        return remove

    def on_reconnect(self, callback):
        with self._lock:
            self._reconnect_hooks.append(callback)

        def remove():
            with self._lock:
                if callback in self._reconnect_hooks:
                    self._reconnect_hooks.remove(callback)
        return remove

    def dispatch(self, message):
        """Deliver one message to matching subscribers in registration order."""
        if not isinstance(message, dict) or not message.get('event'):
            logger.warning('Dropping malformed realtime message: %r', message)
            return
        event = message['event']
        with self._lock:
            targets = [s for s in self._subscriptions if s.event in (event, WILDCARD)]
        for subscription in targets:
            try:
                subscription.callback(message)
            except Exception:
                logger.exception('Subscriber for %s raised; continuing fan-out', event)

    # ── Connection lifecycle ─────────────────────────────────────────

    def connect(self):
        """Open the transport; on failure fall into the backoff loop.

        Returns True when the first attempt connected. A refused join goes
        straight to ``error``: the token or membership will not fix itself.
        """
        self._stop.clear()
        self._set_status(CONNECTING)
        try:
            self.transport.open(self.dispatch, self._handle_close)
        except JoinRefusedError as exc:
            logger.error('Realtime join refused: %s', exc.message)
            self._set_status(ERROR)
            return False
        except TransportError as exc:
            logger.warning('Initial realtime connect failed: %s', exc.message)
            self._set_status(DISCONNECTED)
            self._start_reconnect()
            return False
        self._set_status(CONNECTED)
        return True

    def disconnect(self):
        """Close the connection and cancel any pending reconnect wait."""
        self._stop.set()
        self.transport.close()
        self._set_status(DISCONNECTED)

    @property
    def stopped(self):
        return self._stop.is_set()

    def _handle_close(self):
        if self._stop.is_set():
            return
        logger.warning('Realtime connection lost')
        self._set_status(DISCONNECTED)
        self._start_reconnect()

    def _start_reconnect(self):
        with self._lock:
            if self._reconnecting:
                return
            self._reconnecting = True
        self._spawn(self._reconnect)

    def _reconnect(self):
        try:
            reconnected = self._reconnect_loop()
        finally:
            with self._lock:
                self._reconnecting = False
        if reconnected:
            self._run_reconnect_hooks()

    def _reconnect_loop(self):
        for attempt in range(self.max_retries):
            delay = self.reconnect_delay(attempt)
            logger.info(
                'Reconnecting in %.1fs (attempt %s of %s)', delay, attempt + 1, self.max_retries
            )
            self._sleep(delay)
            if self._stop.is_set():
                return False
            self._set_status(CONNECTING)
            try:
                self.transport.open(self.dispatch, self._handle_close)
            except JoinRefusedError as exc:
                logger.error('Realtime join refused on reconnect: %s', exc.message)
                self._set_status(ERROR)
                return False
            except TransportError as exc:
                logger.warning('Reconnect attempt %s failed: %s', attempt + 1, exc.message)
                self._set_status(DISCONNECTED)
                continue
            if self._stop.is_set():
                self.transport.close()
                return False
            self._set_status(CONNECTED)
            return True

        logger.error('Giving up on realtime connection after %s attempts', self.max_retries)
        self._set_status(ERROR)
        return False

    def _run_reconnect_hooks(self):
        with self._lock:
            hooks = list(self._reconnect_hooks)
        for hook in hooks:
            try:
                hook()
            except Exception:
                logger.exception('Reconnect hook failed')

    def _set_status(self, status):
        with self._lock:
            if status == self.status:
                return
            self.status = status
            listeners = list(self._status_listeners)
        logger.info('Realtime status: %s', status)
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                logger.exception('Status listener failed')
