"""Network edges of a participant: RPC calls over HTTP and the room channel."""
import logging
import queue
import threading
import time
from typing import Callable, List, Optional, Tuple

import requests
import socketio
from socketio.exceptions import SocketIOError

from sketchturn.socketio_events import TOPICS
from .coordinator import ClientConfig
from .errors import SessionApiError
from .healer import Healer

logger = logging.getLogger(__name__)


def _compact(body: dict) -> dict:
    return {k: v for k, v in body.items() if v is not None}


class HttpSessionApi:
    """Blocking client for the /api/session handlers.

    Subclasses can replace `_send` to route requests elsewhere (the test
    suite sends them through the Flask test client).
    """

    def __init__(self, config: Optional[ClientConfig] = None, http=None):
        self.config = config or ClientConfig()
        self.http = http or requests.Session()

    def _send(self, name: str, body: dict) -> Tuple[int, dict]:
        url = f"{self.config.base_url.rstrip('/')}/api/session/{name}"
        try:
            response = self.http.post(url, json=body, timeout=self.config.request_timeout)
        except requests.RequestException as exc:
            raise SessionApiError('network_error', str(exc)) from exc
        try:
            data = response.json()
        except ValueError:
            data = {}
        return response.status_code, data if isinstance(data, dict) else {}

    def _post(self, name: str, body: dict) -> dict:
        status, data = self._send(name, _compact(body))
        if status >= 400:
            logger.info('%s rejected (%s): %s', name, status, data)
            raise SessionApiError(data.get('error') or 'server_error', data.get('detail') or '', status)
        return data

    def create_room(self, host_id, settings=None, host_data=None):
        return self._post('create-room', {'hostId': host_id, 'settings': settings, 'hostData': host_data})

    def join_room(self, room_id, player_id, player_data=None, action='join'):
        return self._post('join-room', {
            'roomId': room_id,
            'playerId': player_id,
            'playerData': player_data,
            'action': action,
        })

    def start_game(self, room_id, host_id, players, settings=None):
        return self._post('start-game', {
            'roomId': room_id,
            'hostId': host_id,
            'players': players,
            'settings': settings,
        })

    def start_round(self, action, room_id, drawer_id=None, round_number=None, turn_index=None,
                    turn_order=None, used_words=None, drawing_time=None, theme=None,
                    max_word_length=None, selected_word=None):
        return self._post('start-round', {
            'action': action,
            'roomId': room_id,
            'drawerId': drawer_id,
            'roundNumber': round_number,
            'turnIndex': turn_index,
            'turnOrder': turn_order,
            'usedWords': used_words,
            'drawingTime': drawing_time,
            'theme': theme,
            'maxWordLength': max_word_length,
            'selectedWord': selected_word,
        })

    def end_round(self, room_id, current_drawer_id, word, player_scores, current_round,
                  total_rounds, turn_order, current_turn_index, reason):
        return self._post('end-round', {
            'roomId': room_id,
            'currentDrawerId': current_drawer_id,
            'word': word,
            'playerScores': player_scores,
            'currentRound': current_round,
            'totalRounds': total_rounds,
            'turnOrder': turn_order,
            'currentTurnIndex': current_turn_index,
            'reason': reason,
        })

    def end_game(self, room_id, final_scores, teams=None, team_scores=None, winner=None, reason='completed'):
        return self._post('end-game', {
            'roomId': room_id,
            'finalScores': final_scores,
            'teams': teams,
            'teamScores': team_scores,
            'winner': winner,
            'reason': reason,
        })

    def submit_guess(self, guess, actual_word):
        return self._post('submit-guess', {'guess': guess, 'actualWord': actual_word})


class SocketIOChannel:
    """Room channel over the server's Socket.IO relay.

    Socket.IO callbacks run on the client's own thread, so received events
    only go into `inbox`; `run_coordinator` delivers them to listeners.
    """

    def __init__(self, room_id: str, player_id: str, config: Optional[ClientConfig] = None, client=None):
        self.room_id = room_id
        self.player_id = player_id
        self.config = config or ClientConfig()
        self.namespace = self.config.namespace
        self.inbox: 'queue.Queue[Tuple[str, dict]]' = queue.Queue()
        self._listeners: List[Callable[[str, dict], None]] = []
        self.sio = client or socketio.Client(reconnection=True)
        self.sio.on('connect', self._on_connect, namespace=self.namespace)
        self.sio.on('error', self._on_error, namespace=self.namespace)
        for topic in TOPICS:
            self.sio.on(topic, self._receiver(topic), namespace=self.namespace)

    def _receiver(self, topic):
        def receive(payload=None):
            self.inbox.put((topic, payload or {}))
        return receive

    def _on_connect(self):
        # Also runs after an automatic reconnect, which re-registers presence
        self.sio.emit('join_room', {'roomId': self.room_id, 'playerId': self.player_id}, namespace=self.namespace)

    def _on_error(self, data=None):
        logger.warning('relay error in room %s: %s', self.room_id, (data or {}).get('message'))

    def connect(self) -> None:
        self.sio.connect(self.config.base_url, namespaces=[self.namespace])

    def close(self) -> None:
        if self.sio.connected:
            self.sio.emit('leave_room', {'roomId': self.room_id}, namespace=self.namespace)
            self.sio.disconnect()

    def subscribe(self, listener: Callable[[str, dict], None]) -> None:
        self._listeners.append(listener)

    def publish(self, event: str, payload: dict) -> None:
        try:
            self.sio.emit('publish', {'roomId': self.room_id, 'event': event, 'payload': payload},
                          namespace=self.namespace)
        except SocketIOError as exc:
            # At-most-once: a lost publish is repaired by later events or the healer
            logger.warning('publish %s failed: %s', event, exc)

    def deliver(self, event: str, payload: dict) -> None:
        for listener in list(self._listeners):
            listener(event, payload)


def run_coordinator(coordinator, channel, config: Optional[ClientConfig] = None,
                    stop: Optional[threading.Event] = None, healer: Optional[Healer] = None,
                    clock: Callable[[], float] = time.monotonic) -> None:
    """Single-threaded loop: inbound events, the drawer's tick and heal checks."""
    config = config or coordinator.config
    stop = stop or threading.Event()
    healer = healer or Healer(coordinator, config.word_regen_attempts)
    next_tick = clock() + config.tick_interval
    next_heal = clock() + config.heal_interval

    while not stop.is_set():
        wait = max(0.0, min(next_tick, next_heal) - clock())
        try:
            event, payload = channel.inbox.get(timeout=wait)
        except queue.Empty:
            pass
        else:
            try:
                channel.deliver(event, payload)
            except SessionApiError as exc:
                logger.warning('handling %s failed: %s', event, exc)

        now = clock()
        if now >= next_tick:
            next_tick = now + config.tick_interval
            try:
                coordinator.tick()
            except SessionApiError as exc:
                logger.warning('tick failed: %s', exc)
        if now >= next_heal:
            next_heal = now + config.heal_interval
            try:
                repaired = healer.check()
            except SessionApiError as exc:
                logger.warning('heal check failed: %s', exc)
            else:
                if repaired:
                    logger.info('healed %s in room %s', repaired, coordinator.room_id)
