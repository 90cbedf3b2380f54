import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from sketchturn.services.games.scoring import guesser_points
from .errors import SessionApiError
from .roles import DrawerRole, GuesserRole, Role, role_for
from .state import (
    CanvasPath,
    GuessRecord,
    IllegalTransition,
    Phase,
    RecentEvents,
    SessionState,
    event_turn_key,
)

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    base_url: str = 'http://localhost:5000'
    namespace: str = '/ws'
    tick_interval: float = 1.0
    heal_interval: float = 3.0
    dedup_capacity: int = 256
    word_regen_attempts: int = 3
    request_timeout: float = 10.0


class GameCoordinator:
    """One participant's view of a room.

    State changes only through `handle_event`. Events this participant
    publishes are applied locally as well, after whatever event is being
    processed finishes, so handling is never re-entered.
    """

    def __init__(self, room_id: str, local_player: dict, api, channel,
                 config: Optional[ClientConfig] = None, clock: Callable[[], float] = time.time):
        self.room_id = room_id
        self.local_player = dict(local_player)
        self.local_id = local_player['id']
        self.api = api
        self.channel = channel
        self.config = config or ClientConfig()
        self._clock = clock
        self.state = SessionState()
        self.recent = RecentEvents(self.config.dedup_capacity)
        self.strategy = GuesserRole(self)
        self.regen_attempts = {}
        self._pending = deque()
        self._busy = False
        self._handlers = {
            'player:join': self._on_player_join,
            'player:leave': self._on_player_leave,
            'game:start': self._on_game_start,
            'game:round': self._on_game_round,
            'word:selected': self._on_word_selected,
            'canvas:update': self._on_canvas_update,
            'canvas:clear': self._on_canvas_clear,
            'chat:guess': self._on_chat,
            'chat:close': self._on_chat,
            'chat:correct': self._on_chat_correct,
            'timer:update': self._on_timer_update,
            'scores:update': self._on_scores_update,
            'game:round-end': self._on_round_end,
            'game:over': self._on_game_over,
        }
        channel.subscribe(self.handle_event)

    # -- plumbing ---------------------------------------------------------

    @property
    def role(self) -> Role:
        return self.strategy.role

    @property
    def is_drawer(self) -> bool:
        return self.role is Role.DRAWER

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def turn_fields(self) -> dict:
        return {'round': self.state.current_round, 'turnIndex': self.state.current_turn_index}

    def publish(self, event: str, payload: dict) -> None:
        self.channel.publish(event, payload)
        self._pending.append((event, payload))
        self._drain()

    def handle_event(self, event: str, payload: dict) -> None:
        payload = {} if payload is None else payload
        if not isinstance(payload, dict):
            logger.warning('dropped %s with non-object payload', event)
            return
        self._pending.append((event, payload))
        self._drain()

    def _drain(self) -> None:
        if self._busy:
            return
        self._busy = True
        try:
            while self._pending:
                event, payload = self._pending.popleft()
                self._apply(event, payload)
        finally:
            self._busy = False

    def _exclusive(self, fn, *args):
        if self._busy:
            return fn(*args)
        self._busy = True
        try:
            return fn(*args)
        finally:
            self._busy = False
            self._drain()

    def _apply(self, event: str, payload: dict) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug('ignoring unknown event %s', event)
            return
        try:
            handler(payload)
        except IllegalTransition as exc:
            logger.info('dropped %s: %s', event, exc)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning('dropped malformed %s %r: %s', event, payload, exc)
        self._refresh_role()

    def _refresh_role(self) -> None:
        wanted = role_for(self.state, self.local_id)
        if wanted is self.strategy.role:
            return
        self.strategy = DrawerRole(self) if wanted is Role.DRAWER else GuesserRole(self)
        logger.info('now %s for turn %s', wanted.value, self.state.turn_key)

    def _ensure_player(self, player_id: str) -> None:
        if player_id and player_id not in self.state.players:
            self.state.players[player_id] = {'id': player_id, 'displayName': player_id, 'team': None}

    def player_name(self, player_id: str) -> str:
        return (self.state.players.get(player_id) or {}).get('displayName') or player_id

    def player_scores(self) -> list:
        """Turn summary sent to end-round: baseline totals plus who guessed."""
        state = self.state
        guessed = {g.player_id: g for g in state.correct_guesses}
        entries = []
        for pid in state.players:
            record = guessed.get(pid)
            entries.append({
                'playerId': pid,
                'playerName': self.player_name(pid),
                'score': state.turn_baseline.get(pid, state.scores.get(pid, 0)),
                'guessedCorrectly': record is not None,
                'timeTaken': record.time_taken if record else None,
            })
        return entries

    # -- event reducers ---------------------------------------------------

    def load_room(self, room: dict) -> None:
        """Seed roster and settings from a registry snapshot (join-room)."""
        self.state.host_id = room.get('hostId')
        self.state.settings = dict(room.get('settings') or {})
        self.state.drawing_time = int(self.state.settings.get('drawingTime') or 60)
        for player in room.get('players') or []:
            self.state.players[player['id']] = dict(player)

    def _on_player_join(self, payload):
        player = payload.get('player') or {}
        if not player.get('id'):
            return
        self.state.players[player['id']] = dict(self.state.players.get(player['id'], {}), **player)
        if self.state.is_active:
            self.state.scores.setdefault(player['id'], 0)

    def _on_player_leave(self, payload):
        if self.state.players.pop(payload.get('playerId'), None) is None:
            return
        self._refresh_role()
        self.strategy.on_roster_change()

    def _on_game_start(self, payload):
        state = self.state
        if state.phase not in (Phase.LOBBY, Phase.GAME_OVER):
            return
        game = payload.get('gameState') or {}
        turn_order = list(payload.get('turnOrder') or game.get('turnOrder') or [])
        if not turn_order:
            return
        if state.phase is Phase.GAME_OVER:
            state.transition(Phase.LOBBY)
        state.turn_order = turn_order
        state.total_rounds = int(payload.get('totalRounds') or game.get('totalRounds') or 1)
        state.drawing_time = int(payload.get('drawingTime') or game.get('drawingTime') or state.drawing_time)
        state.used_words = list(game.get('usedWords') or [])
        state.scores = {pid: 0 for pid in turn_order}
        state.winner = state.winner_type = state.message = state.game_over_reason = None
        state.game_over_forced = False
        state.team_scores = {}
        state.chat.clear()
        for pid in turn_order:
            self._ensure_player(pid)
        state.start_turn(int(payload.get('round') or 1), 0)
        state.transition(Phase.WORD_SELECTION)
        if payload.get('nextDrawer', turn_order[0]) == self.local_id:
            state.word_options = list(payload.get('wordOptions') or [])

    def _on_game_round(self, payload):
        state = self.state
        key = event_turn_key(payload)
        if state.is_game_over or key + (1,) <= state.position:
            return
        if payload.get('turnOrder'):
            state.turn_order = list(payload['turnOrder'])
        if key != state.turn_key:
            state.start_turn(*key)
        state.transition(Phase.WORD_SELECTION)

    def _on_word_selected(self, payload):
        state = self.state
        key = event_turn_key(payload)
        if state.is_game_over or key + (2,) <= state.position:
            return
        if payload.get('turnOrder'):
            state.turn_order = list(payload['turnOrder'])
        if key != state.turn_key:
            state.start_turn(*key)
        state.transition(Phase.DRAWING)
        state.current_word = payload.get('selectedWord')
        state.word_length = int(payload.get('wordLength') or len(state.current_word or ''))
        state.word_options = []
        state.drawing_time = int(payload.get('drawingTime') or state.drawing_time)
        state.time_remaining = state.drawing_time
        state.used_words = list(payload.get('usedWords') or state.used_words)
        state.turn_baseline = dict(state.scores)

    def _on_canvas_update(self, payload):
        state = self.state
        if state.phase is not Phase.DRAWING or not state.is_current_turn(payload):
            return
        if payload.get('playerId') != state.drawer_id or not isinstance(payload.get('path'), dict):
            return
        path = CanvasPath.from_payload(dict(payload['path'], playerId=payload.get('playerId')))
        if path.timestamp and path.timestamp < state.canvas_cleared_at:
            return
        state.canvas[path.id] = path

    def _on_canvas_clear(self, payload):
        state = self.state
        if not state.is_current_turn(payload):
            return
        cleared_at = int(payload.get('timestamp') or 0)
        state.canvas_cleared_at = max(state.canvas_cleared_at, cleared_at)
        state.canvas = {pid: p for pid, p in state.canvas.items()
                        if p.timestamp and p.timestamp >= state.canvas_cleared_at}

    def _on_chat(self, payload):
        self.state.add_chat({
            'type': 'close' if payload.get('isClose') else 'guess',
            'playerId': payload.get('playerId'),
            'playerName': payload.get('playerName'),
            'text': payload.get('text'),
            'isClose': bool(payload.get('isClose')),
        })

    def _on_chat_correct(self, payload):
        state = self.state
        player_id = payload.get('playerId')
        if not player_id or self.recent.seen((player_id, payload.get('timestamp'))):
            return
        if state.phase is not Phase.DRAWING or not state.is_current_turn(payload):
            return
        if player_id == state.drawer_id or state.has_guessed(player_id):
            return
        time_taken = max(0.0, float(payload.get('timeTaken') or 0))
        record = GuessRecord(
            player_id=player_id,
            player_name=payload.get('playerName') or self.player_name(player_id),
            time_taken=time_taken,
            points=guesser_points(time_taken),
            timestamp=int(payload.get('timestamp') or 0),
        )
        state.correct_guesses.append(record)
        state.add_chat({'type': 'system', 'text': f'{record.player_name} guessed correctly!'})
        self.strategy.on_guess_event(record)

    def _on_timer_update(self, payload):
        state = self.state
        if self.is_drawer or state.phase is not Phase.DRAWING or not state.is_current_turn(payload):
            return
        value = payload.get('timeRemaining')
        if isinstance(value, (int, float)):
            # Ticks only count down; a late tick never winds the clock back
            state.time_remaining = max(0, min(state.time_remaining, int(value)))

    def _on_scores_update(self, payload):
        state = self.state
        if not state.is_active or event_turn_key(payload) < state.turn_key:
            return
        scores = payload.get('scores') or {}
        if payload.get('authoritative'):
            state.scores = dict(state.scores, **{pid: int(v) for pid, v in scores.items()})
        else:
            self.strategy.on_partial_scores(payload)

    def _on_round_end(self, payload):
        state = self.state
        if state.is_game_over:
            return
        ended = event_turn_key(payload)
        if ended < state.turn_key:
            return
        state.scores = dict(state.scores, **(payload.get('scores') or {}))
        state.last_round_result = dict(payload)
        state.add_chat({'type': 'system', 'text': f"The word was {state.current_word}" if state.current_word else 'Turn over'})
        if payload.get('isGameOver'):
            state.transition(Phase.GAME_OVER)
            state.word_options = []
            state.game_over_reason = 'completed'
            return
        state.transition(Phase.ROUND_END if payload.get('isNewRound') else Phase.TURN_END)
        state.start_turn(int(payload.get('nextRound') or state.current_round),
                         int(payload.get('nextTurnIndex') or 0))
        state.turn_baseline = dict(state.scores)
        self._refresh_role()
        if self.is_drawer:
            self.begin_turn()

    def _on_game_over(self, payload):
        state = self.state
        if state.phase is Phase.LOBBY:
            return
        if not payload.get('forced') and event_turn_key(payload) < state.turn_key and state.is_active:
            # Game-over from a turn we already moved past
            return
        if state.phase is not Phase.GAME_OVER:
            state.transition(Phase.GAME_OVER)
        if payload.get('finalScores') is not None:
            state.scores = dict(payload['finalScores'])
        state.winner = payload.get('winner')
        state.winner_type = payload.get('winnerType')
        state.team_scores = dict(payload.get('teamScores') or {})
        state.message = payload.get('message')
        state.game_over_reason = payload.get('reason') or state.game_over_reason
        state.game_over_forced = bool(payload.get('forced'))

    # -- drawer duties ----------------------------------------------------

    def begin_turn(self) -> bool:
        """As the incoming drawer: fetch word options and announce the turn."""
        state = self.state
        if not self.is_drawer or state.current_word or state.word_options:
            return False
        options = self.request_word_options()
        if not options:
            return False
        if state.phase is not Phase.WORD_SELECTION:
            self.publish('game:round', dict(
                self.turn_fields(),
                drawerId=self.local_id,
                turnOrder=list(state.turn_order),
            ))
        state.word_options = options
        return True

    def request_word_options(self) -> list:
        state = self.state
        key = state.turn_key
        attempts = self.regen_attempts.get(key, 0)
        if attempts >= self.config.word_regen_attempts:
            return []
        self.regen_attempts[key] = attempts + 1
        try:
            result = self.api.start_round(
                action='generate_words',
                room_id=self.room_id,
                drawer_id=self.local_id,
                round_number=state.current_round,
                turn_index=state.current_turn_index,
                turn_order=list(state.turn_order),
                used_words=list(state.used_words),
                theme=state.settings.get('theme'),
                max_word_length=state.settings.get('maxWordLength'),
            )
        except SessionApiError as exc:
            logger.warning('generate_words failed for turn %s (attempt %s): %s', key, attempts + 1, exc)
            return []
        return list(result.get('wordOptions') or [])

    def finish_game(self, final_scores: dict, ended_turn=None, reason: str = 'completed') -> Optional[dict]:
        state = self.state
        teams = state.team_map() if state.settings.get('isTeamGame') else None
        try:
            result = self.api.end_game(
                room_id=self.room_id,
                final_scores=final_scores,
                teams=teams,
                reason=reason,
            )
        except SessionApiError as exc:
            logger.warning('end-game failed for room %s: %s', self.room_id, exc)
            return None
        key = ended_turn or state.turn_key
        self.publish('game:over', dict(result, round=key[0], turnIndex=key[1]))
        return result

    # -- local actions ----------------------------------------------------

    def join(self) -> None:
        self.state.players[self.local_id] = dict(self.state.players.get(self.local_id, {}), **self.local_player)
        self.publish('player:join', {'player': self.local_player})

    def leave(self) -> None:
        self.publish('player:leave', {'playerId': self.local_id})

    def start_game(self) -> dict:
        state = self.state
        result = self.api.start_game(
            room_id=self.room_id,
            host_id=self.local_id,
            players=list(state.players.values()),
            settings=state.settings,
        )
        self.publish('game:start', result)
        return result

    def select_word(self, word: str) -> bool:
        state = self.state
        if not self.is_drawer or state.phase is not Phase.WORD_SELECTION or word not in state.word_options:
            return False
        try:
            result = self.api.start_round(
                action='start_round',
                room_id=self.room_id,
                drawer_id=self.local_id,
                round_number=state.current_round,
                turn_index=state.current_turn_index,
                turn_order=list(state.turn_order),
                used_words=list(state.used_words),
                drawing_time=state.drawing_time,
                theme=state.settings.get('theme'),
                selected_word=word,
            )
        except SessionApiError as exc:
            logger.warning('start_round failed for turn %s: %s; regenerating options', state.turn_key, exc)
            options = self.request_word_options()
            if options:
                state.word_options = options
            return False
        self.publish('word:selected', dict(result, round=state.current_round, turnIndex=state.current_turn_index))
        return True

    def submit_guess(self, text: str) -> Optional[dict]:
        state = self.state
        text = (text or '').strip()
        if not text or self.is_drawer or state.phase is not Phase.DRAWING or state.has_guessed(self.local_id):
            return None
        result = self.api.submit_guess(text, state.current_word)
        base = dict(self.turn_fields(), playerId=self.local_id, playerName=self.player_name(self.local_id))
        if result.get('isCorrect'):
            time_taken = max(0, state.drawing_time - state.time_remaining)
            self.publish('chat:correct', dict(base, timeTaken=time_taken, timestamp=self.now_ms()))
            provisional = state.turn_baseline.get(self.local_id, 0) + guesser_points(time_taken)
            self.publish('scores:update', dict(
                base, scores={self.local_id: provisional}, authoritative=False,
                origin=self.local_id, timeTaken=time_taken))
        elif result.get('isClose'):
            self.publish('chat:close', dict(base, text=text, isClose=True))
        else:
            self.publish('chat:guess', dict(base, text=text, isClose=False))
        return result

    def draw(self, path: dict) -> bool:
        if not self.is_drawer or self.state.phase is not Phase.DRAWING:
            return False
        path = dict(path)
        path.setdefault('timestamp', self.now_ms())
        self.publish('canvas:update', dict(self.turn_fields(), path=path, playerId=self.local_id, timestamp=path['timestamp']))
        return True

    def clear_canvas(self) -> bool:
        if not self.is_drawer or self.state.phase is not Phase.DRAWING:
            return False
        self.publish('canvas:clear', dict(self.turn_fields(), timestamp=self.now_ms()))
        return True

    def tick(self) -> None:
        """Advance one second. Only the drawer's strategy does anything."""
        self._exclusive(self.strategy.on_tick)

    def end_turn(self) -> None:
        """Drawer gives up the turn early."""
        self._exclusive(self.strategy.on_turn_complete, 'manual')
