"""Local mirror of a session, rebuilt purely from broadcast events.

Every turn-scoped event carries the turn it belongs to as (round, turnIndex).
Together with a per-phase rank this gives each event a position in the
session; the reducer only ever moves forward, which makes duplicated,
reordered or late events harmless.
"""
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

CHAT_HISTORY = 50


class Phase(str, Enum):
    LOBBY = 'lobby'
    WORD_SELECTION = 'word_selection'
    DRAWING = 'drawing'
    TURN_END = 'turn_end'
    ROUND_END = 'round_end'
    GAME_OVER = 'game_over'


# Order of phases inside one turn. TURN_END and ROUND_END open the *next*
# turn: once a turn is scored the mirror already points at the next drawer.
PHASE_RANK = {
    Phase.LOBBY: 0,
    Phase.TURN_END: 0,
    Phase.ROUND_END: 0,
    Phase.WORD_SELECTION: 1,
    Phase.DRAWING: 2,
}

TRANSITIONS = {
    Phase.LOBBY: {Phase.WORD_SELECTION, Phase.DRAWING, Phase.GAME_OVER},
    Phase.WORD_SELECTION: {Phase.WORD_SELECTION, Phase.DRAWING, Phase.TURN_END, Phase.ROUND_END, Phase.GAME_OVER},
    Phase.DRAWING: {Phase.WORD_SELECTION, Phase.DRAWING, Phase.TURN_END, Phase.ROUND_END, Phase.GAME_OVER},
    Phase.TURN_END: {Phase.WORD_SELECTION, Phase.DRAWING, Phase.TURN_END, Phase.ROUND_END, Phase.GAME_OVER},
    Phase.ROUND_END: {Phase.WORD_SELECTION, Phase.DRAWING, Phase.TURN_END, Phase.ROUND_END, Phase.GAME_OVER},
    # Only the self-healer leaves GAME_OVER (stale flag), or a brand new session
    Phase.GAME_OVER: {Phase.WORD_SELECTION, Phase.LOBBY},
}


class IllegalTransition(Exception):
    pass


TurnKey = Tuple[int, int]


@dataclass
class GuessRecord:
    player_id: str
    player_name: str
    time_taken: float
    points: int
    timestamp: int


@dataclass
class CanvasPath:
    id: str
    points: list
    color: str = '#000000'
    size: int = 5
    tool: str = 'brush'
    player_id: Optional[str] = None
    timestamp: int = 0

    @classmethod
    def from_payload(cls, data: dict) -> 'CanvasPath':
        return cls(
            id=str(data.get('id')),
            points=list(data.get('points') or []),
            color=data.get('color') or '#000000',
            size=data.get('size') or 5,
            tool=data.get('tool') or 'brush',
            player_id=data.get('playerId'),
            timestamp=int(data.get('timestamp') or 0),
        )


class RecentEvents:
    """Bounded LRU of event keys already applied in this session."""

    def __init__(self, capacity: int = 256):
        self.capacity = capacity
        self._seen: 'OrderedDict[tuple, None]' = OrderedDict()

    def seen(self, key: tuple) -> bool:
        """Record `key`; True if it was already recorded."""
        if key in self._seen:
            self._seen.move_to_end(key)
            return True
        self._seen[key] = None
        if len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return False

    def __len__(self):
        return len(self._seen)


@dataclass
class SessionState:
    phase: Phase = Phase.LOBBY
    current_round: int = 0
    total_rounds: int = 0
    turn_order: List[str] = field(default_factory=list)
    current_turn_index: int = 0
    current_word: Optional[str] = None
    word_options: List[str] = field(default_factory=list)
    word_length: int = 0
    drawing_time: int = 60
    time_remaining: int = 60
    used_words: List[str] = field(default_factory=list)
    scores: Dict[str, int] = field(default_factory=dict)
    # Totals as they stood when the current drawing phase began
    turn_baseline: Dict[str, int] = field(default_factory=dict)
    winner: Optional[str] = None
    winner_type: Optional[str] = None
    team_scores: Dict[str, int] = field(default_factory=dict)
    game_over_reason: Optional[str] = None
    game_over_forced: bool = False
    message: Optional[str] = None
    players: Dict[str, dict] = field(default_factory=dict)
    settings: dict = field(default_factory=dict)
    host_id: Optional[str] = None
    correct_guesses: List[GuessRecord] = field(default_factory=list)
    canvas: Dict[str, CanvasPath] = field(default_factory=dict)
    canvas_cleared_at: int = 0
    chat: Deque[dict] = field(default_factory=lambda: deque(maxlen=CHAT_HISTORY))
    last_round_result: Optional[dict] = None

    @property
    def is_active(self) -> bool:
        return self.phase not in (Phase.LOBBY, Phase.GAME_OVER)

    @property
    def is_game_over(self) -> bool:
        return self.phase is Phase.GAME_OVER

    @property
    def drawer_id(self) -> Optional[str]:
        if not self.is_active or not self.turn_order:
            return None
        if not 0 <= self.current_turn_index < len(self.turn_order):
            return None
        return self.turn_order[self.current_turn_index]

    @property
    def turn_key(self) -> TurnKey:
        return (self.current_round, self.current_turn_index)

    @property
    def position(self) -> Tuple[int, int, int]:
        return self.turn_key + (PHASE_RANK.get(self.phase, 0),)

    def is_current_turn(self, payload: dict) -> bool:
        return event_turn_key(payload) == self.turn_key

    def transition(self, phase: Phase) -> None:
        if phase not in TRANSITIONS[self.phase]:
            raise IllegalTransition(f'{self.phase.value} -> {phase.value}')
        self.phase = phase

    def start_turn(self, round_number: int, turn_index: int) -> None:
        """Reset everything that belongs to a single turn."""
        self.current_round = round_number
        self.current_turn_index = turn_index
        self.current_word = None
        self.word_options = []
        self.word_length = 0
        self.time_remaining = self.drawing_time
        self.correct_guesses = []
        self.canvas = {}
        self.canvas_cleared_at = 0

    def has_guessed(self, player_id: str) -> bool:
        return any(g.player_id == player_id for g in self.correct_guesses)

    def add_chat(self, message: dict) -> None:
        self.chat.append(message)

    def leaderboard(self) -> List[dict]:
        return sorted(
            ({'playerId': pid, 'score': score} for pid, score in self.scores.items()),
            key=lambda row: row['score'],
            reverse=True,
        )

    def team_map(self) -> Dict[str, str]:
        return {pid: p.get('team') for pid, p in self.players.items() if p.get('team')}


def event_turn_key(payload: dict) -> TurnKey:
    return (int(payload.get('round') or 0), int(payload.get('turnIndex') or 0))
