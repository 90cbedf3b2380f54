"""Periodic consistency check for a participant's mirror.

Lost broadcasts can leave a session wedged: a game-over flag that should
not be there, or a drawer who never got word options. Both are recoverable
from local state alone.
"""
import logging
from typing import Optional

from .state import Phase

logger = logging.getLogger(__name__)

MAX_BEGIN_ATTEMPTS = 3


def _seat_holder(state) -> Optional[str]:
    if not state.turn_order or not 0 <= state.current_turn_index < len(state.turn_order):
        return None
    return state.turn_order[state.current_turn_index]


def stale_game_over(state, local_id: str) -> bool:
    return (
        state.phase is Phase.GAME_OVER
        and not state.game_over_forced
        and _seat_holder(state) == local_id
        and bool(state.word_options)
        and not state.current_word
        and len(state.players) >= 2
    )


def stuck_drawer(state, local_id: str) -> bool:
    return (
        state.phase in (Phase.WORD_SELECTION, Phase.TURN_END, Phase.ROUND_END)
        and _seat_holder(state) == local_id
        and not state.current_word
        and not state.word_options
        and len(state.players) > 1
    )


class Healer:
    def __init__(self, coordinator, max_attempts: int = MAX_BEGIN_ATTEMPTS):
        self.coordinator = coordinator
        self.max_attempts = max_attempts
        self._attempts = {}

    def check(self) -> Optional[str]:
        """Repair the mirror if needed; returns what was repaired, if anything."""
        coordinator = self.coordinator
        state = coordinator.state
        if stale_game_over(state, coordinator.local_id):
            logger.warning('clearing stale game-over in room %s', coordinator.room_id)
            state.transition(Phase.WORD_SELECTION)
            state.winner = state.winner_type = state.message = None
            coordinator._refresh_role()
            return 'stale_game_over'
        if stuck_drawer(state, coordinator.local_id):
            key = state.turn_key
            attempts = self._attempts.get(key, 0)
            if attempts >= self.max_attempts:
                return None
            self._attempts[key] = attempts + 1
            logger.info('drawer has no word options for turn %s, requesting (attempt %s)', key, attempts + 1)
            coordinator._refresh_role()
            if coordinator._exclusive(coordinator.begin_turn):
                return 'stuck_drawer'
        return None
