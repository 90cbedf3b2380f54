"""Per-turn duties of a participant.

Whoever sits at turn_order[current_turn_index] is the drawer and, for that
turn only, the single writer for the timer and the score ledger. Every
participant derives this from the shared turn order, so no election is needed.
"""
import logging
from enum import Enum

from sketchturn.services.games.scoring import (
    GUESSER_MAX_POINTS,
    SCORING_WINDOW_SEC,
    drawer_points,
    guesser_points,
)
from .errors import SessionApiError
from .state import GuessRecord, Phase

logger = logging.getLogger(__name__)


class Role(str, Enum):
    DRAWER = 'drawer'
    GUESSER = 'guesser'


def role_for(state, local_id: str) -> Role:
    if state.is_active and state.drawer_id == local_id:
        return Role.DRAWER
    return Role.GUESSER


class GuesserRole:
    role = Role.GUESSER

    def __init__(self, coordinator):
        self.coordinator = coordinator

    def on_tick(self):
        pass

    def on_guess_event(self, record):
        pass

    def on_partial_scores(self, payload):
        pass

    def on_roster_change(self):
        pass

    def on_turn_complete(self, reason):
        pass


class DrawerRole(GuesserRole):
    role = Role.DRAWER

    def __init__(self, coordinator):
        super().__init__(coordinator)
        self._completing = None

    @property
    def state(self):
        return self.coordinator.state

    def _eligible_guessers(self) -> int:
        return max(0, len(self.state.players) - 1)

    def _present_guesses(self) -> int:
        # Guessers who left mid-turn no longer count towards the drawer's share
        return sum(1 for g in self.state.correct_guesses if g.player_id in self.state.players)

    def _all_guessed(self) -> bool:
        eligible = self._eligible_guessers()
        return eligible > 0 and self._present_guesses() >= eligible

    def _ledger(self, include_drawer: bool = False) -> dict:
        state = self.state
        ledger = dict(state.scores)
        for pid, base in state.turn_baseline.items():
            ledger.setdefault(pid, base)
        for record in state.correct_guesses:
            ledger[record.player_id] = state.turn_baseline.get(record.player_id, 0) + record.points
        if include_drawer:
            drawer = self.coordinator.local_id
            ledger[drawer] = state.turn_baseline.get(drawer, 0) + drawer_points(
                self._present_guesses(), len(state.players))
        return ledger

    def _publish_scores(self, scores, final=False):
        self.coordinator.publish('scores:update', dict(
            self.coordinator.turn_fields(),
            scores=scores,
            authoritative=True,
            final=final,
            origin=self.coordinator.local_id,
        ))

    def on_tick(self):
        state = self.state
        if state.phase is not Phase.DRAWING:
            return
        if state.time_remaining > 0:
            state.time_remaining -= 1
            self.coordinator.publish('timer:update', dict(
                self.coordinator.turn_fields(), timeRemaining=state.time_remaining))
        if self._all_guessed():
            self.on_turn_complete('all_guessed')
        elif state.time_remaining <= 0:
            self.on_turn_complete('timeout')

    def on_guess_event(self, record):
        if self.state.phase is not Phase.DRAWING:
            return
        self._publish_scores(self._ledger())
        if self._all_guessed():
            self.on_turn_complete('all_guessed')

    def on_partial_scores(self, payload):
        # Optimistic totals from guessers; per-key max keeps this idempotent
        state = self.state
        changed = False
        for pid, value in (payload.get('scores') or {}).items():
            if not isinstance(value, (int, float)) or pid == self.coordinator.local_id:
                continue
            if value > state.scores.get(pid, 0):
                state.scores[pid] = int(value)
                changed = True
            if value > state.turn_baseline.get(pid, 0) and self._recover_guess(pid, value, payload):
                changed = True
        if changed:
            self._publish_scores(self._ledger())
        if state.phase is Phase.DRAWING and self._all_guessed():
            self.on_turn_complete('all_guessed')

    def _recover_guess(self, player_id, total, payload):
        """Record a correct guess whose chat:correct never reached us."""
        state = self.state
        if state.phase is not Phase.DRAWING or not state.is_current_turn(payload):
            return False
        if player_id not in state.players or state.has_guessed(player_id):
            return False
        time_taken = payload.get('timeTaken') if payload.get('origin') == player_id else None
        if not isinstance(time_taken, (int, float)) or isinstance(time_taken, bool):
            # Invert the guesser's points back onto the scoring window
            gained = min(GUESSER_MAX_POINTS, int(total) - state.turn_baseline.get(player_id, 0))
            time_taken = SCORING_WINDOW_SEC * (GUESSER_MAX_POINTS - gained) / GUESSER_MAX_POINTS
        time_taken = max(0.0, float(time_taken))
        state.correct_guesses.append(GuessRecord(
            player_id=player_id,
            player_name=self.coordinator.player_name(player_id),
            time_taken=time_taken,
            points=guesser_points(time_taken),
            timestamp=int(payload.get('timestamp') or 0),
        ))
        logger.info('recovered correct guess by %s for turn %s from partial scores', player_id, state.turn_key)
        return True

    def on_roster_change(self):
        if self.state.phase is Phase.DRAWING and self._all_guessed():
            self.on_turn_complete('all_guessed')

    def on_turn_complete(self, reason):
        state = self.state
        key = state.turn_key
        if state.phase is not Phase.DRAWING or self._completing == key:
            return
        self._completing = key
        if reason == 'all_guessed':
            self._publish_scores(self._ledger(include_drawer=True), final=True)
        try:
            result = self.coordinator.api.end_round(
                room_id=self.coordinator.room_id,
                current_drawer_id=self.coordinator.local_id,
                word=state.current_word,
                player_scores=self.coordinator.player_scores(),
                current_round=state.current_round,
                total_rounds=state.total_rounds,
                turn_order=list(state.turn_order),
                current_turn_index=state.current_turn_index,
                reason=reason,
            )
        except SessionApiError as exc:
            # Retried on the next tick while the turn is still ours
            self._completing = None
            logger.warning('end-round failed for room %s turn %s: %s', self.coordinator.room_id, key, exc)
            return
        logger.info('turn %s ended (%s), next drawer %s', key, reason, result.get('nextDrawer'))
        self.coordinator.publish('game:round-end', dict(
            result, round=key[0], turnIndex=key[1]))
        if result.get('isGameOver'):
            self.coordinator.finish_game(result.get('scores') or {}, ended_turn=key)
