from sketchturn.client import GameCoordinator, Healer, Phase, Role, SessionApiError
from sketchturn.client.state import SessionState

from conftest import LocalBus


class DownApi:
    """Every word request fails."""

    def __init__(self):
        self.calls = 0

    def start_round(self, action, **kwargs):
        self.calls += 1
        raise SessionApiError('network_error', 'connection refused')


def _seated(api, phase=Phase.WORD_SELECTION):
    bus = LocalBus()
    coordinator = GameCoordinator('room-1', {'id': 'me', 'displayName': 'Me'}, api, bus.channel('me'))
    coordinator.state = SessionState(
        phase=phase,
        current_round=1,
        total_rounds=2,
        turn_order=['me', 'you'],
        current_turn_index=0,
        players={'me': {'id': 'me'}, 'you': {'id': 'you'}},
    )
    return bus, coordinator


def test_clears_stale_game_over(party):
    bus, c = party()
    c['alice'].start_game()
    bus.flush()
    alice = c['alice']
    # A non-forced game over slipped in while alice still holds her options
    alice.handle_event('game:over', {'round': 1, 'turnIndex': 0, 'winner': 'bob', 'winnerType': 'player'})
    assert alice.state.phase is Phase.GAME_OVER

    assert Healer(alice).check() == 'stale_game_over'
    assert alice.state.phase is Phase.WORD_SELECTION
    assert alice.state.winner is None
    assert alice.role is Role.DRAWER
    assert len(alice.state.word_options) == 3


def test_forced_game_over_is_not_healed(party):
    bus, c = party()
    c['alice'].start_game()
    bus.flush()
    alice = c['alice']
    alice.handle_event('game:over', {'forced': True, 'reason': 'insufficient_players'})
    assert Healer(alice).check() is None
    assert alice.state.phase is Phase.GAME_OVER


def test_stuck_drawer_gets_new_options(party):
    bus, c = party()
    c['alice'].start_game()
    bus.flush()
    alice = c['alice']
    # Options lost, e.g. the drawer reloaded mid-selection
    alice.state.word_options = []

    assert Healer(alice).check() == 'stuck_drawer'
    assert len(alice.state.word_options) == 3
    assert alice.state.phase is Phase.WORD_SELECTION
    # Already in word selection, so there is nothing to announce
    bus.flush()
    assert bus.published('game:round') == []


def test_stuck_drawer_after_turn_end_announces_turn(party):
    bus, c = party()
    c['alice'].start_game()
    bus.flush()
    bob = c['bob']
    # bob's copy of the round-end arrived but the begin-turn call failed
    bob.state.transition(Phase.TURN_END)
    bob.state.start_turn(1, 1)
    bob._refresh_role()

    assert Healer(bob).check() == 'stuck_drawer'
    bus.flush()
    [announce] = bus.published('game:round', sender='bob')
    assert (announce['round'], announce['turnIndex']) == (1, 1)
    assert c['cara'].state.turn_key == (1, 1)
    assert c['cara'].state.phase is Phase.WORD_SELECTION


def test_word_requests_are_bounded():
    api = DownApi()
    bus, coordinator = _seated(api)
    healer = Healer(coordinator)
    results = [healer.check() for _ in range(6)]
    assert results == [None] * 6
    assert api.calls == 3


def test_healthy_states_are_left_alone():
    api = DownApi()
    bus, coordinator = _seated(api, phase=Phase.DRAWING)
    coordinator.state.current_word = 'kite'
    assert Healer(coordinator).check() is None

    # A drawer alone in the room waits for players
    bus, coordinator = _seated(api)
    coordinator.state.players.pop('you')
    assert Healer(coordinator).check() is None
    assert api.calls == 0
