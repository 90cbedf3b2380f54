import threading

import pytest
import requests

from sketchturn.client import ClientConfig, GameCoordinator, SessionApiError
from sketchturn.client.transport import HttpSessionApi, SocketIOChannel, run_coordinator


class Unreachable:
    def post(self, url, json=None, timeout=None):
        raise requests.ConnectionError(f'cannot reach {url}')


def test_rejections_raise_with_server_code(api):
    with pytest.raises(SessionApiError) as excinfo:
        api.start_game('room', 'alice', [{'id': 'alice'}])
    assert excinfo.value.code == 'not_enough_players'
    assert excinfo.value.status == 400


def test_bodies_use_wire_names_and_drop_unset_fields(api):
    api.submit_guess('cat', 'cat')
    api.start_round('generate_words', 'room', used_words=['dog'])
    assert api.calls[0] == ('submit-guess', {'guess': 'cat', 'actualWord': 'cat'})
    assert api.calls[1] == ('start-round', {'action': 'generate_words', 'roomId': 'room', 'usedWords': ['dog']})


def test_network_failure_becomes_network_error():
    api = HttpSessionApi(ClientConfig(base_url='http://127.0.0.1:9'), http=Unreachable())
    with pytest.raises(SessionApiError) as excinfo:
        api.create_room('alice')
    assert excinfo.value.code == 'network_error'
    assert excinfo.value.status is None


def test_publish_without_connection_is_dropped_not_raised():
    channel = SocketIOChannel('room', 'alice')
    channel.publish('chat:guess', {'text': 'hello'})


def test_run_coordinator_delivers_queued_events(api):
    config = ClientConfig(tick_interval=60, heal_interval=60)
    channel = SocketIOChannel('room', 'bob', config)
    coordinator = GameCoordinator('room', {'id': 'bob', 'displayName': 'Bob'}, api, channel, config)
    stop = threading.Event()
    seen = []

    def last_listener(event, payload):
        seen.append(event)
        if len(seen) == 2:
            stop.set()

    channel.subscribe(last_listener)
    channel.inbox.put(('player:join', {'player': {'id': 'alice', 'displayName': 'Alice'}}))
    channel.inbox.put(('chat:guess', {'playerId': 'alice', 'playerName': 'Alice', 'text': 'boat'}))

    run_coordinator(coordinator, channel, stop=stop)
    assert seen == ['player:join', 'chat:guess']
    assert coordinator.state.players['alice']['displayName'] == 'Alice'
    assert list(coordinator.state.chat)[-1]['text'] == 'boat'


def test_run_coordinator_ticks_on_interval(api):
    config = ClientConfig(tick_interval=1, heal_interval=1000)
    channel = SocketIOChannel('room', 'bob', config)
    coordinator = GameCoordinator('room', {'id': 'bob'}, api, channel, config)
    now = [0.0]
    stop = threading.Event()
    ticks = []

    def tick():
        ticks.append(now[0])
        if len(ticks) == 3:
            stop.set()

    def clock():
        now[0] += 0.5
        return now[0]

    coordinator.tick = tick
    run_coordinator(coordinator, channel, stop=stop, clock=clock)
    assert len(ticks) == 3
