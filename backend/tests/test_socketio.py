from sketchturn import socketio
from sketchturn.models import Room


def _events(test_client, name):
    return [e['args'][0] if e['args'] else None
            for e in test_client.get_received('/ws') if e['name'] == name]


def _connect(flask_app, room_id, player_id):
    test_client = socketio.test_client(flask_app, namespace='/ws')
    test_client.emit('join_room', {'roomId': room_id, 'playerId': player_id}, namespace='/ws')
    return test_client


def test_socket_connect_and_join(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    sio_client.emit('join_room', {'roomId': 'r1', 'playerId': 'alice'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] in ('connected', 'joined') for pkt in received)
    joined = [pkt for pkt in received if pkt['name'] == 'joined']
    assert joined[0]['args'][0]['roomId'] == 'r1'


def test_join_requires_ids(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_room', {'roomId': 'r1'}, namespace='/ws')
    assert _events(sio_client, 'error')


def test_publish_relays_to_others_only(flask_app, sio_client):
    sio_client.emit('join_room', {'roomId': 'r2', 'playerId': 'bob'}, namespace='/ws')
    sender = _connect(flask_app, 'r2', 'alice')
    outsider = _connect(flask_app, 'other-room', 'zed')
    for c in (sio_client, sender, outsider):
        c.get_received('/ws')

    payload = {'round': 1, 'turnIndex': 0, 'timeRemaining': 42}
    ack = sender.emit('publish', {'roomId': 'r2', 'event': 'timer:update', 'payload': payload},
                      namespace='/ws', callback=True)
    assert ack == {'ok': True}
    assert _events(sio_client, 'timer:update') == [payload]
    # The sender applies its own events locally
    assert _events(sender, 'timer:update') == []
    assert _events(outsider, 'timer:update') == []

    sender.disconnect(namespace='/ws')
    outsider.disconnect(namespace='/ws')


def test_publish_rejects_unknown_topic(flask_app, sio_client):
    sio_client.emit('join_room', {'roomId': 'r3', 'playerId': 'bob'}, namespace='/ws')
    sio_client.get_received('/ws')
    ack = sio_client.emit('publish', {'roomId': 'r3', 'event': 'game:explode', 'payload': {}},
                          namespace='/ws', callback=True)
    assert ack['ok'] is False
    assert ack['error'] == 'unknown_topic'
    assert _events(sio_client, 'error')


def test_publish_requires_membership(sio_client):
    sio_client.get_received('/ws')
    ack = sio_client.emit('publish', {'roomId': 'r4', 'event': 'chat:guess', 'payload': {}},
                          namespace='/ws', callback=True)
    assert ack == {'ok': False, 'error': 'not_in_room'}


def test_disconnect_leaves_one_player_forces_game_over(flask_app, client, sio_client):
    room_id = client.post('/api/session/create-room', json={'hostId': 'alice'}).get_json()['roomId']
    client.post('/api/session/join-room', json={'roomId': room_id, 'playerId': 'bob'})
    client.post('/api/session/start-game', json={
        'roomId': room_id, 'hostId': 'alice', 'players': [{'id': 'alice'}, {'id': 'bob'}],
    })

    host = _connect(flask_app, room_id, 'alice')
    sio_client.emit('join_room', {'roomId': room_id, 'playerId': 'bob'}, namespace='/ws')
    sio_client.get_received('/ws')

    host.disconnect(namespace='/ws')
    [over] = _events(sio_client, 'game:over')
    assert over['forced'] is True
    assert over['reason'] == 'insufficient_players'
    assert over['winner'] is None
    assert Room.query.filter_by(id=room_id).count() == 0


def test_team_elimination_forces_game_over(flask_app, client, sio_client):
    room_id = client.post('/api/session/create-room', json={
        'hostId': 'a', 'hostData': {'team': 'Red'}, 'settings': {'isTeamGame': True},
    }).get_json()['roomId']
    client.post('/api/session/join-room', json={'roomId': room_id, 'playerId': 'b', 'playerData': {'team': 'Red'}})
    client.post('/api/session/join-room', json={'roomId': room_id, 'playerId': 'c', 'playerData': {'team': 'Blue'}})
    client.post('/api/session/start-game', json={
        'roomId': room_id, 'hostId': 'a', 'settings': {'isTeamGame': True},
        'players': [{'id': 'a', 'team': 'Red'}, {'id': 'b', 'team': 'Red'}, {'id': 'c', 'team': 'Blue'}],
    })

    blue = _connect(flask_app, room_id, 'c')
    other_red = _connect(flask_app, room_id, 'b')
    sio_client.emit('join_room', {'roomId': room_id, 'playerId': 'a'}, namespace='/ws')
    sio_client.get_received('/ws')

    # One Red player leaving is fine
    other_red.disconnect(namespace='/ws')
    assert _events(sio_client, 'game:over') == []

    blue.disconnect(namespace='/ws')
    [over] = _events(sio_client, 'game:over')
    assert over['reason'] == 'team_eliminated'
    assert over['forced'] is True


def test_lobby_disconnect_does_not_broadcast_game_over(flask_app, client, sio_client):
    room_id = client.post('/api/session/create-room', json={'hostId': 'alice'}).get_json()['roomId']
    client.post('/api/session/join-room', json={'roomId': room_id, 'playerId': 'bob'})
    guest = _connect(flask_app, room_id, 'bob')
    sio_client.emit('join_room', {'roomId': room_id, 'playerId': 'alice'}, namespace='/ws')
    sio_client.get_received('/ws')

    guest.disconnect(namespace='/ws')
    assert _events(sio_client, 'game:over') == []
    assert Room.query.filter_by(id=room_id).count() == 1


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    assert _events(sio_client, 'pong') == [{'n': 1}]
