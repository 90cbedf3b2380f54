import time

from sketchturn import db
from sketchturn.models import Room
from sketchturn.services.games import rooms as room_registry


def test_create_room_adds_host_as_creator(flask_app):
    room = room_registry.create_room('host', {'rounds': 2}, {'displayName': 'Hosty'})
    assert room.host_id == 'host'
    assert room.settings['rounds'] == 2
    assert room.settings['drawingTime'] == 60
    [player] = room.players
    assert player['id'] == 'host'
    assert player['isCreator'] is True
    assert player['displayName'] == 'Hosty'


def test_rejoin_is_idempotent(flask_app):
    room = room_registry.create_room('host')
    room_registry.add_player(room, {'id': 'p2', 'displayName': 'Two'})
    room_registry.add_player(room, {'id': 'p2', 'displayName': 'Renamed'})
    assert [p['id'] for p in room.players] == ['host', 'p2']
    assert room.find_player('p2')['displayName'] == 'Renamed'


def test_host_leaving_passes_host_to_earliest_joiner(flask_app):
    room = room_registry.create_room('host')
    room_registry.add_player(room, {'id': 'early', 'joinedAt': 100.0})
    room_registry.add_player(room, {'id': 'late', 'joinedAt': 200.0})
    assert room_registry.remove_player(room, 'host') is False
    room = room_registry.get_room(room.id)
    assert room.host_id == 'early'
    assert room.find_player('early')['isCreator'] is True
    assert room.find_player('late')['isCreator'] is False


def test_last_player_leaving_deletes_room(flask_app):
    room = room_registry.create_room('host')
    room_id = room.id
    assert room_registry.remove_player(room, 'host') is True
    assert Room.query.filter_by(id=room_id).count() == 0


def test_sweep_removes_only_stale_rooms(flask_app):
    fresh = room_registry.create_room('a')
    stale = room_registry.create_room('b')
    stale_id = stale.id
    stale.last_activity = time.time() - 3 * 60 * 60
    db.session.commit()

    assert room_registry.sweep_stale_rooms() == 1
    assert Room.query.filter_by(id=stale_id).count() == 0
    assert room_registry.get_room(fresh.id) is not None


def test_fatal_reason(flask_app):
    room = room_registry.create_room('a', {'isTeamGame': False})
    room_registry.add_player(room, {'id': 'b'})
    room_registry.add_player(room, {'id': 'c'})
    assert room_registry.fatal_reason(room, []) == 'empty'
    # Lobbies are only ended when nobody is left
    assert room_registry.fatal_reason(room, ['a']) is None

    room_registry.record_session_start(room, ['a', 'b', 'c'], 1)
    assert room_registry.fatal_reason(room, ['a', 'b']) is None
    assert room_registry.fatal_reason(room, ['a']) == 'insufficient_players'


def test_fatal_reason_team_mode(flask_app):
    room = room_registry.create_room('a', {'isTeamGame': True}, {'team': 'Red'})
    room_registry.add_player(room, {'id': 'b', 'team': 'Red'})
    room_registry.add_player(room, {'id': 'c', 'team': 'Blue'})
    room_registry.record_session_start(room, ['a', 'c', 'b'], 1)
    assert room_registry.fatal_reason(room, ['a', 'c']) is None
    assert room_registry.fatal_reason(room, ['a', 'b']) == 'team_eliminated'
