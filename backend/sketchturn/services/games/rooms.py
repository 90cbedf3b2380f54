"""Room registry: the only durable state, touched at lobby and round boundaries."""
import time
from typing import Iterable, Optional

from flask import current_app

from sketchturn import db
from sketchturn.models import DEFAULT_SETTINGS, Room
from .errors import SessionError


def _log(message: str) -> None:
    try:
        current_app.logger.info(message)
    except Exception:
        pass


def normalize_player(data: dict, is_creator: bool = False) -> dict:
    return {
        'id': data.get('id'),
        'displayName': data.get('displayName') or 'Anonymous',
        'avatarUrl': data.get('avatarUrl') or '',
        'team': data.get('team') or None,
        'isCreator': is_creator,
        'joinedAt': data.get('joinedAt') or time.time(),
    }


def merge_settings(settings: Optional[dict]) -> dict:
    merged = dict(DEFAULT_SETTINGS)
    for key, value in (settings or {}).items():
        if key in DEFAULT_SETTINGS and value is not None:
            merged[key] = value
    return merged


def get_room(room_id: str) -> Optional[Room]:
    if not room_id:
        return None
    return db.session.get(Room, room_id)


def require_room(room_id: str) -> Room:
    room = get_room(room_id)
    if not room:
        raise SessionError('room_not_found', f'Room {room_id} does not exist', status=404)
    return room


def create_room(host_id: str, settings: Optional[dict] = None, host_data: Optional[dict] = None) -> Room:
    host = normalize_player(dict(host_data or {}, id=host_id), is_creator=True)
    room = Room(
        host_id=host_id,
        max_players=int(current_app.config.get('ROOM_MAX_PLAYERS', 22)),
    )
    room.settings = merge_settings(settings)
    room.players = [host]
    db.session.add(room)
    db.session.commit()
    _log(f"[create-room] room={room.id} host={host_id}")
    return room


def add_player(room: Room, player_data: dict) -> Room:
    players = room.players
    existing = next((p for p in players if p.get('id') == player_data.get('id')), None)
    if existing:
        # Rejoin: refresh profile fields, keep creator flag and join time
        for key in ('displayName', 'avatarUrl', 'team'):
            if player_data.get(key) is not None:
                existing[key] = player_data[key]
    else:
        if room.status != 'waiting':
            raise SessionError('room_not_joinable', 'This room is no longer accepting players', status=409)
        if len(players) >= (room.max_players or 22):
            raise SessionError('room_full', f'Room is full ({room.max_players} players)', status=409)
        players.append(normalize_player(player_data, is_creator=not players))
        if not room.host_id or len(players) == 1:
            room.host_id = player_data.get('id')
    room.players = players
    room.touch()
    db.session.add(room)
    db.session.commit()
    _log(f"[join-room] room={room.id} player={player_data.get('id')} count={len(players)}")
    return room


def remove_player(room: Room, player_id: str) -> bool:
    """Remove a player; returns True when the room was deleted because it emptied."""
    players = [p for p in room.players if p.get('id') != player_id]
    if not players:
        delete_room(room.id)
        return True
    if room.host_id == player_id:
        # Earliest remaining joiner inherits the host role
        heir = min(players, key=lambda p: p.get('joinedAt') or 0)
        room.host_id = heir['id']
        for p in players:
            p['isCreator'] = p['id'] == heir['id']
    room.players = players
    room.touch()
    db.session.add(room)
    db.session.commit()
    _log(f"[leave-room] room={room.id} player={player_id} remaining={len(players)}")
    return False


def delete_room(room_id: str) -> bool:
    room = get_room(room_id)
    if not room:
        return False
    try:
        db.session.delete(room)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    _log(f"[delete-room] room={room_id}")
    return True


def record_session_start(room: Room, turn_order: list, total_rounds: int) -> None:
    room.status = 'playing'
    room.is_active = True
    room.turn_order = turn_order
    room.total_rounds = total_rounds
    room.current_round = 1
    room.current_turn_index = 0
    room.touch()
    db.session.add(room)
    db.session.commit()


def record_turn_boundary(room: Room, current_round: int, turn_index: int) -> None:
    room.current_round = current_round
    room.current_turn_index = turn_index
    room.touch()
    db.session.add(room)
    db.session.commit()


def touch_room(room_id: str) -> None:
    room = get_room(room_id)
    if not room:
        return
    room.touch()
    db.session.add(room)
    db.session.commit()


def sweep_stale_rooms(max_age_sec: Optional[float] = None, now: Optional[float] = None) -> int:
    if max_age_sec is None:
        max_age_sec = float(current_app.config.get('ROOM_STALE_AFTER_SEC', 7200))
    cutoff = (now if now is not None else time.time()) - max_age_sec
    stale = Room.query.filter(Room.last_activity < cutoff).all()
    for room in stale:
        db.session.delete(room)
    if stale:
        db.session.commit()
        _log(f"[sweep] removed {len(stale)} stale rooms")
    return len(stale)


def fatal_reason(room: Room, present_ids: Iterable[str]) -> Optional[str]:
    """Why a room can no longer host its session, or None if it still can."""
    present = set(present_ids)
    players = [p for p in room.players if p.get('id') in present]
    if not players:
        return 'empty'
    if room.status != 'playing':
        return None
    if room.settings.get('isTeamGame'):
        teams = {p.get('team') for p in players if p.get('team')}
        if len(teams) < 2:
            return 'team_eliminated'
        return None
    if len(players) <= 1:
        return 'insufficient_players'
    return None
