from flask_socketio import join_room, leave_room, emit
from sketchturn import socketio
from flask import current_app, request
from sketchturn.services.games import rooms as room_registry
from typing import Dict, Any
import time

# Per-room topics the relay will fan out. Delivery is at-most-once and
# unordered; clients must treat every event as an idempotent overwrite.
TOPICS = frozenset({
    'player:join',
    'player:leave',
    'game:start',
    'game:round',
    'word:selected',
    'canvas:update',
    'canvas:clear',
    'chat:guess',
    'chat:correct',
    'chat:close',
    'timer:update',
    'game:round-end',
    'game:over',
    'scores:update',
})

FORCED_END_MESSAGES = {
    'insufficient_players': 'Game ended: not enough players left to continue.',
    'team_eliminated': 'Game ended: only one team has players left.',
}

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}
_presence: Dict[str, Dict[str, str]] = {}  # room_id -> sid -> player_id
_end_deadline: Dict[str, float] = {}
_namespaces = ['/ws']


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def _channel(room_id: str) -> str:
    return f"room:{room_id}"


def present_players(room_id: str) -> set:
    return set(_presence.get(room_id, {}).values())


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*_args):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    room_id = ctx['room_id']
    _presence.get(room_id, {}).pop(_get_sid(), None)
    _schedule_room_check(current_app._get_current_object(), room_id)


def handle_join_room(data):
    room_id = (data or {}).get('roomId')
    player_id = (data or {}).get('playerId')
    if not room_id or not player_id:
        emit('error', {'message': 'roomId and playerId are required'})
        return
    join_room(_channel(room_id))
    _sid_to_ctx[_get_sid()] = {'room_id': room_id, 'player_id': player_id}
    _presence.setdefault(room_id, {})[_get_sid()] = player_id
    # A reconnect inside the grace window keeps the session alive
    _end_deadline.pop(room_id, None)
    emit('joined', {'room': _channel(room_id), 'roomId': room_id})


def handle_leave_room(data):
    room_id = (data or {}).get('roomId')
    if not room_id:
        emit('error', {'message': 'roomId is required'})
        return
    leave_room(_channel(room_id))
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    _presence.get(room_id, {}).pop(_get_sid(), None)
    emit('left', {'room': _channel(room_id)})
    if ctx and ctx.get('room_id') == room_id:
        _schedule_room_check(current_app._get_current_object(), room_id)


def handle_publish(data):
    data = data or {}
    room_id = data.get('roomId')
    event = data.get('event')
    ctx = _sid_to_ctx.get(_get_sid())
    if event not in TOPICS:
        emit('error', {'message': f'unknown topic: {event}'})
        return {'ok': False, 'error': 'unknown_topic'}
    if not ctx or ctx.get('room_id') != room_id:
        emit('error', {'message': 'join the room before publishing'})
        return {'ok': False, 'error': 'not_in_room'}
    # Sender applies its own events locally, so it is excluded here
    emit(event, data.get('payload') or {}, to=_channel(room_id), include_self=False)
    return {'ok': True}


def handle_ping(data):
    emit('pong', data or {})


def _check_room(app, room_id: str) -> None:
    with app.app_context():
        room = room_registry.get_room(room_id)
        if not room:
            return
        reason = room_registry.fatal_reason(room, present_players(room_id))
        if not reason:
            return
        was_playing = room.status == 'playing'
        room_registry.delete_room(room_id)
        _presence.pop(room_id, None)
        try:
            app.logger.info(f"[forced-end] room={room_id} reason={reason} was_playing={was_playing}")
        except Exception:
            pass
        if was_playing and reason != 'empty':
            payload = {
                'reason': reason,
                'message': FORCED_END_MESSAGES.get(reason, 'Game ended.'),
                'winner': None,
                'winnerType': 'none',
                'finalScores': None,
                'forced': True,
            }
            for namespace in _namespaces:
                socketio.emit('game:over', payload, to=_channel(room_id), namespace=namespace)


def _schedule_room_check(app, room_id: str) -> None:
    """Check for a room-fatal condition after the grace delay.

    A join for the same room during the delay cancels the pending check.
    """
    try:
        delay = float(app.config.get('FORCED_END_GRACE_SEC', 2))
    except Exception:
        delay = 2.0
    if delay <= 0:
        _check_room(app, room_id)
        return
    deadline = time.time() + delay
    _end_deadline[room_id] = deadline

    def _runner(code: str, expected: float):
        socketio.sleep(max(0.0, expected - time.time()))
        if _end_deadline.get(code) != expected:
            return
        _end_deadline.pop(code, None)
        _check_room(app, code)

    socketio.start_background_task(_runner, room_id, deadline)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    _namespaces[:] = ['/ws', '/'] if testing else ['/ws']
    for namespace in _namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_room', handle_join_room, namespace=namespace)
        socketio.on_event('leave_room', handle_leave_room, namespace=namespace)
        socketio.on_event('publish', handle_publish, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
