from flask import Blueprint, jsonify, request, current_app
from sketchturn.services.games import rooms as room_registry
from sketchturn.services.games.errors import SessionError
from sketchturn.services.games.guess import evaluate_guess
from sketchturn.services.games.rotation import build_turn_order, next_turn, progress, team_buckets
from sketchturn.services.games.scoring import pick_winner, score_round, team_totals
from sketchturn.services.games.wordbank import load_words, pick_options
import time


session = Blueprint('session', __name__)

END_ROUND_REASONS = ('timeout', 'all_guessed', 'manual')
JOIN_ACTIONS = ('join', 'leave', 'get-state')


@session.errorhandler(SessionError)
def handle_session_error(err: SessionError):
    try:
        current_app.logger.info(f"[rejected] {request.path} code={err.code} detail={err.detail}")
    except Exception:
        pass
    return jsonify(err.to_dict()), err.status


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _require(data: dict, *fields) -> None:
    missing = [f for f in fields if data.get(f) in (None, '', [])]
    if missing:
        raise SessionError('missing_fields', f"Missing required fields: {', '.join(missing)}")


def _positive_int(data: dict, field: str) -> int:
    value = data.get(field)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise SessionError('invalid_field', f'{field} must be a positive integer')
    return value


def _string_list(data: dict, field: str, allow_empty: bool = True) -> list:
    value = data.get(field)
    if value is None and allow_empty:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise SessionError('invalid_field', f'{field} must be a list of strings')
    if not value and not allow_empty:
        raise SessionError('invalid_field', f'{field} must not be empty')
    return value


def _word_bank_dir():
    return current_app.config.get('WORDBANK_DIR') or None


def _options_count() -> int:
    return int(current_app.config.get('WORD_OPTIONS_COUNT', 3))


@session.route('/create-room', methods=['POST'])
def create_room():
    data = _payload()
    _require(data, 'hostId')
    settings = data.get('settings')
    if settings is not None and not isinstance(settings, dict):
        raise SessionError('invalid_field', 'settings must be an object')
    host_data = data.get('hostData') if isinstance(data.get('hostData'), dict) else {}

    room_registry.sweep_stale_rooms()
    room = room_registry.create_room(data['hostId'], settings, host_data)
    expires_in = int(current_app.config.get('ROOM_EXPIRES_IN_SEC', 300))
    return jsonify({
        'roomId': room.id,
        'settings': room.settings,
        'createdAt': room.created_at,
        'expiresAt': room.created_at + expires_in,
        'room': room.to_dict(),
    }), 201


@session.route('/join-room', methods=['POST'])
def join_room():
    data = _payload()
    _require(data, 'roomId', 'playerId')
    action = data.get('action') or 'join'
    if action not in JOIN_ACTIONS:
        raise SessionError('invalid_action', f"action must be one of {', '.join(JOIN_ACTIONS)}")

    room = room_registry.get_room(data['roomId'])
    if action == 'leave':
        # Leaving a room that is already gone is not an error
        if not room or room_registry.remove_player(room, data['playerId']):
            return jsonify({'roomDeleted': True})
        return jsonify({'room': room.to_dict()})

    if not room:
        raise SessionError('room_not_found', f"Room {data['roomId']} does not exist", status=404)
    if action == 'get-state':
        return jsonify({'room': room.to_dict()})

    player_data = data.get('playerData') if isinstance(data.get('playerData'), dict) else {}
    player_data = dict(player_data, id=data['playerId'])
    room = room_registry.add_player(room, player_data)
    return jsonify({'room': room.to_dict()})


@session.route('/rooms/<string:room_id>', methods=['GET'])
def get_room(room_id):
    room = room_registry.require_room(room_id)
    return jsonify({'room': room.to_dict()})


@session.route('/start-game', methods=['POST'])
def start_game():
    data = _payload()
    _require(data, 'roomId', 'hostId')
    players = data.get('players') or []
    if not isinstance(players, list) or not all(isinstance(p, dict) and p.get('id') for p in players):
        raise SessionError('invalid_field', 'players must be a list of objects with an id')
    if len({p['id'] for p in players}) < 2:
        raise SessionError('not_enough_players', 'Minimum 2 players required.')
    host_id = data['hostId']
    if host_id not in {p['id'] for p in players}:
        raise SessionError('host_not_in_room', 'The host must be one of the players.')

    settings = room_registry.merge_settings(data.get('settings') if isinstance(data.get('settings'), dict) else None)
    is_team_game = bool(settings.get('isTeamGame'))
    if is_team_game:
        team_names = [t for t in (settings.get('teamNames') or []) if t]
        buckets = team_buckets(players)
        populated = [t for t in buckets if not team_names or t in team_names]
        if len(populated) < 2:
            raise SessionError('incomplete_teams', 'Each team must have at least one player.')

    total_rounds = int(settings.get('rounds') or 1)
    drawing_time = int(settings.get('drawingTime') or current_app.config.get('DEFAULT_DRAWING_TIME_SEC', 60))
    turn_order = build_turn_order(players, is_team_game, host_id)
    words = load_words(settings.get('theme'), _word_bank_dir())
    word_options = pick_options(words, [], _options_count(), settings.get('maxWordLength'))
    drawer_id = turn_order[0]

    game_state = {
        'isActive': True,
        'phase': 'word_selection',
        'currentRound': 1,
        'totalRounds': total_rounds,
        'turnOrder': turn_order,
        'currentTurnIndex': 0,
        'drawerId': drawer_id,
        'currentWord': None,
        'wordOptions': word_options,
        'wordLength': 0,
        'drawingTime': drawing_time,
        'timeRemaining': drawing_time,
        'usedWords': [],
        'scores': {pid: 0 for pid in turn_order},
        'isGameOver': False,
        'winner': None,
    }

    room = room_registry.get_room(data['roomId'])
    if room:
        room_registry.record_session_start(room, turn_order, total_rounds)
    try:
        current_app.logger.info(f"[start-game] room={data['roomId']} players={len(turn_order)} rounds={total_rounds} drawer={drawer_id} persisted={room is not None}")
    except Exception:
        pass

    return jsonify({
        'gameState': game_state,
        'round': 1,
        'nextDrawer': drawer_id,
        'wordOptions': word_options,
        'turnOrder': turn_order,
        'totalRounds': total_rounds,
        'drawingTime': drawing_time,
    })


@session.route('/start-round', methods=['POST'])
def start_round():
    data = _payload()
    _require(data, 'roomId', 'action')
    action = data['action']
    used_words = _string_list(data, 'usedWords')

    if action == 'generate_words':
        words = load_words(data.get('theme'), _word_bank_dir())
        max_length = data.get('maxWordLength')
        if isinstance(max_length, bool) or not isinstance(max_length, int) or max_length < 1:
            max_length = None
        options = pick_options(words, used_words, _options_count(), max_length)
        return jsonify({'wordOptions': options})

    if action != 'start_round':
        raise SessionError('invalid_action', 'action must be generate_words or start_round')

    _require(data, 'drawerId', 'selectedWord')
    selected = data['selectedWord']
    if not isinstance(selected, str) or not selected.strip():
        raise SessionError('invalid_field', 'selectedWord must be a non-empty string')
    selected = selected.strip()
    turn_order = _string_list(data, 'turnOrder')
    turn_index = data.get('turnIndex', 0)
    if isinstance(turn_index, bool) or not isinstance(turn_index, int) or turn_index < 0:
        raise SessionError('invalid_field', 'turnIndex must be a non-negative integer')
    if turn_order:
        if turn_index >= len(turn_order):
            raise SessionError('invalid_field', 'turnIndex is outside turnOrder')
        if turn_order[turn_index] != data['drawerId']:
            raise SessionError('drawer_mismatch', 'Only the current drawer can start this turn.')
    round_number = data.get('roundNumber') or 1
    drawing_time = data.get('drawingTime')
    if isinstance(drawing_time, bool) or not isinstance(drawing_time, int) or drawing_time < 1:
        drawing_time = int(current_app.config.get('DEFAULT_DRAWING_TIME_SEC', 60))

    new_used = list(used_words)
    if selected not in new_used:
        new_used.append(selected)
    room_registry.touch_room(data['roomId'])
    try:
        current_app.logger.info(f"[start-round] room={data['roomId']} round={round_number} index={turn_index} drawer={data['drawerId']}")
    except Exception:
        pass

    return jsonify({
        'selectedWord': selected,
        'wordLength': len(selected),
        'drawingTime': drawing_time,
        'usedWords': new_used,
        'turnIndex': turn_index,
        'turnOrder': turn_order,
        'roundNumber': round_number,
        'drawerId': data['drawerId'],
    })


def _validate_end_round(data: dict) -> None:
    _require(data, 'roomId', 'currentDrawerId', 'word', 'turnOrder', 'reason')
    if not isinstance(data['word'], str) or not data['word'].strip():
        raise SessionError('invalid_field', 'word must be a non-empty string')
    turn_order = _string_list(data, 'turnOrder', allow_empty=False)
    current_round = _positive_int(data, 'currentRound')
    total_rounds = _positive_int(data, 'totalRounds')
    if current_round > total_rounds:
        raise SessionError('invalid_field', 'currentRound cannot exceed totalRounds')
    index = data.get('currentTurnIndex')
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(turn_order):
        raise SessionError('invalid_field', 'currentTurnIndex must index into turnOrder')
    if turn_order[index] != data['currentDrawerId']:
        raise SessionError('drawer_mismatch', 'currentDrawerId is not the drawer for currentTurnIndex')
    if data['reason'] not in END_ROUND_REASONS:
        raise SessionError('invalid_field', f"reason must be one of {', '.join(END_ROUND_REASONS)}")
    entries = data.get('playerScores')
    if entries is None:
        entries = []
    if not isinstance(entries, list) or not all(isinstance(e, dict) and isinstance(e.get('playerId'), str) and e['playerId'] for e in entries):
        raise SessionError('invalid_field', 'playerScores must be a list of objects with a playerId')
    for e in entries:
        score = e.get('score', 0)
        taken = e.get('timeTaken', 0)
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise SessionError('invalid_field', f"score for {e['playerId']} must be a number")
        if taken is not None and (isinstance(taken, bool) or not isinstance(taken, (int, float)) or taken < 0):
            raise SessionError('invalid_field', f"timeTaken for {e['playerId']} must be a non-negative number")


@session.route('/end-round', methods=['POST'])
def end_round():
    data = _payload()
    _validate_end_round(data)
    drawer_id = data['currentDrawerId']
    turn_order = data['turnOrder']
    current_round = data['currentRound']
    total_rounds = data['totalRounds']
    index = data['currentTurnIndex']

    result = score_round(drawer_id, data.get('playerScores') or [])
    advance = next_turn(turn_order, index, current_round, total_rounds)

    room = room_registry.get_room(data['roomId'])
    if room:
        if advance.is_game_over:
            room_registry.delete_room(room.id)
        else:
            room_registry.record_turn_boundary(room, advance.next_round, advance.next_index)
    try:
        current_app.logger.info(
            f"[end-round] room={data['roomId']} round={current_round} index={index} reason={data['reason']} "
            f"correct={len(result['correctGuesses'])} next={advance.next_drawer} over={advance.is_game_over}"
        )
    except Exception:
        pass

    return jsonify({
        'scores': result['scores'],
        'roundScores': result['roundScores'],
        'correctGuesses': result['correctGuesses'],
        'nextDrawer': advance.next_drawer,
        'nextTurnIndex': advance.next_index,
        'nextRound': advance.next_round,
        'isNewRound': advance.is_new_round,
        'isGameOver': advance.is_game_over,
        'reason': data['reason'],
        'gameProgress': progress(turn_order, current_round, index, total_rounds),
    })


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _summary_message(reason: str, winner, winner_type: str) -> str:
    if reason == 'insufficient_players':
        return 'Game ended: not enough players left to continue.'
    if reason == 'team_eliminated':
        return 'Game ended: only one team has players left.'
    if reason == 'host_ended':
        return 'The host ended the game.'
    if winner_type == 'tie':
        return "Game over! It's a tie!"
    if winner_type == 'team':
        return f'Game over! Team {winner} wins!'
    if winner_type == 'player':
        return f'Game over! {winner} wins!'
    return 'Game over!'


@session.route('/end-game', methods=['POST'])
def end_game():
    data = _payload()
    _require(data, 'roomId')
    final_scores = data.get('finalScores') or {}
    if not isinstance(final_scores, dict):
        raise SessionError('invalid_field', 'finalScores must be an object')
    if not all(_is_number(v) for v in final_scores.values()):
        raise SessionError('invalid_field', 'finalScores values must be numbers')
    reason = data.get('reason') or 'completed'

    team_scores = data.get('teamScores')
    teams = data.get('teams')
    if not team_scores and isinstance(teams, dict) and teams:
        team_scores = team_totals(final_scores, teams)
    if team_scores is not None and not isinstance(team_scores, dict):
        raise SessionError('invalid_field', 'teamScores must be an object')
    if team_scores and not all(_is_number(v) for v in team_scores.values()):
        raise SessionError('invalid_field', 'teamScores values must be numbers')

    winner = data.get('winner')
    if winner:
        winner_type = 'team' if team_scores and winner in team_scores else 'player'
    else:
        winner, winner_type = pick_winner(final_scores, team_scores)

    deleted = room_registry.delete_room(data['roomId'])
    try:
        current_app.logger.info(f"[end-game] room={data['roomId']} reason={reason} winner={winner} deleted={deleted}")
    except Exception:
        pass

    return jsonify({
        'winner': winner,
        'winnerType': winner_type,
        'finalScores': final_scores,
        'teamScores': team_scores or {},
        'reason': reason,
        'message': _summary_message(reason, winner, winner_type),
        'endedAt': time.time(),
    })


@session.route('/submit-guess', methods=['POST'])
def submit_guess():
    data = _payload()
    _require(data, 'guess', 'actualWord')
    if not isinstance(data['guess'], str) or not isinstance(data['actualWord'], str):
        raise SessionError('invalid_field', 'guess and actualWord must be strings')
    return jsonify(evaluate_guess(data['guess'], data['actualWord']).to_dict())
