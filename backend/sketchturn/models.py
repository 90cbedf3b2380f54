from sketchturn import db
import json
import time
import uuid

DEFAULT_SETTINGS = {
    'rounds': 3,
    'drawingTime': 60,
    'maxWordLength': 15,
    'theme': 'default',
    'isThemedGame': False,
    'isTeamGame': False,
    'teamNames': ['Red', 'Blue'],
}


def generate_room_id():
    return str(uuid.uuid4())


def _loads(raw, fallback):
    try:
        value = json.loads(raw) if raw else fallback
    except Exception:
        value = fallback
    return value


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.String(36), primary_key=True, default=generate_room_id)
    host_id = db.Column(db.String(64), nullable=False)
    players_json = db.Column('players', db.Text, nullable=False, default='[]')
    settings_json = db.Column('settings', db.Text, nullable=False, default='{}')
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    max_players = db.Column(db.Integer, default=22, nullable=False)
    status = db.Column(db.String(16), default='waiting', nullable=False)  # waiting, playing, finished
    # Session metadata, written at round boundaries only
    turn_order_json = db.Column('turn_order', db.Text, nullable=True)
    total_rounds = db.Column(db.Integer, nullable=True)
    current_round = db.Column(db.Integer, nullable=True)
    current_turn_index = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.Float, default=time.time, nullable=False)
    last_activity = db.Column(db.Float, default=time.time, nullable=False, index=True)

    @property
    def players(self):
        return _loads(self.players_json, [])

    @players.setter
    def players(self, value):
        self.players_json = json.dumps(list(value))

    @property
    def settings(self):
        merged = dict(DEFAULT_SETTINGS)
        merged.update(_loads(self.settings_json, {}))
        return merged

    @settings.setter
    def settings(self, value):
        self.settings_json = json.dumps(dict(value or {}))

    @property
    def turn_order(self):
        return _loads(self.turn_order_json, None)

    @turn_order.setter
    def turn_order(self, value):
        self.turn_order_json = json.dumps(list(value)) if value is not None else None

    def touch(self):
        self.last_activity = time.time()

    def find_player(self, player_id):
        for p in self.players:
            if p.get('id') == player_id:
                return p
        return None

    def to_dict(self):
        return {
            'roomId': self.id,
            'hostId': self.host_id,
            'players': self.players,
            'settings': self.settings,
            'isActive': self.is_active,
            'maxPlayers': self.max_players,
            'status': self.status,
            'turnOrder': self.turn_order,
            'totalRounds': self.total_rounds,
            'currentRound': self.current_round,
            'currentTurnIndex': self.current_turn_index,
            'createdAt': self.created_at,
            'lastActivity': self.last_activity,
        }
