import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///sketchturn.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',') if o.strip()]
    # Word options offered to a drawer per turn
    WORD_OPTIONS_COUNT = int(os.environ.get('WORD_OPTIONS_COUNT', '3'))
    # Used when a room's settings omit drawingTime (seconds)
    DEFAULT_DRAWING_TIME_SEC = int(os.environ.get('DEFAULT_DRAWING_TIME_SEC', '60'))
    ROOM_MAX_PLAYERS = int(os.environ.get('ROOM_MAX_PLAYERS', '22'))
    # Rooms idle longer than this are removed by the sweep (seconds)
    ROOM_STALE_AFTER_SEC = int(os.environ.get('ROOM_STALE_AFTER_SEC', str(2 * 60 * 60)))
    # Advertised lobby expiry returned by create-room (seconds)
    ROOM_EXPIRES_IN_SEC = int(os.environ.get('ROOM_EXPIRES_IN_SEC', '300'))
    # Grace delay before a room with too few players is force-ended
    FORCED_END_GRACE_SEC = float(os.environ.get('FORCED_END_GRACE_SEC', '2'))
    # Directory holding <theme>.json word lists. Empty means the packaged lists.
    WORDBANK_DIR = os.environ.get('WORDBANK_DIR', '')
