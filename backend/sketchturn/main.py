from flask import Blueprint, jsonify
from .models import db, Room

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the sketchturn session server!'})

@main.route('/api/health')
def health():
    try:
        rooms = db.session.query(Room).count()
        return jsonify({'status': 'ok', 'rooms': rooms})
    except Exception:
        db.session.rollback()
        return jsonify({'status': 'degraded'}), 503
