from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from sketchturn.main import main
    flask_app.register_blueprint(main)

    from sketchturn.api.session import session
    # RPC-style session handlers, one POST route per operation
    flask_app.register_blueprint(session, url_prefix='/api/session')

    from sketchturn.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database."""
        import sketchturn.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('rooms-sweep')
    @click.option('--max-age', type=float, default=None, help='Idle seconds before a room is removed.')
    def rooms_sweep_command(max_age):
        """Deletes rooms with no activity in the configured window."""
        from sketchturn.services.games.rooms import sweep_stale_rooms
        with flask_app.app_context():
            removed = sweep_stale_rooms(max_age)
            print(f'Removed {removed} stale rooms.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(rooms_sweep_command)

    return flask_app
