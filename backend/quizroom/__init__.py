from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = flask_app.config.get('ALLOWED_ORIGINS') or []
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from quizroom.models import GameSettings
    from quizroom.questions import load_questions
    from quizroom.services.games.scheduler import RoomTimers
    from quizroom.services.games.store import RoomStore
    from quizroom.socketio_events import SessionDispatcher, register_socketio_handlers

    # A malformed bank fails here, before any room can be created from it
    questions = load_questions(
        flask_app.config.get('QUESTIONS_FILE'),
        default_time_limit=flask_app.config.get('QUESTION_TIME_LIMIT_SEC', 20),
    )

    testing = flask_app.config.get('TESTING', False)
    timers = RoomTimers(
        socketio,
        logger=flask_app.logger,
        enabled=not testing or flask_app.config.get('ENABLE_SCHEDULER_IN_TESTS', False),
        tick_interval=flask_app.config.get('TIMER_TICK_SEC', 1),
    )
    dispatcher = SessionDispatcher(
        socketio,
        store=flask_app.config.get('ROOM_STORE') or RoomStore(),
        timers=timers,
        questions=questions,
        settings_factory=lambda: GameSettings.from_config(flask_app.config),
        logger=flask_app.logger,
        countdown_seconds=flask_app.config.get('COUNTDOWN_SECONDS', 3),
        results_duration=flask_app.config.get('RESULTS_DURATION_SEC', 3),
    )
    flask_app.extensions['quizroom'] = dispatcher
    register_socketio_handlers(socketio, dispatcher)

    # Import and register blueprints here
    from quizroom.main import main
    flask_app.register_blueprint(main)

    from quizroom.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    @click.command('validate-questions')
    @click.argument('path', required=False)
    def validate_questions_command(path):
        """Loads a question bank and reports whether it is usable."""
        path = path or flask_app.config.get('QUESTIONS_FILE')
        try:
            bank = load_questions(path, default_time_limit=flask_app.config.get('QUESTION_TIME_LIMIT_SEC', 20))
        except (OSError, ValueError) as exc:
            raise click.ClickException(str(exc))
        click.echo(f"{len(bank)} questions OK ({path or 'built-in bank'})")

    flask_app.cli.add_command(validate_questions_command)

    return flask_app
