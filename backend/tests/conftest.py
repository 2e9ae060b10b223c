import os
import random
import sys
import pytest

# Ensure the backend root (containing the `quizroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quizroom import create_app, socketio
from quizroom.models import GameSettings, Question
from quizroom.services.games.store import RoomStore


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    ALLOWED_ORIGINS = ['http://localhost:5173']
    COUNTDOWN_SECONDS = 3
    RESULTS_DURATION_SEC = 3
    QUESTION_TIME_LIMIT_SEC = 20
    MAX_PLAYERS = 50
    ALLOW_LATE_JOIN = False
    SHOW_CORRECT_ANSWER = True
    TIME_DECAY = 'linear'
    QUESTIONS_FILE = None


def make_questions(count=3, time_limit=20, points=1000):
    return [
        Question(
            id=str(i + 1),
            text=f'Question {i + 1}?',
            options=('A', 'B', 'C', 'D'),
            correct_index=i % 4,
            time_limit=time_limit,
            points=points,
        )
        for i in range(count)
    ]


@pytest.fixture()
def questions():
    return make_questions()


@pytest.fixture()
def store():
    return RoomStore(rng=random.Random(1234))


@pytest.fixture()
def room(store, questions):
    return store.create('host-sid', questions, GameSettings())


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def dispatcher(flask_app):
    return flask_app.extensions['quizroom']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    """Factory for Socket.IO test clients on /ws; all are disconnected on teardown."""
    created = []

    def _connect():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        created.append(test_client)
        return test_client

    yield _connect
    for test_client in created:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass
