import os
import sys
import pytest

# Ensure the backend root (containing the `kiadisa` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from kiadisa import create_app, db, socketio, seed_questions


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    CODE_LENGTH = 6
    CODE_MAX_ATTEMPTS = 10
    MIN_ROUNDS = 3
    MAX_ROUNDS = 15
    ANSWER_MAX_LENGTH = 500
    XP_PER_POINT = 25
    COINS_PER_POINT = 10
    RETRY_MAX_RETRIES = 2
    RETRY_DELAY_SEC = 0


DEFAULT_SETTINGS = {
    'mode': 'classique',
    'ambiance': 'safe',
    'miniGames': ['kikadi'],
    'totalRounds': 3,
    'twoPlayersOnly': False,
}


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import kiadisa.models  # noqa: F401
        db.create_all()
        seed_questions()
    # Requests made by test clients push their own context, so each one
    # resolves its logged-in user afresh
    yield application
    with application.app_context():
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """An open app context for tests that call services directly."""
    with flask_app.app_context():
        yield flask_app


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def _register(flask_app, username):
    c = flask_app.test_client()
    res = c.post('/register', json={'username': username, 'password': 'password'})
    assert res.status_code == 201
    c.user_id = res.get_json()['user']['id']
    return c


@pytest.fixture()
def make_user(flask_app):
    """Returns a factory of logged-in test clients, each a distinct user."""
    def _make(username):
        return _register(flask_app, username)
    return _make


@pytest.fixture()
def host(make_user):
    return make_user('alice')


@pytest.fixture()
def lobby(host, make_user):
    """A waiting game hosted by alice and joined by bob and cara."""
    res = host.post('/api/games/create', json=DEFAULT_SETTINGS)
    assert res.status_code == 201
    created = res.get_json()
    guests = []
    for name in ('bob', 'cara'):
        guest = make_user(name)
        assert guest.post('/api/games/join', json={'game_code': created['game_code']}).status_code == 200
        guests.append(guest)
    return {'code': created['game_code'], 'id': created['game_id'], 'host': host, 'guests': guests}


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
