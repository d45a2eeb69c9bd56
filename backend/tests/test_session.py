import pytest
from sqlalchemy.exc import OperationalError

from conftest import DEFAULT_SETTINGS

from kiadisa import db
from kiadisa.models import Game, User
from kiadisa.services.games import session as game_session
from kiadisa.services.games.errors import NotHost, StorageError
from kiadisa.services.games.phases import next_phase
from kiadisa.services.games.retry import execute_with_retry


@pytest.fixture()
def user_ids(app_ctx):
    users = [User(username=name, password_hash='x') for name in ('alice', 'bob')]
    db.session.add_all(users)
    db.session.commit()
    return [u.id for u in users]


def _codes(monkeypatch, codes):
    drawn = iter(codes)
    calls = []

    def fake(length=6):
        calls.append(length)
        return next(drawn)

    monkeypatch.setattr(game_session, 'generate_game_code', fake)
    return calls


def test_next_phase_table():
    assert next_phase('intro', 1, 3) == ('answer', 1)
    assert next_phase('answer', 1, 3) == ('vote', 1)
    assert next_phase('vote', 1, 3) == ('reveal', 1)
    assert next_phase('reveal', 1, 3) == ('results', 1)
    assert next_phase('results', 1, 3) == ('intro', 2)
    assert next_phase('results', 3, 3) == ('ended', 3)


def test_generated_codes_use_the_join_alphabet():
    for _ in range(50):
        code = game_session.generate_game_code()
        assert len(code) == 6
        assert all(c in 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789' for c in code)


def test_code_collisions_are_retried(user_ids, monkeypatch):
    alice, bob = user_ids
    _codes(monkeypatch, ['AAAAAA'])
    assert game_session.create_game(alice, DEFAULT_SETTINGS).data['game_code'] == 'AAAAAA'

    calls = _codes(monkeypatch, ['AAAAAA'] * 9 + ['BBBBBB'])
    result = game_session.create_game(bob, DEFAULT_SETTINGS)
    assert result.success
    assert result.data['game_code'] == 'BBBBBB'
    assert len(calls) == 10


def test_code_generation_exhausted(user_ids, monkeypatch):
    alice, bob = user_ids
    _codes(monkeypatch, ['AAAAAA'])
    game_session.create_game(alice, DEFAULT_SETTINGS)

    calls = _codes(monkeypatch, ['AAAAAA'] * 10 + ['BBBBBB'])
    result = game_session.create_game(bob, DEFAULT_SETTINGS)
    assert not result.success
    assert result.error_code == 'CodeGenerationExhausted'
    assert len(calls) == 10
    assert Game.query.count() == 1


def test_operations_require_a_user(app_ctx):
    for result in (
        game_session.create_game(None, DEFAULT_SETTINGS),
        game_session.join_game(None, 'ABC123'),
        game_session.submit_answer(None, 1, 'hello'),
        game_session.submit_vote(None, 1, 2, 3, 'guess'),
        game_session.advance_phase(None, 1),
    ):
        assert not result.success
        assert result.error_code == 'NotAuthenticated'


def test_validation_happens_before_storage(user_ids, monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError('storage must not be reached')

    monkeypatch.setattr(game_session, 'execute_with_retry', boom)
    result = game_session.submit_answer(user_ids[0], 1, 'x' * 501)
    assert result.error_code == 'ValidationError'
    result = game_session.submit_vote(user_ids[0], 1, 2, 3, 'nope')
    assert result.error_code == 'ValidationError'


def test_unexpected_errors_become_failure_results(user_ids, monkeypatch):
    def broken():
        raise KeyError('boom')

    monkeypatch.setattr(game_session, 'find_free_game_code', broken)
    result = game_session.create_game(user_ids[0], DEFAULT_SETTINGS)
    assert not result.success
    assert result.error_code == 'StorageError'
    assert result.network_error is True
    assert result.error == StorageError.default_message


def test_result_serialisation():
    ok = game_session.OperationResult.ok(phase='vote')
    assert ok.to_dict() == {'success': True, 'phase': 'vote'}
    failed = game_session.OperationResult.fail(NotHost())
    assert failed.to_dict() == {
        'success': False,
        'error': NotHost.default_message,
        'code': 'NotHost',
        'network_error': False,
    }


def test_retry_recovers_from_transient_storage_errors(app_ctx):
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise OperationalError('SELECT 1', {}, Exception('db down'))
        return 'ok'

    assert execute_with_retry(flaky, max_retries=2, retry_delay=0) == 'ok'
    assert len(attempts) == 3


def test_retry_gives_up_with_storage_error(app_ctx):
    attempts = []

    def down():
        attempts.append(1)
        raise OperationalError('SELECT 1', {}, Exception('db down'))

    with pytest.raises(StorageError):
        execute_with_retry(down, max_retries=1, retry_delay=0)
    assert len(attempts) == 2


def test_game_errors_are_not_retried(app_ctx):
    attempts = []

    def refused():
        attempts.append(1)
        raise NotHost()

    with pytest.raises(NotHost):
        execute_with_retry(refused, max_retries=3, retry_delay=0)
    assert len(attempts) == 1
