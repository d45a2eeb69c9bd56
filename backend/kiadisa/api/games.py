from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from kiadisa import socketio
from kiadisa.services.games import session as game_session
from kiadisa.services.games.session import OperationResult


games = Blueprint('games', __name__)

_STATUS_BY_CODE = {
    'ValidationError': 400,
    'InvalidTransition': 400,
    'NotAuthenticated': 401,
    'NotHost': 403,
    'NotAPlayer': 403,
    'NotFound': 404,
    'PhaseConflict': 409,
    'NoQuestionsAvailable': 409,
    'ScoringError': 500,
    'CodeGenerationExhausted': 503,
    'StorageError': 503,
}


def failure_response(result: OperationResult):
    return jsonify(result.to_dict()), _STATUS_BY_CODE.get(result.error_code, 400)


def _respond(result: OperationResult, success_status: int = 200):
    if not result.success:
        return failure_response(result)
    game_code = result.data.get('game_code')
    if game_code:
        # Realtime notification: clients in the room refetch state
        socketio.emit('state_update', {
            'game_code': game_code,
            'phase': result.data.get('phase'),
            'current_round': result.data.get('current_round'),
        }, to=f"game:{game_code}", namespace='/ws')
    return jsonify(result.to_dict()), success_status


@games.route('/create', methods=['POST'])
@login_required
def create_game():
    """Creates a new lobby hosted by the current user."""
    settings = request.get_json(silent=True) or {}
    result = game_session.create_game(current_user.id, settings)
    return _respond(result, 201)


@games.route('/join', methods=['POST'])
@login_required
def join_game():
    data = request.get_json(silent=True) or {}
    result = game_session.join_game(current_user.id, data.get('game_code'))
    return _respond(result)


@games.route('/<string:game_code>/leave', methods=['POST'])
@login_required
def leave_game(game_code):
    result = game_session.leave_game(current_user.id, game_code)
    return _respond(result)


@games.route('/<string:game_code>/state', methods=['GET'])
def get_game_state(game_code):
    result = game_session.get_game_state(game_code)
    if not result.success:
        return failure_response(result)
    return jsonify(result.to_dict())


@games.route('/<int:game_id>/advance', methods=['POST'])
@login_required
def advance_phase(game_id):
    """Moves the game to its next phase. Host only."""
    data = request.get_json(silent=True) or {}
    result = game_session.advance_phase(current_user.id, game_id, data.get('expected_phase'))
    return _respond(result)


@games.route('/<int:game_id>/rounds', methods=['POST'])
@login_required
def create_round(game_id):
    data = request.get_json(silent=True) or {}
    result = game_session.create_round(current_user.id, game_id, data.get('round_number'), data.get('mini_game'))
    return _respond(result, 201)


@games.route('/rounds/<int:round_id>/complete', methods=['POST'])
@login_required
def complete_round(round_id):
    data = request.get_json(silent=True) or {}
    result = game_session.complete_round(current_user.id, round_id, data.get('mini_game'))
    return _respond(result)


@games.route('/rounds/<int:round_id>/answers', methods=['POST'])
@login_required
def submit_answer(round_id):
    data = request.get_json(silent=True) or {}
    result = game_session.submit_answer(current_user.id, round_id, data.get('content'),
                                        data.get('is_bluff') is True)
    return _respond(result, 201)


@games.route('/rounds/<int:round_id>/votes', methods=['POST'])
@login_required
def submit_vote(round_id):
    data = request.get_json(silent=True) or {}
    result = game_session.submit_vote(
        current_user.id,
        round_id,
        data.get('target_player_id'),
        data.get('answer_id'),
        data.get('vote_type'),
    )
    return _respond(result)
