"""Game session facade.

Every public function here is an entry point for the transport layer
(HTTP routes, socket handlers). They take the acting user id as given by
the auth provider and always return an OperationResult; no exception
escapes to the caller.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from kiadisa import db
from kiadisa.models import Answer, Game, GamePlayer, Round, Vote
from . import rounds as round_lifecycle
from .errors import (
    CodeGenerationExhausted,
    GameError,
    NotAPlayer,
    NotAuthenticated,
    NotFound,
    StorageError,
    ValidationError,
)
from .phases import apply_transition, ensure_host, load_game
from .retry import execute_with_retry
from .validation import (
    GAME_CODE_ALPHABET,
    VALID_MINI_GAMES,
    check_answer_content,
    check_game_code,
    check_game_settings,
    check_vote,
)

# Phases during which answer authors stay hidden from other players
_HIDDEN_AUTHOR_PHASES = ('intro', 'answer', 'vote')


@dataclass
class OperationResult:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    network_error: bool = False

    @classmethod
    def ok(cls, **data) -> 'OperationResult':
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: GameError) -> 'OperationResult':
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.code,
            network_error=isinstance(exc, StorageError),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'success': self.success}
        payload.update(self.data)
        if not self.success:
            payload['error'] = self.error
            payload['code'] = self.error_code
            payload['network_error'] = self.network_error
        return payload


def _run(action: str, operation: Callable[[], Dict[str, Any]], context: Dict[str, Any]) -> OperationResult:
    """Execute ``operation`` through the retry policy and wrap the outcome."""
    current_app.logger.info(f"[{action}] start {context}")
    try:
        data = execute_with_retry(operation)
    except GameError as exc:
        current_app.logger.info(f"[{action}] failed {exc.code}: {exc.message} {context}")
        return OperationResult.fail(exc)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception(f"[{action}] unexpected error {context}")
        return OperationResult.fail(StorageError())
    current_app.logger.info(f"[{action}] ok {context}")
    return OperationResult.ok(**data)


def _require_user(user_id) -> None:
    if user_id is None:
        raise NotAuthenticated()


def _player_in_game(game_id: int, user_id: int) -> GamePlayer:
    player = GamePlayer.query.filter_by(game_id=game_id, user_id=user_id).first()
    if player is None:
        raise NotAPlayer()
    return player


def _open_round(round_id) -> Round:
    rnd = db.session.get(Round, round_id) if round_id is not None else None
    if rnd is None:
        raise NotFound("Manche introuvable")
    if rnd.status != 'playing':
        raise ValidationError("Cette manche est déjà terminée")
    return rnd


def generate_game_code(length: int = 6) -> str:
    return ''.join(random.choices(GAME_CODE_ALPHABET, k=length))


def find_free_game_code() -> str:
    """Draw codes until one is unused, giving up after CODE_MAX_ATTEMPTS draws."""
    length = int(current_app.config.get('CODE_LENGTH', 6))
    max_attempts = int(current_app.config.get('CODE_MAX_ATTEMPTS', 10))
    for attempt in range(max_attempts):
        code = generate_game_code(length)
        if not Game.query.filter_by(code=code).first():
            return code
        current_app.logger.info(f"[create_game] code collision attempt={attempt + 1} code={code}")
    raise CodeGenerationExhausted()


def create_game(user_id, settings) -> OperationResult:
    try:
        _require_user(user_id)
        check_game_settings(settings)
    except GameError as exc:
        return OperationResult.fail(exc)

    def _create():
        code = find_free_game_code()
        game = Game(
            code=code,
            host=user_id,
            settings=dict(settings),
            status='waiting',
            phase='intro',
            current_round=1,
            total_rounds=settings['totalRounds'],
        )
        db.session.add(game)
        db.session.flush()
        db.session.add(GamePlayer(game_id=game.id, user_id=user_id, is_host=True,
                                  score=0, coins=0, xp=0))
        db.session.commit()
        return {'game_code': game.code, 'game_id': game.id}

    return _run('create_game', _create, {'user': user_id})


def join_game(user_id, code) -> OperationResult:
    code = code.strip().upper() if isinstance(code, str) else code
    try:
        _require_user(user_id)
        check_game_code(code)
    except GameError as exc:
        return OperationResult.fail(exc)

    def _join():
        game = Game.query.filter_by(code=code, status='waiting').first()
        if not game:
            raise NotFound()
        existing = GamePlayer.query.filter_by(game_id=game.id, user_id=user_id).first()
        if existing:
            return {'game_id': game.id, 'game_code': game.code, 'already_joined': True}
        db.session.add(GamePlayer(game_id=game.id, user_id=user_id, is_host=False,
                                  score=0, coins=0, xp=0))
        try:
            db.session.commit()
        except IntegrityError:
            # Same user joined concurrently; the row exists now
            db.session.rollback()
            return {'game_id': game.id, 'game_code': game.code, 'already_joined': True}
        return {'game_id': game.id, 'game_code': game.code, 'already_joined': False}

    return _run('join_game', _join, {'user': user_id, 'code': code})


def leave_game(user_id, code) -> OperationResult:
    """Leave a lobby. The host leaving closes the lobby for everyone."""
    code = code.strip().upper() if isinstance(code, str) else code
    try:
        _require_user(user_id)
        check_game_code(code)
    except GameError as exc:
        return OperationResult.fail(exc)

    def _leave():
        game = Game.query.filter_by(code=code).first()
        if not game:
            raise NotFound()
        if game.status != 'waiting':
            raise ValidationError("Impossible de quitter une partie déjà commencée")
        player = _player_in_game(game.id, user_id)
        game_id, game_code = game.id, game.code
        if player.is_host:
            db.session.delete(game)
            closed = True
        else:
            db.session.delete(player)
            closed = False
        db.session.commit()
        return {'game_id': game_id, 'game_code': game_code, 'closed': closed}

    return _run('leave_game', _leave, {'user': user_id, 'code': code})


def submit_answer(user_id, round_id, content, is_bluff=False) -> OperationResult:
    try:
        _require_user(user_id)
        text = check_answer_content(content)
    except GameError as exc:
        return OperationResult.fail(exc)

    def _submit():
        rnd = _open_round(round_id)
        _player_in_game(rnd.game_id, user_id)
        if Answer.query.filter_by(round_id=rnd.id, player_id=user_id).first():
            raise ValidationError("Vous avez déjà répondu à cette manche")
        answer = Answer(round_id=rnd.id, player_id=user_id, content=text, is_bluff=bool(is_bluff))
        db.session.add(answer)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError("Vous avez déjà répondu à cette manche")
        return {'answer_id': answer.id, 'round_id': rnd.id, 'game_code': rnd.game.code}

    return _run('submit_answer', _submit, {'user': user_id, 'round': round_id, 'length': len(content)})


def submit_vote(user_id, round_id, target_player_id, answer_id, vote_type) -> OperationResult:
    try:
        _require_user(user_id)
        check_vote(target_player_id, answer_id, vote_type)
    except GameError as exc:
        return OperationResult.fail(exc)

    def _vote():
        rnd = _open_round(round_id)
        _player_in_game(rnd.game_id, user_id)
        answer = Answer.query.filter_by(id=answer_id, round_id=rnd.id).first()
        if not answer:
            raise ValidationError("Cette réponse n'appartient pas à la manche")
        if not GamePlayer.query.filter_by(game_id=rnd.game_id, user_id=target_player_id).first():
            raise ValidationError("Le joueur ciblé ne fait pas partie de la partie")

        # One vote per player per round; a new vote replaces the previous one
        vote = Vote.query.filter_by(player_id=user_id, round_id=rnd.id).first()
        replaced = vote is not None
        if vote is None:
            vote = Vote(player_id=user_id, round_id=rnd.id)
        vote.target_player_id = target_player_id
        vote.answer_id = answer.id
        vote.vote_type = vote_type
        db.session.add(vote)
        db.session.commit()
        return {'vote_id': vote.id, 'round_id': rnd.id, 'replaced': replaced, 'game_code': rnd.game.code}

    return _run('submit_vote', _vote, {'user': user_id, 'round': round_id, 'vote_type': vote_type})


def advance_phase(user_id, game_id, expected_phase: Optional[str] = None) -> OperationResult:
    """Host-only step of the phase machine.

    Leaving ``results`` scores and completes the current round first;
    entering ``answer`` makes sure the round row exists. Everything lands
    in a single commit.
    """
    try:
        _require_user(user_id)
    except GameError as exc:
        return OperationResult.fail(exc)

    def _advance():
        game = load_game(game_id)
        ensure_host(game, user_id)
        score_updates = None
        if game.phase == 'results':
            current = game.round_for(game.current_round)
            if current is not None:
                score_updates = round_lifecycle.close_round(current)
        phase, round_number, status = apply_transition(game, expected_phase)
        rnd = round_lifecycle.ensure_round(game) if phase == 'answer' else game.round_for(round_number)
        db.session.commit()
        return {
            'game_id': game.id,
            'game_code': game.code,
            'phase': phase,
            'current_round': round_number,
            'status': status,
            'round': rnd.to_dict() if rnd else None,
            'score_updates': score_updates,
        }

    return _run('advance_phase', _advance, {'user': user_id, 'game': game_id})


def create_round(user_id, game_id, round_number, mini_game) -> OperationResult:
    """Host-only explicit round creation."""
    try:
        _require_user(user_id)
        if mini_game not in VALID_MINI_GAMES:
            raise ValidationError("Mini-jeu invalide")
        if isinstance(round_number, bool) or not isinstance(round_number, int) or round_number < 1:
            raise ValidationError("Numéro de manche invalide")
    except GameError as exc:
        return OperationResult.fail(exc)

    def _create():
        game = load_game(game_id)
        ensure_host(game, user_id)
        if round_number > game.total_rounds:
            raise ValidationError("Numéro de manche invalide")
        if game.round_for(round_number):
            raise ValidationError("Cette manche existe déjà")
        rnd = round_lifecycle.create_round(game.id, round_number, mini_game)
        db.session.commit()
        return {'round': rnd.to_dict(), 'game_code': game.code}

    return _run('create_round', _create, {'user': user_id, 'game': game_id, 'round': round_number})


def complete_round(user_id, round_id, mini_game: Optional[str] = None) -> OperationResult:
    """Host-only: score a round and mark it completed."""
    try:
        _require_user(user_id)
    except GameError as exc:
        return OperationResult.fail(exc)

    def _complete():
        rnd = db.session.get(Round, round_id) if round_id is not None else None
        if rnd is None:
            raise NotFound("Manche introuvable")
        ensure_host(rnd.game, user_id)
        game_code = rnd.game.code
        deltas = round_lifecycle.complete_round(rnd.id, mini_game)
        return {'round_id': round_id, 'game_code': game_code, 'score_updates': deltas}

    return _run('complete_round', _complete, {'user': user_id, 'round': round_id})


def get_game_state(code) -> OperationResult:
    code = code.strip().upper() if isinstance(code, str) else code
    try:
        check_game_code(code)
    except GameError as exc:
        return OperationResult.fail(exc)

    def _state():
        game = Game.query.filter_by(code=code).first()
        if not game:
            raise NotFound("Partie introuvable")
        payload = game.to_dict()
        rnd = game.round_for(game.current_round)
        payload['round'] = rnd.to_dict() if rnd else None
        if rnd is not None:
            hide_authors = game.phase in _HIDDEN_AUTHOR_PHASES
            answers = []
            for a in rnd.answers.order_by(Answer.id).all():
                data = a.to_dict()
                if hide_authors:
                    data.pop('player_id')
                    data.pop('is_bluff')
                answers.append(data)
            if hide_authors:
                # Stable per round, unrelated to submission order
                random.Random(f"{game.code}:{rnd.id}").shuffle(answers)
            payload['answers'] = answers
            payload['answered_player_ids'] = sorted(a.player_id for a in rnd.answers.all())
            payload['voted_player_ids'] = sorted(v.player_id for v in rnd.votes.all())
            if not hide_authors:
                payload['votes'] = [v.to_dict() for v in rnd.votes.order_by(Vote.id).all()]
        return {'game': payload}

    return _run('get_game_state', _state, {'code': code})
