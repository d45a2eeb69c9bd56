import random
from datetime import datetime, timezone
from typing import Dict, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from kiadisa import db
from kiadisa.models import Answer, Game, Question, Round, Vote
from .errors import NoQuestionsAvailable, NotFound, ScoringError
from .scoring import apply_score_deltas, compute_round_deltas


def pick_mini_game(game: Game, round_number: int) -> str:
    """Mini-games rotate through the ones selected at creation."""
    mini_games = game.mini_games or ['kikadi']
    return mini_games[(round_number - 1) % len(mini_games)]


def create_round(game_id: int, round_number: int, mini_game: str) -> Round:
    """Insert a playing round with a random question for ``mini_game``.

    Flushes but does not commit.
    """
    questions = Question.query.filter_by(game_type=mini_game).all()
    if not questions:
        raise NoQuestionsAvailable()
    question = random.choice(questions)

    new_round = Round(
        game_id=game_id,
        round_number=round_number,
        mini_game=mini_game,
        question_id=question.id,
        status='playing',
        started_at=datetime.now(timezone.utc),
    )
    db.session.add(new_round)
    db.session.flush()
    current_app.logger.info(f"[round] game={game_id} round={round_number} created mini_game={mini_game} question={question.id}")
    return new_round


def ensure_round(game: Game) -> Round:
    """Return the row for the game's current round, creating it if needed."""
    existing = game.round_for(game.current_round)
    if existing:
        return existing
    return create_round(game.id, game.current_round, pick_mini_game(game, game.current_round))


def close_round(rnd: Round, mini_game: Optional[str] = None) -> Dict[int, int]:
    """Score ``rnd`` and mark it completed, without committing.

    Any failure is raised as ScoringError; the caller rolls back so the
    round stays playing.
    """
    if rnd.status == 'completed':
        return {}
    try:
        answers = Answer.query.filter_by(round_id=rnd.id).all()
        votes = Vote.query.filter_by(round_id=rnd.id).all()
        deltas = compute_round_deltas(mini_game or rnd.mini_game, answers, votes)
        apply_score_deltas(rnd.game_id, deltas)
        rnd.status = 'completed'
        rnd.completed_at = datetime.now(timezone.utc)
        db.session.add(rnd)
        db.session.flush()
    except ScoringError:
        raise
    except SQLAlchemyError as exc:
        current_app.logger.error(f"[round] round={rnd.id} scoring failed: {exc}")
        raise ScoringError() from exc
    current_app.logger.info(f"[round] game={rnd.game_id} round={rnd.round_number} completed deltas={deltas}")
    return deltas


def complete_round(round_id: int, mini_game: Optional[str] = None) -> Dict[int, int]:
    rnd = db.session.get(Round, round_id)
    if rnd is None:
        raise NotFound("Manche introuvable")
    try:
        deltas = close_round(rnd, mini_game)
        db.session.commit()
    except ScoringError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise ScoringError() from exc
    return deltas
