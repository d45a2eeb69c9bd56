from typing import Optional, Tuple

from flask import current_app

from kiadisa import db
from kiadisa.models import Game, PHASE_ORDER, PHASE_ENDED, PHASES
from .errors import InvalidTransition, NotAuthenticated, NotFound, NotHost, PhaseConflict


def next_phase(phase: str, current_round: int, total_rounds: int) -> Tuple[str, int]:
    """Return the (phase, round) that follows ``phase`` in ``current_round``.

    intro -> answer -> vote -> reveal -> results, then intro of the next
    round, or ended after the last one.
    """
    if phase == PHASE_ENDED:
        raise InvalidTransition()
    if phase not in PHASES:
        raise InvalidTransition(f"Phase inconnue : {phase}")
    index = PHASE_ORDER.index(phase)
    if index < len(PHASE_ORDER) - 1:
        return PHASE_ORDER[index + 1], current_round
    if current_round < total_rounds:
        return PHASE_ORDER[0], current_round + 1
    return PHASE_ENDED, current_round


def load_game(game_id) -> Game:
    game = db.session.get(Game, game_id) if game_id is not None else None
    if game is None:
        raise NotFound("Partie introuvable")
    return game


def ensure_host(game: Game, user_id) -> None:
    if user_id is None:
        raise NotAuthenticated()
    if game.host != user_id:
        raise NotHost()


def apply_transition(game: Game, expected_phase: Optional[str] = None) -> Tuple[str, int, str]:
    """Move ``game`` one step forward without committing.

    The write only lands if the stored phase and round still match what
    was read; otherwise PhaseConflict is raised.
    """
    if expected_phase is not None and expected_phase != game.phase:
        raise PhaseConflict()

    read_phase, read_round = game.phase, game.current_round
    new_phase, new_round = next_phase(read_phase, read_round, game.total_rounds)
    if new_phase == PHASE_ENDED:
        new_status = 'ended'
    elif game.status == 'waiting':
        new_status = 'active'
    else:
        new_status = game.status

    updated = (
        Game.query
        .filter(Game.id == game.id, Game.phase == read_phase, Game.current_round == read_round)
        .update({'phase': new_phase, 'current_round': new_round, 'status': new_status},
                synchronize_session='evaluate')
    )
    if updated != 1:
        current_app.logger.info(f"[advance] game={game.id} lost race at phase={read_phase} round={read_round}")
        raise PhaseConflict()

    current_app.logger.info(
        f"[advance] game={game.id} {read_phase}/{read_round} -> {new_phase}/{new_round} status={new_status}"
    )
    return new_phase, new_round, new_status
