from collections import defaultdict
from typing import Callable, Dict, Iterable, List

from flask import current_app

from kiadisa import db
from kiadisa.models import GamePlayer
from .errors import ScoringError


def _award(deltas: Dict[int, int], player_id, points: int) -> None:
    if player_id is None or points <= 0:
        return
    deltas[player_id] += points


def score_kikadi(answers: List, votes: List) -> Dict[int, int]:
    """+1 to each voter who guessed the real author of the answer."""
    deltas = defaultdict(int)
    authors = {a.id: a.player_id for a in answers}
    for vote in votes:
        if vote.vote_type != 'guess':
            continue
        author_id = authors.get(vote.answer_id)
        if author_id is not None and author_id == vote.target_player_id:
            _award(deltas, vote.player_id, 1)
    return deltas


def score_kidivrai(answers: List, votes: List) -> Dict[int, int]:
    """Undetected bluff +2 to its author, recognized truth +1 to its author,
    +1 to every voter who called the answer right."""
    deltas = defaultdict(int)
    for answer in answers:
        on_answer = [v for v in votes if v.answer_id == answer.id]
        bluff_votes = sum(1 for v in on_answer if v.vote_type == 'bluff')
        truth_votes = sum(1 for v in on_answer if v.vote_type == 'truth')

        if answer.is_bluff and bluff_votes == 0:
            _award(deltas, answer.player_id, 2)
        elif not answer.is_bluff and truth_votes > bluff_votes:
            _award(deltas, answer.player_id, 1)

        for vote in on_answer:
            if (answer.is_bluff and vote.vote_type == 'bluff') or \
                    (not answer.is_bluff and vote.vote_type == 'truth'):
                _award(deltas, vote.player_id, 1)
    return deltas


def score_kideja(answers: List, votes: List) -> Dict[int, int]:
    # Participation scoring: any guess naming someone counts
    deltas = defaultdict(int)
    for vote in votes:
        if vote.vote_type == 'guess' and vote.target_player_id:
            _award(deltas, vote.player_id, 1)
    return deltas


def score_kidenous(answers: List, votes: List) -> Dict[int, int]:
    """+1 to the most voted player, +1 to each voter who picked them.

    Ties go to the player who was voted for first.
    """
    deltas = defaultdict(int)
    tally: Dict[int, int] = {}
    for vote in votes:
        if vote.target_player_id:
            tally[vote.target_player_id] = tally.get(vote.target_player_id, 0) + 1
    if not tally:
        return deltas

    winner = None
    for player_id, count in tally.items():
        if winner is None or count > tally[winner]:
            winner = player_id

    _award(deltas, winner, 1)
    for vote in votes:
        if vote.target_player_id == winner:
            _award(deltas, vote.player_id, 1)
    return deltas


SCORING_STRATEGIES: Dict[str, Callable[[List, List], Dict[int, int]]] = {
    'kikadi': score_kikadi,
    'kidivrai': score_kidivrai,
    'kideja': score_kideja,
    'kidenous': score_kidenous,
}


def compute_round_deltas(mini_game: str, answers: Iterable, votes: Iterable) -> Dict[int, int]:
    """Map each player id to the points earned in a closed round.

    Pure: reads only the given answers and votes. Players who earned
    nothing are left out of the result.
    """
    strategy = SCORING_STRATEGIES.get(mini_game)
    if strategy is None:
        raise ScoringError(f"Mini-jeu inconnu : {mini_game}")
    deltas = strategy(list(answers), list(votes))
    return {player_id: points for player_id, points in deltas.items() if points > 0}


def apply_score_deltas(game_id: int, deltas: Dict[int, int]) -> None:
    """Add points, xp and coins to the players of ``game_id``.

    Uses in-database increments; the caller owns the commit.
    """
    xp_per_point = int(current_app.config.get('XP_PER_POINT', 25))
    coins_per_point = int(current_app.config.get('COINS_PER_POINT', 10))
    for user_id, points in deltas.items():
        updated = (
            db.session.query(GamePlayer)
            .filter(GamePlayer.game_id == game_id, GamePlayer.user_id == user_id)
            .update({
                GamePlayer.score: GamePlayer.score + points,
                GamePlayer.xp: GamePlayer.xp + points * xp_per_point,
                GamePlayer.coins: GamePlayer.coins + points * coins_per_point,
            }, synchronize_session=False)
        )
        if not updated:
            current_app.logger.warning(f"[score] game={game_id} user={user_id} is not a player, {points} points dropped")
        else:
            current_app.logger.info(f"[score] game={game_id} user={user_id} +{points}")
