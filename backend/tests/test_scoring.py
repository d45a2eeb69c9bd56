from types import SimpleNamespace

import pytest

from kiadisa import db
from kiadisa.models import Game, GamePlayer, User
from kiadisa.services.games.errors import ScoringError
from kiadisa.services.games.scoring import apply_score_deltas, compute_round_deltas


def answer(id, author, is_bluff=False):
    return SimpleNamespace(id=id, player_id=author, is_bluff=is_bluff)


def vote(voter, target, answer_id, vote_type):
    return SimpleNamespace(player_id=voter, target_player_id=target, answer_id=answer_id, vote_type=vote_type)


P1, P2, P3, P4 = 1, 2, 3, 4


def test_kikadi_correct_guess_scores_voter_only():
    answers = [answer(10, P1), answer(11, P2)]
    votes = [vote(P3, P1, 10, 'guess')]
    assert compute_round_deltas('kikadi', answers, votes) == {P3: 1}


def test_kikadi_wrong_guess_and_other_vote_types_score_nothing():
    answers = [answer(10, P1), answer(11, P2)]
    votes = [vote(P3, P2, 10, 'guess'), vote(P4, P1, 10, 'truth')]
    assert compute_round_deltas('kikadi', answers, votes) == {}


def test_kidivrai_detected_bluff():
    answers = [answer(10, P1, is_bluff=True)]
    votes = [vote(P2, P1, 10, 'bluff')]
    assert compute_round_deltas('kidivrai', answers, votes) == {P2: 1}


def test_kidivrai_undetected_bluff_gives_author_two():
    answers = [answer(10, P1, is_bluff=True)]
    votes = [vote(P2, P1, 10, 'truth'), vote(P3, P1, 10, 'truth')]
    assert compute_round_deltas('kidivrai', answers, votes) == {P1: 2}


def test_kidivrai_bluff_without_votes_still_succeeds():
    assert compute_round_deltas('kidivrai', [answer(10, P1, is_bluff=True)], []) == {P1: 2}


def test_kidivrai_recognized_truth():
    answers = [answer(10, P1, is_bluff=False)]
    votes = [vote(P2, P1, 10, 'truth'), vote(P3, P1, 10, 'truth'), vote(P4, P1, 10, 'bluff')]
    assert compute_round_deltas('kidivrai', answers, votes) == {P1: 1, P2: 1, P3: 1}


def test_kidivrai_truth_needs_a_strict_majority():
    answers = [answer(10, P1, is_bluff=False)]
    votes = [vote(P2, P1, 10, 'truth'), vote(P3, P1, 10, 'bluff')]
    assert compute_round_deltas('kidivrai', answers, votes) == {P2: 1}


def test_kideja_rewards_every_guess_with_a_target():
    votes = [vote(P1, P2, 10, 'guess'), vote(P2, P3, 10, 'guess'), vote(P3, None, 10, 'guess'),
             vote(P4, P1, 10, 'truth')]
    assert compute_round_deltas('kideja', [], votes) == {P1: 1, P2: 1}


def test_kidenous_winner_and_its_voters():
    votes = [vote(P1, P2, 10, 'guess'), vote(P3, P2, 10, 'guess'), vote(P2, P4, 10, 'guess')]
    assert compute_round_deltas('kidenous', [], votes) == {P2: 1, P1: 1, P3: 1}


def test_kidenous_tie_goes_to_first_voted():
    votes = [vote(P1, P3, 10, 'guess'), vote(P3, P4, 10, 'guess')]
    assert compute_round_deltas('kidenous', [], votes) == {P3: 1, P1: 1}


def test_kidenous_winner_voting_for_self_collects_both_points():
    votes = [vote(P2, P2, 10, 'guess'), vote(P1, P2, 10, 'guess')]
    assert compute_round_deltas('kidenous', [], votes) == {P2: 2, P1: 1}


def test_kidenous_without_votes():
    assert compute_round_deltas('kidenous', [], []) == {}


def test_unknown_mini_game_is_a_scoring_error():
    with pytest.raises(ScoringError):
        compute_round_deltas('chess', [], [])


def test_apply_score_deltas_updates_score_xp_and_coins(app_ctx):
    users = [User(username=f'u{i}', password_hash='x') for i in range(3)]
    db.session.add_all(users)
    db.session.flush()
    game = Game(code='ABC123', host=users[0].id, settings={}, total_rounds=3)
    other = Game(code='XYZ789', host=users[1].id, settings={}, total_rounds=3)
    db.session.add_all([game, other])
    db.session.flush()
    db.session.add_all([
        GamePlayer(game_id=game.id, user_id=users[0].id, is_host=True),
        GamePlayer(game_id=game.id, user_id=users[1].id, score=4, xp=100, coins=40),
        GamePlayer(game_id=other.id, user_id=users[1].id, is_host=True),
    ])
    db.session.commit()

    apply_score_deltas(game.id, {users[1].id: 2, users[2].id: 5})
    db.session.commit()

    scored = GamePlayer.query.filter_by(game_id=game.id, user_id=users[1].id).one()
    assert (scored.score, scored.xp, scored.coins) == (6, 150, 60)
    untouched = GamePlayer.query.filter_by(game_id=other.id, user_id=users[1].id).one()
    assert (untouched.score, untouched.xp, untouched.coins) == (0, 0, 0)
    assert GamePlayer.query.filter_by(user_id=users[2].id).count() == 0
