import re

from flask import current_app

from kiadisa.models import VOTE_TYPES
from .errors import ValidationError

VALID_MODES = ('classique', 'bluff', 'duel', 'couple')
TWO_PLAYER_MODES = ('duel', 'couple')
VALID_AMBIANCES = ('safe', 'intime', 'nofilter')
VALID_MINI_GAMES = ('kikadi', 'kidivrai', 'kideja', 'kidenous')

GAME_CODE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
_GAME_CODE_RE = re.compile(r'^[A-Z0-9]+$')


def _config(key, default):
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        # Outside an application context (pure unit use)
        return default


def check_game_settings(settings) -> None:
    """Raise ValidationError describing the first rule ``settings`` breaks."""
    if not isinstance(settings, dict):
        raise ValidationError("Paramètres de jeu invalides")

    if settings.get('mode') not in VALID_MODES:
        raise ValidationError("Mode invalide : veuillez sélectionner un mode de jeu valide")

    if settings.get('ambiance') not in VALID_AMBIANCES:
        raise ValidationError("Ambiance invalide : veuillez sélectionner une ambiance valide")

    mini_games = settings.get('miniGames')
    if not isinstance(mini_games, (list, tuple)) or len(mini_games) == 0:
        raise ValidationError("Aucun mini-jeu sélectionné : veuillez sélectionner au moins un mini-jeu")
    if not all(g in VALID_MINI_GAMES for g in mini_games):
        raise ValidationError("Mini-jeu invalide : un ou plusieurs mini-jeux sélectionnés sont invalides")

    min_rounds = int(_config('MIN_ROUNDS', 3))
    max_rounds = int(_config('MAX_ROUNDS', 15))
    total_rounds = settings.get('totalRounds')
    if isinstance(total_rounds, bool) or not isinstance(total_rounds, int) \
            or not min_rounds <= total_rounds <= max_rounds:
        raise ValidationError(f"Le nombre de manches doit être entre {min_rounds} et {max_rounds}")

    if settings.get('twoPlayersOnly') and settings.get('mode') not in TWO_PLAYER_MODES:
        raise ValidationError("Mode incompatible : mode 2 joueurs activé mais mode sélectionné incompatible")


def validate_game_settings(settings) -> bool:
    try:
        check_game_settings(settings)
    except ValidationError:
        return False
    return True


def check_game_code(code) -> None:
    length = int(_config('CODE_LENGTH', 6))
    if not isinstance(code, str) or len(code) != length:
        raise ValidationError(f"Le code de partie doit contenir {length} caractères")
    if not _GAME_CODE_RE.match(code):
        raise ValidationError("Le code ne doit contenir que des lettres majuscules et des chiffres")


def validate_game_code(code) -> bool:
    try:
        check_game_code(code)
    except ValidationError:
        return False
    return True


def check_answer_content(content) -> str:
    """Return the trimmed answer text, or raise ValidationError."""
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Réponse vide : veuillez saisir une réponse avant de valider")
    max_length = int(_config('ANSWER_MAX_LENGTH', 500))
    if len(content) > max_length:
        raise ValidationError(f"Réponse trop longue : la réponse ne peut pas dépasser {max_length} caractères")
    return content.strip()


def check_vote(target_player_id, answer_id, vote_type) -> None:
    if not target_player_id or not answer_id or not vote_type:
        raise ValidationError("Vote incomplet : tous les champs du vote sont requis")
    if vote_type not in VOTE_TYPES:
        raise ValidationError("Type de vote invalide : le type de vote n'est pas reconnu")
