"""Error taxonomy for game operations.

Each error carries a stable ``code`` (used by clients and HTTP status
mapping) and a human-readable ``message`` shown to players.
"""


class GameError(Exception):
    code = 'GameError'
    default_message = "Une erreur est survenue"
    retryable = False

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GameError):
    code = 'ValidationError'
    default_message = "Données invalides"


class NotAuthenticated(GameError):
    code = 'NotAuthenticated'
    default_message = "Utilisateur non connecté"


class NotHost(GameError):
    code = 'NotHost'
    default_message = "Seul le créateur peut faire avancer la partie"


class NotAPlayer(GameError):
    code = 'NotAPlayer'
    default_message = "Vous ne faites pas partie de cette partie"


class NotFound(GameError):
    code = 'NotFound'
    default_message = "Partie introuvable ou déjà commencée"


class CodeGenerationExhausted(GameError):
    code = 'CodeGenerationExhausted'
    default_message = "Impossible de générer un code unique"


class NoQuestionsAvailable(GameError):
    code = 'NoQuestionsAvailable'
    default_message = "Aucune question disponible pour ce mini-jeu"


class StorageError(GameError):
    code = 'StorageError'
    default_message = "Problème de connexion, reconnexion en cours..."
    retryable = True


class ScoringError(GameError):
    code = 'ScoringError'
    default_message = "Impossible de calculer les scores"


class InvalidTransition(GameError):
    code = 'InvalidTransition'
    default_message = "La partie est terminée"


class PhaseConflict(GameError):
    code = 'PhaseConflict'
    default_message = "La phase a déjà changé, rafraîchissez la partie"
