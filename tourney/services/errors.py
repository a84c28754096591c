"""
Engine error taxonomy.

Every failure is detected before any mutation is applied, so a rejected
request leaves veto/bracket state unchanged and can be corrected and resent.
Routes translate these into HTTPException using ``status_code`` and ``code``.
"""


class MatchEngineError(Exception):
    """Base class for all veto/bracket engine failures"""

    code = "MATCH_ENGINE_ERROR"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    @property
    def detail(self) -> str:
        return f"{self.code}: {self.message}"


# Format / session creation


class FormatNotFound(MatchEngineError):
    code = "FORMAT_NOT_FOUND"


class PoolSizeMismatch(MatchEngineError):
    code = "POOL_SIZE_MISMATCH"


class InvalidVetoOrder(MatchEngineError):
    code = "INVALID_VETO_ORDER"


# Veto actions


class NotYourTurn(MatchEngineError):
    code = "NOT_YOUR_TURN"
    status_code = 403


class InvalidMap(MatchEngineError):
    code = "INVALID_MAP"


class InvalidSide(MatchEngineError):
    code = "INVALID_SIDE"


class VetoAlreadyCompleted(MatchEngineError):
    code = "VETO_ALREADY_COMPLETED"
    status_code = 409


class VetoNotComplete(MatchEngineError):
    code = "VETO_NOT_COMPLETE"
    status_code = 409


# Bracket scheduling


class InsufficientTeams(MatchEngineError):
    code = "INSUFFICIENT_TEAMS"


class UnknownTeam(MatchEngineError):
    code = "UNKNOWN_TEAM"


class UnsupportedTournamentType(MatchEngineError):
    code = "UNSUPPORTED_TOURNAMENT_TYPE"


class TournamentAlreadyStarted(MatchEngineError):
    code = "TOURNAMENT_ALREADY_STARTED"
    status_code = 409


class MatchNotReady(MatchEngineError):
    code = "MATCH_NOT_READY"
    status_code = 409


class UnknownWinner(MatchEngineError):
    code = "UNKNOWN_WINNER"


class InvalidStatusTransition(MatchEngineError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409


# Lookups


class MatchNotFound(MatchEngineError):
    code = "MATCH_NOT_FOUND"
    status_code = 404


class TournamentNotFound(MatchEngineError):
    code = "TOURNAMENT_NOT_FOUND"
    status_code = 404


# Settings


class InvalidWebhookUrl(MatchEngineError):
    code = "INVALID_WEBHOOK_URL"
