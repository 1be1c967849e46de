"""
Custom exceptions shared across layers.

Every error raised on purpose by the lobby derives from GameError, so higher layers can catch the whole family at once.
"""


class GameError(Exception):
    """Top-level custom exception."""


# --- Per-action errors (reported to the acting player only) ---
class NotYourTurnError(GameError):
    """A player attempted to act while another player holds the turn."""


class IllegalMoveError(GameError):
    """The move breaks the rules of the game kind."""


class GameStateError(GameError):
    """The game is not in a state that accepts the request (e.g. it is already over)."""


# --- Construction / matchmaking errors ---
class InvalidPlayerCountError(GameError):
    """Number of players does not fit the game kind."""


class UnknownGameKindError(GameError):
    """Requested game kind is not offered by the lobby."""


class MatchNotFoundError(GameError):
    """No active match for the given ID / player."""


# --- Money ---
class InsufficientFundsError(GameError):
    """At least one player of a batch cannot cover the bet."""


class SettlementError(GameError):
    """A unit of work against the ledger failed and was rolled back."""


# --- Boundaries ---
class RepositoryError(GameError):
    """Persistence layer could not find or store a record."""


class InvalidRequestError(GameError):
    """Inbound request failed validation."""


class ConfigurationError(GameError):
    """Settings are invalid or cannot be satisfied (e.g. board too small for its tiles)."""
