"""
Type definitions used across layers
"""

from enum import StrEnum


class GameKind(StrEnum):
    RACE = "snakes_and_ladders"
    CHESS = "chess"
    GRID = "tic_tac_toe"


class Color(StrEnum):
    WHITE = "white"
    BLACK = "black"


class TransactionType(StrEnum):
    BET = "bet"
    WIN = "win"


class Event(StrEnum):
    """Names of the events pushed to connected players."""

    GAME_START = "gameStart"
    GAME_STATE_UPDATE = "gameStateUpdate"
    GAME_OVER = "gameOver"
    QUEUE_UPDATE = "queueUpdate"
    PLAYER_DISCONNECTED = "playerDisconnected"
    GAME_CANCELLED = "gameCancelled"
    ILLEGAL_MOVE = "illegalMove"
