"""
Boundary layer data model(s).

The game engines hand these snapshots to the services, and the services hand them on to the event payloads / persistence layer.
(Keeps the internals of an engine or a DB row out of the other layers.)
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

# Type aliases to make the models easier to read
PlayerId = str
Square = int


@dataclass
class RaceGameState:
    """Snapshot of a snakes and ladders game."""

    game_kind: str
    player_ids: list[PlayerId]
    active_players: list[PlayerId]
    positions: dict[PlayerId, Square]
    current_player_id: Optional[PlayerId]
    last_roll: Optional[int]
    winner: Optional[PlayerId]
    board_size: int
    special_tiles: dict[Square, Square]
    is_game_over: bool


@dataclass
class ChessGameState:
    """Snapshot of a chess game. Board position in FEN, moves in UCI."""

    game_kind: str
    player_ids: list[PlayerId]
    players: dict[str, PlayerId]
    fen: str
    turn: str
    current_player_id: PlayerId
    moves_uci: list[str]
    is_game_over: bool
    is_checkmate: bool
    is_draw: bool
    winner: Optional[PlayerId]


@dataclass
class GridGameState:
    """Snapshot of a tic-tac-toe game. Cells hold the ID of the player who marked them."""

    game_kind: str
    player_ids: list[PlayerId]
    board: list[Optional[PlayerId]]
    current_player_id: Optional[PlayerId]
    is_game_over: bool
    is_draw: bool
    winner: Optional[PlayerId]


GameState = RaceGameState | ChessGameState | GridGameState


@dataclass
class SettlementResult:
    """Outcome of settling a match."""

    match_id: str
    winner_id: Optional[PlayerId]
    pot: Decimal
    prize: Decimal
    fee: Decimal
    game_result_id: Optional[int]
    new_balance: Optional[Decimal]


@dataclass
class TransactionModel:
    id: int
    user_id: PlayerId
    type: str
    amount: Decimal
    game_id: Optional[int]
    created_at: datetime


@dataclass
class GameResultModel:
    id: int
    match_id: str
    game_kind: str
    winner_id: Optional[PlayerId]
    pot_amount: Decimal
    app_fee: Decimal
    created_at: datetime


@dataclass
class UserHistory:
    """Most recent ledger activity for a user."""

    user_id: PlayerId
    transactions: list[TransactionModel] = field(default_factory=list)
    games: list[GameResultModel] = field(default_factory=list)
