"""Requests and event payload models"""

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from src.core.exceptions import InvalidRequestError
from src.core.models import GameResultModel, GameState, TransactionModel, UserHistory
from src.core.shared_types import GameKind
from src.games.engine import parse_game_kind
from src.games.tic_tac_toe import GRID_SIZE

MoveArgs = Optional[dict[str, Any]]


# --- REQUEST MODELS ---
class JoinQueueRequest(BaseModel):
    game_kind: str

    @field_validator("game_kind")
    @classmethod
    def validate_game_kind(cls, value: str) -> str:
        # raises UnknownGameKindError
        return parse_game_kind(value).value

    @property
    def kind(self) -> GameKind:
        return GameKind(self.game_kind)


class RollRequest(BaseModel):
    """Snakes and ladders: the only move is rolling the die."""

    def to_move_args(self) -> MoveArgs:
        return None


class ChessMoveRequest(BaseModel):
    from_square: str
    to_square: str
    promote_to: Optional[str] = None

    @field_validator(*["from_square", "to_square"])
    @classmethod
    def validate_square(cls, value: str) -> str:
        def _is_algebraic_notation(value: str) -> bool:
            if len(value) != 2:
                return False
            file, rank = value[0], value[1]
            return file.lower() in "abcdefgh" and rank in "12345678"

        if not _is_algebraic_notation(value):
            raise InvalidRequestError(
                f"Cannot interpret {value!r} as a valid square name."
            )
        return value.lower()

    def to_move_args(self) -> MoveArgs:
        return {
            "from": self.from_square,
            "to": self.to_square,
            "promotion": self.promote_to,
        }


class GridMoveRequest(BaseModel):
    cell: int

    @field_validator("cell")
    @classmethod
    def validate_cell(cls, value: int) -> int:
        if not (0 <= value < GRID_SIZE):
            raise InvalidRequestError(f"Cell {value} is outside the board (0-8).")
        return value

    def to_move_args(self) -> MoveArgs:
        return {"cell": self.cell}


MoveRequest = RollRequest | ChessMoveRequest | GridMoveRequest


# --- EVENT MODELS ---
def state_payload(state: GameState) -> dict[str, Any]:
    return asdict(state)


class QueueUpdateEvent(BaseModel):
    game_kind: str
    count: int
    required: int


class GameStartEvent(BaseModel):
    match_id: str
    pot: Decimal
    state: dict[str, Any]


class GameStateUpdateEvent(BaseModel):
    match_id: str
    state: dict[str, Any]


class GameOverEvent(BaseModel):
    match_id: str
    state: dict[str, Any]
    winner: Optional[str] = None
    prize: Optional[Decimal] = None
    new_balance: Optional[Decimal] = None
    reason: str


class PlayerDisconnectedEvent(BaseModel):
    disconnected_id: str
    message: str


class GameCancelledEvent(BaseModel):
    reason: str


class IllegalMoveEvent(BaseModel):
    reason: str


# --- RESPONSE MODELS ---
class TransactionResponse(BaseModel):
    id: int
    type: str
    amount: Decimal
    game_id: Optional[int]
    created_at: datetime

    @classmethod
    def from_model(cls, model: TransactionModel) -> "TransactionResponse":
        return cls(
            id=model.id,
            type=model.type,
            amount=model.amount,
            game_id=model.game_id,
            created_at=model.created_at,
        )


class GameResultResponse(BaseModel):
    id: int
    match_id: str
    game_kind: str
    winner_id: Optional[str]
    pot_amount: Decimal
    app_fee: Decimal
    created_at: datetime

    @classmethod
    def from_model(cls, model: GameResultModel) -> "GameResultResponse":
        return cls(
            id=model.id,
            match_id=model.match_id,
            game_kind=model.game_kind,
            winner_id=model.winner_id,
            pot_amount=model.pot_amount,
            app_fee=model.app_fee,
            created_at=model.created_at,
        )


class HistoryResponse(BaseModel):
    user_id: str
    transactions: list[TransactionResponse]
    games: list[GameResultResponse]

    @classmethod
    def from_model(cls, history: UserHistory) -> "HistoryResponse":
        return cls(
            user_id=history.user_id,
            transactions=[TransactionResponse.from_model(t) for t in history.transactions],
            games=[GameResultResponse.from_model(g) for g in history.games],
        )
