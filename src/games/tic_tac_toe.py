"""Tic-tac-toe on a 3x3 grid. Cells are numbered 0..8, row by row."""

from typing import Any, Mapping, Optional

from src.core.exceptions import (
    GameStateError,
    IllegalMoveError,
    InvalidPlayerCountError,
    NotYourTurnError,
)
from src.core.models import GridGameState, PlayerId
from src.core.shared_types import GameKind

GRID_SIZE = 9

# 3 rows, 3 columns, 2 diagonals
WINNING_LINES: tuple[tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


def find_line_winner(board: list[Optional[PlayerId]]) -> Optional[PlayerId]:
    """Owner of a completed line, if any."""
    for a, b, c in WINNING_LINES:
        if board[a] is not None and board[a] == board[b] == board[c]:
            return board[a]
    return None


class TicTacToe:
    kind = GameKind.GRID

    def __init__(self, player_ids: list[PlayerId]) -> None:
        if len(player_ids) != 2:
            raise InvalidPlayerCountError(
                f"Tic-tac-toe needs exactly 2 players. Got {len(player_ids)}."
            )
        self.player_ids = list(player_ids)
        self.board: list[Optional[PlayerId]] = [None] * GRID_SIZE
        self.turn = 0
        self._winner: Optional[PlayerId] = None
        self._is_draw = False

    @property
    def current_player_id(self) -> PlayerId:
        return self.player_ids[self.turn]

    @property
    def winner(self) -> Optional[PlayerId]:
        return self._winner

    @property
    def is_draw(self) -> bool:
        return self._is_draw

    @property
    def is_over(self) -> bool:
        return self._winner is not None or self._is_draw

    def apply_move(
        self, player_id: PlayerId, move: Optional[Mapping[str, Any]] = None
    ) -> None:
        """Mark a cell: {"cell": 4}"""
        if self.is_over:
            raise GameStateError("The game is already over.")
        if player_id != self.current_player_id:
            raise NotYourTurnError(
                f"It is not your turn. Waiting for player {self.current_player_id} to make a move first."
            )
        cell = self._parse_cell(move)
        if self.board[cell] is not None:
            raise IllegalMoveError(f"Cell {cell} is already taken.")

        self.board[cell] = player_id
        self._winner = find_line_winner(self.board)
        if self._winner is None and None not in self.board:
            self._is_draw = True
        self.turn = (self.turn + 1) % len(self.player_ids)

    def remove_player(self, player_id: PlayerId) -> None:
        """Two player game: a departure always ends in a forfeit handled by the lobby."""

    def get_state(self) -> GridGameState:
        return GridGameState(
            game_kind=self.kind.value,
            player_ids=list(self.player_ids),
            board=list(self.board),
            current_player_id=None if self.is_over else self.current_player_id,
            is_game_over=self.is_over,
            is_draw=self._is_draw,
            winner=self._winner,
        )

    def _parse_cell(self, move: Optional[Mapping[str, Any]]) -> int:
        if not move or "cell" not in move:
            raise IllegalMoveError("A tic-tac-toe move needs a cell (0-8).")
        cell = move["cell"]
        if isinstance(cell, bool) or not isinstance(cell, int):
            raise IllegalMoveError(f"Cell must be an integer. Got {cell!r}.")
        if not (0 <= cell < GRID_SIZE):
            raise IllegalMoveError(f"Cell {cell} is outside the board (0-8).")
        return cell
