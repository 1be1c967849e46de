"""
Chess move legality lives outside the lobby.

ChessRulesValidator is the capability the chess engine needs: it takes a FEN position, returns a FEN position.
PythonChessValidator implements it on top of the python-chess library.
"""

from typing import Optional, Protocol

import chess

from src.core.exceptions import GameStateError, IllegalMoveError
from src.core.shared_types import Color

PROMOTION_LETTERS = {
    "queen": "q",
    "rook": "r",
    "bishop": "b",
    "knight": "n",
}


def build_uci(
    from_square_alg: str, to_square_alg: str, promotion: Optional[str] = None
) -> str:
    """Glue the parts of a move request together in UCI notation, e.g. ('e7', 'e8', 'queen') -> 'e7e8q'"""
    uci = f"{from_square_alg.strip().lower()}{to_square_alg.strip().lower()}"
    if promotion:
        letter = PROMOTION_LETTERS.get(promotion.lower(), promotion.lower())
        if letter not in PROMOTION_LETTERS.values():
            raise IllegalMoveError(f"Cannot promote to {promotion!r}.")
        uci += letter
    return uci


class ChessRulesValidator(Protocol):
    """Rules engine contract: stateless functions of a FEN position."""

    def starting_position(self) -> str: ...

    def apply_move(self, position: str, move_uci: str) -> str:
        """Return the position after the move. Raises IllegalMoveError if the move is not allowed."""
        ...

    def is_game_over(self, position: str) -> bool: ...

    def is_checkmate(self, position: str) -> bool: ...

    def is_draw(self, position: str) -> bool: ...

    def turn_to_move(self, position: str) -> Color: ...


class PythonChessValidator:
    """ChessRulesValidator backed by python-chess"""

    def starting_position(self) -> str:
        return chess.STARTING_FEN

    def apply_move(self, position: str, move_uci: str) -> str:
        board = self._board(position)
        try:
            move = board.parse_uci(move_uci)
        except ValueError:
            raise IllegalMoveError(f"Move not allowed: {move_uci}") from None
        # parse_uci lets the null move "0000" through
        if not move:
            raise IllegalMoveError(f"Move not allowed: {move_uci}")
        board.push(move)
        return board.fen()

    def is_game_over(self, position: str) -> bool:
        return self._board(position).is_game_over()

    def is_checkmate(self, position: str) -> bool:
        return self._board(position).is_checkmate()

    def is_draw(self, position: str) -> bool:
        board = self._board(position)
        return board.is_game_over() and not board.is_checkmate()

    def turn_to_move(self, position: str) -> Color:
        return Color.WHITE if self._board(position).turn == chess.WHITE else Color.BLACK

    def _board(self, position: str) -> chess.Board:
        try:
            return chess.Board(position)
        except ValueError:
            raise GameStateError(f"Invalid position: {position!r}") from None
