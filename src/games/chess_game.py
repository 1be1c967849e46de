"""
Chess match between two players.

Holds the authoritative FEN position and the color assignment. Everything about legal moves is delegated
to a ChessRulesValidator, the game only checks whose turn it is and derives the status flags after each move.
"""

from typing import Any, Mapping, Optional

from src.core.exceptions import (
    GameStateError,
    IllegalMoveError,
    InvalidPlayerCountError,
    NotYourTurnError,
)
from src.core.models import ChessGameState, PlayerId
from src.core.shared_types import Color, GameKind
from src.games.chess_rules import ChessRulesValidator, build_uci


class ChessGame:
    kind = GameKind.CHESS

    def __init__(
        self,
        player_ids: list[PlayerId],
        validator: ChessRulesValidator,
        starting_fen: Optional[str] = None,
    ) -> None:
        if len(player_ids) != 2:
            raise InvalidPlayerCountError(
                f"Chess needs exactly 2 players. Got {len(player_ids)}."
            )
        self.validator = validator
        self.player_ids = list(player_ids)
        # first listed player gets the white pieces
        self.players: dict[Color, PlayerId] = {
            Color.WHITE: player_ids[0],
            Color.BLACK: player_ids[1],
        }
        self.fen = starting_fen or validator.starting_position()
        self.moves_uci: list[str] = []
        self._is_over = validator.is_game_over(self.fen)
        self._is_checkmate = validator.is_checkmate(self.fen)
        self._is_draw = validator.is_draw(self.fen)

    @property
    def color_to_move(self) -> Color:
        return self.validator.turn_to_move(self.fen)

    @property
    def current_player_id(self) -> PlayerId:
        return self.players[self.color_to_move]

    @property
    def is_over(self) -> bool:
        return self._is_over

    @property
    def is_draw(self) -> bool:
        return self._is_draw

    @property
    def winner(self) -> Optional[PlayerId]:
        """
        Only checkmate has a winner.
        The side to move just got mated, so the opponent wins.
        """
        if not self._is_checkmate:
            return None
        loser_color = self.color_to_move
        winner_color = Color.WHITE if loser_color == Color.BLACK else Color.BLACK
        return self.players[winner_color]

    def apply_move(
        self, player_id: PlayerId, move: Optional[Mapping[str, Any]] = None
    ) -> None:
        """
        Attempt a move.
        ----

        `move` holds the squares in algebraic notation: {"from": "e2", "to": "e4"}, optionally with "promotion"
        (alternatively the full move as {"uci": "e2e4"}).
        """
        if self._is_over:
            raise GameStateError("The game is already over.")

        player_to_move = self.current_player_id
        if player_id != player_to_move:
            raise NotYourTurnError(
                f"It is not your turn. Waiting for player {player_to_move} to make a move first."
            )

        move_uci = self._parse_move(move)
        new_fen = self.validator.apply_move(self.fen, move_uci)

        # status of the new position is computed before anything gets stored
        is_over = self.validator.is_game_over(new_fen)
        is_checkmate = self.validator.is_checkmate(new_fen)
        is_draw = self.validator.is_draw(new_fen)

        self.fen = new_fen
        self.moves_uci.append(move_uci)
        self._is_over = is_over
        self._is_checkmate = is_checkmate
        self._is_draw = is_draw

    def remove_player(self, player_id: PlayerId) -> None:
        """Seats never change in chess. A departure is settled by the lobby, not by the board."""

    def get_state(self) -> ChessGameState:
        return ChessGameState(
            game_kind=self.kind.value,
            player_ids=list(self.player_ids),
            players={color.value: player for color, player in self.players.items()},
            fen=self.fen,
            turn=self.color_to_move.value,
            current_player_id=self.current_player_id,
            moves_uci=list(self.moves_uci),
            is_game_over=self._is_over,
            is_checkmate=self._is_checkmate,
            is_draw=self._is_draw,
            winner=self.winner,
        )

    def _parse_move(self, move: Optional[Mapping[str, Any]]) -> str:
        if not move:
            raise IllegalMoveError("A chess move needs a from and a to square.")
        if "uci" in move:
            return str(move["uci"]).strip().lower()
        if "from" not in move or "to" not in move:
            raise IllegalMoveError("A chess move needs a from and a to square.")
        return build_uci(str(move["from"]), str(move["to"]), move.get("promotion"))
