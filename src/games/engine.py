"""
Shared contract of the game engines and the factory that selects an engine by game kind.

The service layer only ever talks to an engine through the GameEngine protocol:
construct it from the ordered list of players, apply moves, read snapshots.
"""

from random import Random
from typing import Any, Callable, Mapping, Optional, Protocol

from src.core.config import Settings
from src.core.exceptions import InvalidPlayerCountError, UnknownGameKindError
from src.core.models import GameState, PlayerId
from src.core.shared_types import GameKind
from src.games.chess_game import ChessGame
from src.games.chess_rules import PythonChessValidator
from src.games.snakes_ladders import SnakesAndLadders, generate_board
from src.games.tic_tac_toe import TicTacToe

Move = Optional[Mapping[str, Any]]


class GameEngine(Protocol):
    """One state machine per game kind."""

    kind: GameKind
    player_ids: list[PlayerId]

    def apply_move(self, player_id: PlayerId, move: Move = None) -> None:
        """Validate turn ownership and legality, then mutate state. Raises on rejection without changing state."""
        ...

    def get_state(self) -> GameState:
        """Full snapshot for rendering. No side effects."""
        ...

    def remove_player(self, player_id: PlayerId) -> None:
        """Take a disconnected player out of the turn rotation (roster stays the same)."""
        ...

    @property
    def is_over(self) -> bool: ...

    @property
    def winner(self) -> Optional[PlayerId]: ...

    @property
    def is_draw(self) -> bool: ...


def _create_race(
    player_ids: list[PlayerId], settings: Settings, rng: Optional[Random]
) -> SnakesAndLadders:
    rng = rng or Random()
    tiles = generate_board(
        board_size=settings.race_board_size,
        ladders=settings.race_ladders,
        snakes=settings.race_snakes,
        rng=rng,
    )
    return SnakesAndLadders(
        player_ids,
        board_size=settings.race_board_size,
        special_tiles=tiles,
        min_players=settings.race_min_players,
        max_players=settings.race_max_players,
        rng=rng,
    )


def _create_chess(
    player_ids: list[PlayerId], settings: Settings, rng: Optional[Random]
) -> ChessGame:
    return ChessGame(player_ids, validator=PythonChessValidator())


def _create_grid(
    player_ids: list[PlayerId], settings: Settings, rng: Optional[Random]
) -> TicTacToe:
    return TicTacToe(player_ids)


ENGINE_FACTORIES: dict[
    GameKind, Callable[[list[PlayerId], Settings, Optional[Random]], GameEngine]
] = {
    GameKind.RACE: _create_race,
    GameKind.CHESS: _create_chess,
    GameKind.GRID: _create_grid,
}


def parse_game_kind(value: str) -> GameKind:
    """Map the tag sent by a client onto a GameKind."""
    try:
        return GameKind(value)
    except ValueError:
        raise UnknownGameKindError(
            f"Unknown game kind: {value!r}. Pick one from {', '.join(GameKind)}"
        ) from None


def create_game(
    kind: GameKind | str,
    player_ids: list[PlayerId],
    settings: Settings,
    rng: Optional[Random] = None,
) -> GameEngine:
    """Construct the engine for the given kind. Raises InvalidPlayerCountError for a wrong number of players."""
    game_kind = parse_game_kind(kind)
    if len(set(player_ids)) != len(player_ids):
        raise InvalidPlayerCountError(f"Duplicate players in {player_ids}.")
    return ENGINE_FACTORIES[game_kind](list(player_ids), settings, rng)
