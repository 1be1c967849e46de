"""
Snakes and ladders: the dice "race" game of the lobby.

Board generation happens once, when the match is created. After that a turn is simply:
roll one die -> move forward -> take at most one snake/ladder -> check for the win.
"""

from copy import deepcopy
from random import Random
from typing import Any, Mapping, Optional

from src.core.exceptions import (
    ConfigurationError,
    GameStateError,
    InvalidPlayerCountError,
    NotYourTurnError,
)
from src.core.models import PlayerId, RaceGameState, Square
from src.core.shared_types import GameKind

START_SQUARE = 1
DEFAULT_BOARD_SIZE = 100
MIN_TILE_SPAN = 10
MAX_GENERATION_ATTEMPTS = 10_000
DICE_FACES = 6


def check_board_room(
    board_size: int, ladders: int, snakes: int, min_span: int = MIN_TILE_SPAN
) -> None:
    """Raise ConfigurationError when the tiles cannot possibly fit between the start and final squares."""
    if ladders < 0 or snakes < 0:
        raise ConfigurationError(
            f"Tile counts cannot be negative. Got {ladders} ladders and {snakes} snakes."
        )
    lowest = START_SQUARE + 1
    highest = board_size - 1
    if (ladders or snakes) and highest - lowest < min_span:
        raise ConfigurationError(
            f"Board of size {board_size} has no room for tiles spanning {min_span} squares."
        )
    # every tile needs two squares of its own
    if 2 * (ladders + snakes) > highest - lowest + 1:
        raise ConfigurationError(
            f"Board of size {board_size} cannot hold {ladders} ladders and {snakes} snakes."
        )


def generate_board(
    board_size: int = DEFAULT_BOARD_SIZE,
    ladders: int = 8,
    snakes: int = 8,
    rng: Optional[Random] = None,
    min_span: int = MIN_TILE_SPAN,
    max_attempts: int = MAX_GENERATION_ATTEMPTS,
) -> dict[Square, Square]:
    """
    Place the snakes and ladders by rejection sampling.
    ----

    **a candidate tile is rejected if**

    * its source or destination is already used by another tile.
    * it would touch the start square or the final square.

    Ladders go up by at least `min_span` squares, snakes go down by at least `min_span` squares.
    Raises ConfigurationError instead of looping forever when the tiles do not fit on the board.
    """
    rng = rng or Random()
    check_board_room(board_size, ladders, snakes, min_span)
    lowest = START_SQUARE + 1
    highest = board_size - 1

    tiles: dict[Square, Square] = {}
    used: set[Square] = set()
    attempts = 0
    for is_ladder, count in ((True, ladders), (False, snakes)):
        placed = 0
        while placed < count:
            attempts += 1
            if attempts > max_attempts:
                raise ConfigurationError(
                    f"Gave up placing tiles after {max_attempts} attempts (board size {board_size})."
                )
            if is_ladder:
                source = rng.randint(lowest, highest - min_span)
                destination = source + rng.randint(min_span, highest - source)
            else:
                source = rng.randint(lowest + min_span, highest)
                destination = source - rng.randint(min_span, source - lowest)

            if source in used or destination in used:
                continue
            tiles[source] = destination
            used.update((source, destination))
            placed += 1

    return tiles


def validate_tiles(
    tiles: Mapping[Square, Square], board_size: int, min_span: int = MIN_TILE_SPAN
) -> None:
    """Check a hand-made tile layout against the same rules the generator follows."""
    seen: set[Square] = set()
    for source, destination in tiles.items():
        for square in (source, destination):
            if not (START_SQUARE < square < board_size):
                raise ConfigurationError(
                    f"Tile {source}->{destination} uses square {square} outside 2..{board_size - 1}."
                )
            if square in seen:
                raise ConfigurationError(f"Square {square} is used by more than one tile.")
            seen.add(square)
        if abs(destination - source) < min_span:
            raise ConfigurationError(
                f"Tile {source}->{destination} spans less than {min_span} squares."
            )


class SnakesAndLadders:
    """State machine of one snakes and ladders match."""

    kind = GameKind.RACE

    def __init__(
        self,
        player_ids: list[PlayerId],
        board_size: int = DEFAULT_BOARD_SIZE,
        special_tiles: Optional[Mapping[Square, Square]] = None,
        min_players: int = 2,
        max_players: int = 4,
        rng: Optional[Random] = None,
    ) -> None:
        if not (min_players <= len(player_ids) <= max_players):
            raise InvalidPlayerCountError(
                f"Snakes and ladders needs {min_players} to {max_players} players. Got {len(player_ids)}."
            )
        self._rng = rng or Random()
        if special_tiles is None:
            special_tiles = generate_board(board_size, rng=self._rng)
        else:
            validate_tiles(special_tiles, board_size)

        self.player_ids = list(player_ids)
        self.active_players = list(player_ids)
        self.board_size = board_size
        self.special_tiles: dict[Square, Square] = dict(special_tiles)
        self.positions: dict[PlayerId, Square] = {p: START_SQUARE for p in player_ids}
        self.current_index = 0
        self.last_roll: Optional[int] = None
        self._winner: Optional[PlayerId] = None

    @property
    def winner(self) -> Optional[PlayerId]:
        return self._winner

    @property
    def is_over(self) -> bool:
        return self._winner is not None

    @property
    def is_draw(self) -> bool:
        return False

    @property
    def current_player_id(self) -> Optional[PlayerId]:
        if not self.active_players:
            return None
        return self.player_ids[self.current_index]

    def apply_move(
        self, player_id: PlayerId, move: Optional[Mapping[str, Any]] = None
    ) -> None:
        """
        Roll the die for the player holding the turn. (A move carries no arguments in this game.)
        ---

        1. Landing beyond the final square: stay put.
        2. Landing on a snake/ladder: follow it, once.
        3. Landing exactly on the final square: win (turn stays with the winner).
        """
        if self.is_over:
            raise GameStateError("The game is already over.")
        self._assert_your_turn(player_id)

        roll = self._roll_dice()
        position = self.positions[player_id]
        target = position + roll
        if target <= self.board_size:
            # NOTE single hop: the destination of a tile is not checked for another tile
            position = self.special_tiles.get(target, target)

        self.last_roll = roll
        self.positions[player_id] = position
        if position == self.board_size:
            self._winner = player_id
        else:
            self._advance_turn()

    def remove_player(self, player_id: PlayerId) -> None:
        if player_id not in self.active_players:
            return
        had_turn = self.current_player_id == player_id
        self.active_players.remove(player_id)
        if had_turn and self.active_players and not self.is_over:
            self._advance_turn()

    def get_state(self) -> RaceGameState:
        return RaceGameState(
            game_kind=self.kind.value,
            player_ids=list(self.player_ids),
            active_players=list(self.active_players),
            positions=deepcopy(self.positions),
            current_player_id=self.current_player_id,
            last_roll=self.last_roll,
            winner=self._winner,
            board_size=self.board_size,
            special_tiles=dict(self.special_tiles),
            is_game_over=self.is_over,
        )

    # -- PRIVATE HELPERS ---
    def _roll_dice(self) -> int:
        return self._rng.randint(1, DICE_FACES)

    def _assert_your_turn(self, player_id: PlayerId) -> None:
        turn_player = self.current_player_id
        if player_id != turn_player:
            raise NotYourTurnError(
                f"It is not your turn. Waiting for player {turn_player} to roll first."
            )

    def _advance_turn(self) -> None:
        """Round robin over the roster, skipping players who left."""
        count = len(self.player_ids)
        for step in range(1, count + 1):
            index = (self.current_index + step) % count
            if self.player_ids[index] in self.active_players:
                self.current_index = index
                return
