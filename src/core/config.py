"""
Deployment settings.

Every tunable value of the lobby (bet size, house fee, board layout, players per game) lives here.
Values are read from LOBBY_* environment variables, e.g. LOBBY_FEE_FRACTION=0.25
"""

import logging
import os
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, field_validator, model_validator

from src.core.exceptions import ConfigurationError
from src.core.shared_types import GameKind
from src.games.snakes_ladders import check_board_room

ENV_PREFIX = "LOBBY_"

# Two-player games never change size
TWO_PLAYER_KINDS = (GameKind.CHESS, GameKind.GRID)


class Settings(BaseModel):
    database_url: str = "sqlite:///lobby.sqlite3"
    bet_amount: Decimal = Decimal("1.00")
    fee_fraction: Decimal = Decimal("0.10")
    record_draws: bool = True
    players_per_game_race: int = 4
    race_min_players: int = 2
    race_max_players: int = 4
    race_board_size: int = 100
    race_ladders: int = 8
    race_snakes: int = 8
    log_level: str = "INFO"

    @field_validator("bet_amount")
    @classmethod
    def validate_bet_amount(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ConfigurationError(f"Bet amount must be positive. Got {value}.")
        return value

    @field_validator("fee_fraction")
    @classmethod
    def validate_fee_fraction(cls, value: Decimal) -> Decimal:
        if not (Decimal("0") <= value < Decimal("1")):
            raise ConfigurationError(
                f"Fee fraction must lie in [0, 1). Got {value}."
            )
        return value

    @field_validator("race_board_size")
    @classmethod
    def validate_board_size(cls, value: int) -> int:
        # smallest board that fits a single ladder (2 -> 12) next to the start and final squares
        if value < 13:
            raise ConfigurationError(f"Board size {value} is too small.")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ConfigurationError(f"Unknown log level: {value!r}")
        return level

    @model_validator(mode="after")
    def validate_race_player_count(self) -> Self:
        if not (2 <= self.race_min_players <= self.race_max_players):
            raise ConfigurationError(
                f"Invalid race player range: {self.race_min_players}..{self.race_max_players}"
            )
        if not (
            self.race_min_players <= self.players_per_game_race <= self.race_max_players
        ):
            raise ConfigurationError(
                f"Players per race game ({self.players_per_game_race}) outside {self.race_min_players}..{self.race_max_players}."
            )
        return self

    @model_validator(mode="after")
    def validate_race_board_room(self) -> Self:
        check_board_room(self.race_board_size, self.race_ladders, self.race_snakes)
        return self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Self:
        """Collect LOBBY_* variables. Anything not set falls back to the defaults above."""
        environ = os.environ if environ is None else environ
        values = {
            name: environ[f"{ENV_PREFIX}{name.upper()}"]
            for name in cls.model_fields
            if f"{ENV_PREFIX}{name.upper()}" in environ
        }
        return cls(**values)

    def players_per_game(self, kind: GameKind) -> int:
        """Size of the batch the matchmaker forms for this kind."""
        if kind in TWO_PLAYER_KINDS:
            return 2
        return self.players_per_game_race


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
