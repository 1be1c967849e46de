"""
Money movements of a match.

Each public method is exactly one unit of work on the ledger: all of its steps land, or none do.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from src.core.exceptions import InsufficientFundsError, RepositoryError, SettlementError
from src.core.models import PlayerId, SettlementResult
from src.core.shared_types import TransactionType
from src.db.repository import LedgerRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")
CENT = Decimal("0.01")


def split_pot(pot: Decimal, fee_fraction: Decimal) -> tuple[Decimal, Decimal]:
    """(prize, fee). Prize is rounded to cents, the fee takes the remainder so nothing gets lost."""
    prize = (pot * (Decimal("1") - fee_fraction)).quantize(CENT, rounding=ROUND_HALF_UP)
    return prize, pot - prize


class SettlementCoordinator:
    """Entry fees at match formation, prize money at the end."""

    def __init__(self, repository: LedgerRepository, record_draws: bool = True) -> None:
        self.repo = repository
        self.record_draws = record_draws

    def collect_entry_fees(
        self, player_ids: list[PlayerId], bet_amount: Decimal
    ) -> Decimal:
        """
        Debit the bet from every player of the batch and return the pot.
        ----

        All balances are checked before the first debit: if a single player cannot pay, nobody pays.
        """

        def unit() -> Decimal:
            short = [
                player
                for player in player_ids
                if (balance := self.repo.get_balance(player)) is None
                or balance < bet_amount
            ]
            if short:
                raise InsufficientFundsError(
                    f"Not every player can cover the bet of {bet_amount}."
                )
            for player in player_ids:
                self.repo.debit(player, bet_amount)
                self.repo.record_transaction(player, TransactionType.BET, -bet_amount)
            return bet_amount * len(player_ids)

        pot = self._run(unit)
        logger.info("Collected %s from %s (pot %s)", bet_amount, player_ids, pot)
        return pot

    def settle_win(
        self,
        match_id: str,
        winner_id: PlayerId,
        pot: Decimal,
        fee_fraction: Decimal,
        game_kind: str = "",
    ) -> SettlementResult:
        """Record the result, pay the prize to the winner and return the winner's new balance."""
        prize, fee = split_pot(pot, fee_fraction)

        def unit() -> SettlementResult:
            game_id = self.repo.record_game_result(
                match_id, game_kind, winner_id, pot, fee
            )
            self.repo.credit(winner_id, prize)
            self.repo.record_transaction(winner_id, TransactionType.WIN, prize, game_id)
            new_balance = self.repo.get_balance(winner_id)
            return SettlementResult(
                match_id=match_id,
                winner_id=winner_id,
                pot=pot,
                prize=prize,
                fee=fee,
                game_result_id=game_id,
                new_balance=new_balance,
            )

        result = self._run(unit)
        logger.info(
            "Match %s settled: %s wins %s (fee %s)", match_id, winner_id, prize, fee
        )
        return result

    def settle_forfeit(
        self,
        match_id: str,
        remaining_player_id: PlayerId,
        pot: Decimal,
        fee_fraction: Decimal,
        game_kind: str = "",
    ) -> SettlementResult:
        """Everybody else left: the last player standing is paid as the winner."""
        logger.info("Match %s forfeited to %s", match_id, remaining_player_id)
        return self.settle_win(
            match_id, remaining_player_id, pot, fee_fraction, game_kind
        )

    def settle_draw(
        self, match_id: str, pot: Decimal, game_kind: str = ""
    ) -> SettlementResult:
        """No balance changes and no fee. The result is only kept for history if configured."""
        zero = Decimal("0.00")

        def unit() -> SettlementResult:
            game_id = None
            if self.record_draws:
                game_id = self.repo.record_game_result(
                    match_id, game_kind, None, pot, zero
                )
            return SettlementResult(
                match_id=match_id,
                winner_id=None,
                pot=pot,
                prize=zero,
                fee=zero,
                game_result_id=game_id,
                new_balance=None,
            )

        result = self._run(unit)
        logger.info("Match %s ended in a draw", match_id)
        return result

    def _run(self, unit: Callable[[], T]) -> T:
        try:
            return self.repo.run_atomic(unit)
        except (SQLAlchemyError, RepositoryError) as error:
            logger.exception("Ledger unit of work rolled back")
            raise SettlementError("Settlement failed. No funds were moved.") from error
