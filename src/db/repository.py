"""Protocol repository for the ledger (balances, transactions, game results)."""

from decimal import Decimal
from typing import Callable, Optional, Protocol, TypeVar

from src.core.models import GameResultModel, PlayerId, TransactionModel

T = TypeVar("T")


class LedgerRepository(Protocol):
    """
    Persistence layer orchestration.

    Only run_atomic() commits. The other write methods are steps of a unit of work and are only
    made permanent once the unit passed to run_atomic() completes.
    """

    def run_atomic(self, unit_of_work: Callable[[], T]) -> T:
        """Run all steps in one transaction: commit if the unit returns, roll everything back if it raises."""
        ...

    def get_balance(self, user_id: PlayerId) -> Optional[Decimal]:
        """Current balance, None for an unknown user."""
        ...

    def debit(self, user_id: PlayerId, amount: Decimal) -> None: ...

    def credit(self, user_id: PlayerId, amount: Decimal) -> None: ...

    def record_transaction(
        self,
        user_id: PlayerId,
        kind: str,
        amount: Decimal,
        game_id: Optional[int] = None,
    ) -> int:
        """Store a transaction and return its ID."""
        ...

    def record_game_result(
        self,
        match_id: str,
        game_kind: str,
        winner_id: Optional[PlayerId],
        pot: Decimal,
        fee: Decimal,
    ) -> int:
        """Store the result of a match and return the new game ID."""
        ...

    def list_transactions(
        self, user_id: PlayerId, limit: int = 10
    ) -> list[TransactionModel]: ...

    def list_game_results(
        self, user_id: PlayerId, limit: int = 10
    ) -> list[GameResultModel]:
        """Results of the games the user put money into."""
        ...
