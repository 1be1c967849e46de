"""Implementation of (Ledger)Repository using SQLAlchemy"""

import threading
from decimal import Decimal
from typing import Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.core.exceptions import RepositoryError
from src.core.models import GameResultModel, PlayerId, TransactionModel
from src.db.schema import DBGameResult, DBTransaction, DBUser

T = TypeVar("T")


class SQLLedgerRepository:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        # one session for the whole process: units of work from different threads run one after another
        self._lock = threading.RLock()

    def run_atomic(self, unit_of_work: Callable[[], T]) -> T:
        """Single commit for the whole unit. Any exception rolls back every step and is re-raised."""
        with self._lock:
            try:
                result = unit_of_work()
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            return result

    def create_user(
        self, user_id: PlayerId, email: str, balance: Decimal = Decimal("0.00")
    ) -> None:
        """Open a ledger account (registration itself happens elsewhere)."""
        with self._lock:
            self.db.add(DBUser(id=user_id, email=email, balance=balance))
            self.db.commit()

    def get_balance(self, user_id: PlayerId) -> Optional[Decimal]:
        query = select(DBUser.balance).where(DBUser.id == user_id)
        with self._lock:
            return self.db.scalar(query)

    def debit(self, user_id: PlayerId, amount: Decimal) -> None:
        with self._lock:
            user = self._fetch_user(user_id)
            user.balance = user.balance - amount
            self.db.flush()

    def credit(self, user_id: PlayerId, amount: Decimal) -> None:
        with self._lock:
            user = self._fetch_user(user_id)
            user.balance = user.balance + amount
            self.db.flush()

    def record_transaction(
        self,
        user_id: PlayerId,
        kind: str,
        amount: Decimal,
        game_id: Optional[int] = None,
    ) -> int:
        transaction = DBTransaction(
            user_id=user_id, type=kind, amount=amount, game_id=game_id
        )
        with self._lock:
            self.db.add(transaction)
            self.db.flush()
            return transaction.id

    def record_game_result(
        self,
        match_id: str,
        game_kind: str,
        winner_id: Optional[PlayerId],
        pot: Decimal,
        fee: Decimal,
    ) -> int:
        result = DBGameResult(
            match_id=match_id,
            game_kind=game_kind,
            winner_id=winner_id,
            pot_amount=pot,
            app_fee=fee,
        )
        with self._lock:
            self.db.add(result)
            self.db.flush()
            return result.id

    def list_transactions(
        self, user_id: PlayerId, limit: int = 10
    ) -> list[TransactionModel]:
        query = (
            select(DBTransaction)
            .where(DBTransaction.user_id == user_id)
            .order_by(DBTransaction.created_at.desc(), DBTransaction.id.desc())
            .limit(limit)
        )
        with self._lock:
            return [self._to_transaction_model(row) for row in self.db.scalars(query)]

    def list_game_results(
        self, user_id: PlayerId, limit: int = 10
    ) -> list[GameResultModel]:
        linked_games = select(DBTransaction.game_id).where(
            DBTransaction.user_id == user_id, DBTransaction.game_id.is_not(None)
        )
        query = (
            select(DBGameResult)
            .where(DBGameResult.id.in_(linked_games))
            .order_by(DBGameResult.created_at.desc(), DBGameResult.id.desc())
            .limit(limit)
        )
        with self._lock:
            return [self._to_game_result_model(row) for row in self.db.scalars(query)]

    def _fetch_user(self, user_id: PlayerId) -> DBUser:
        user = self.db.get(DBUser, user_id)
        if user is None:
            raise RepositoryError(f"User with {user_id=} not found.")
        return user

    def _to_transaction_model(self, row: DBTransaction) -> TransactionModel:
        """Convert SQLAlchemy model to data transfer model."""
        return TransactionModel(
            id=row.id,
            user_id=row.user_id,
            type=row.type,
            amount=row.amount,
            game_id=row.game_id,
            created_at=row.created_at,
        )

    def _to_game_result_model(self, row: DBGameResult) -> GameResultModel:
        return GameResultModel(
            id=row.id,
            match_id=row.match_id,
            game_kind=row.game_kind,
            winner_id=row.winner_id,
            pot_amount=row.pot_amount,
            app_fee=row.app_fee,
            created_at=row.created_at,
        )
