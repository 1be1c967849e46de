"""Database tables / schema"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# DECIMAL(10, 2): money is stored in cents precision
Money = Numeric(10, 2)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DBUser(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"))
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBGameResult(Base):
    __tablename__ = "game_results"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    match_id: Mapped[str] = mapped_column(String(64))
    game_kind: Mapped[str] = mapped_column(String(32))
    winner_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"))
    pot_amount: Mapped[Decimal] = mapped_column(Money)
    app_fee: Mapped[Decimal] = mapped_column(Money)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBTransaction(Base):
    __tablename__ = "transactions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"))
    type: Mapped[str] = mapped_column(String(16))
    amount: Mapped[Decimal] = mapped_column(Money)
    game_id: Mapped[Optional[int]] = mapped_column(ForeignKey("game_results.id"))
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
