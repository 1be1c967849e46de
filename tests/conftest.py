"""
Pytest will auto-discover / import this file called 'conftest.py'.
This file defines fixtures/variables required for testing multiple layers.
"""

from decimal import Decimal
from typing import Any, Generator

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.db.schema import Base
from src.db.sql_repository import SQLLedgerRepository
from src.services.notifier import Connection

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)

STARTING_BALANCE = Decimal("10.00")


@pytest.fixture
def db_session_repo() -> Generator[Session, None, None]:
    """Connection to a test database. Tables are removed at teardown to make unit tests of repository independent of each other."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def ledger(db_session_repo: Session) -> SQLLedgerRepository:
    """Ledger with four funded players: alice, bob, carol and dave."""
    repo = SQLLedgerRepository(db_session_repo)
    for name in ["alice", "bob", "carol", "dave"]:
        repo.create_user(name, f"{name}@example.com", STARTING_BALANCE)
    return repo


class RecordingNotifier:
    """Mock the Notifier: keeps everything that would have been pushed to the players."""

    def __init__(self) -> None:
        self.sent: list[tuple[Connection, str, dict[str, Any]]] = []
        self.broadcasts: list[tuple[str, str, dict[str, Any]]] = []
        self.rooms: dict[str, set[str]] = {}

    def send_to(self, connection: Connection, event: str, payload: dict[str, Any]) -> None:
        self.sent.append((connection, event, payload))

    def broadcast_to(self, match_id: str, event: str, payload: dict[str, Any]) -> None:
        self.broadcasts.append((match_id, event, payload))

    def join_room(self, connection: Connection, match_id: str) -> None:
        self.rooms.setdefault(match_id, set()).add(connection.handle)

    def leave_room(self, connection: Connection, match_id: str) -> None:
        self.rooms.get(match_id, set()).discard(connection.handle)

    def sent_to(self, connection: Connection, event: str) -> list[dict[str, Any]]:
        """Payloads of a given event sent directly to one connection."""
        return [p for c, e, p in self.sent if c == connection and e == event]

    def broadcast_events(self, event: str) -> list[dict[str, Any]]:
        return [p for _, e, p in self.broadcasts if e == event]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def connections() -> dict[str, Connection]:
    return {
        name: Connection(handle=f"socket-{name}", user_id=name, email=f"{name}@example.com")
        for name in ["alice", "bob", "carol", "dave"]
    }
