"""Unit tests for src/services/lobby_service.py"""

from decimal import Decimal
from random import Random
from unittest.mock import patch

import pytest
from conftest import RecordingNotifier

from src.api.models import (
    ChessMoveRequest,
    GridMoveRequest,
    JoinQueueRequest,
    RollRequest,
)
from src.core.config import Settings
from src.core.exceptions import InvalidRequestError, MatchNotFoundError, SettlementError
from src.core.shared_types import Event, GameKind
from src.db.sql_repository import SQLLedgerRepository
from src.games.tic_tac_toe import TicTacToe
from src.services.lobby_service import LobbyService, create_lobby
from src.services.matchmaker import Match
from src.services.notifier import Connection

GRID = JoinQueueRequest(game_kind="tic_tac_toe")
CHESS = JoinQueueRequest(game_kind="chess")
RACE = JoinQueueRequest(game_kind="snakes_and_ladders")


@pytest.fixture
def service(ledger: SQLLedgerRepository, notifier: RecordingNotifier) -> LobbyService:
    return LobbyService(ledger, notifier, Settings(), Random(5))


def start_grid_match(service: LobbyService, connections: dict[str, Connection]) -> Match:
    alice, bob = connections["alice"], connections["bob"]
    service.connect(alice)
    service.connect(bob)
    assert service.join_queue(alice, GRID) is None
    match = service.join_queue(bob, GRID)
    assert match is not None
    return match


def mark(service: LobbyService, connection: Connection, cell: int) -> None:
    service.make_move(connection, GridMoveRequest(cell=cell))


# --- MATCH START ---
def test_match_start_is_broadcast(
    service: LobbyService,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    match = start_grid_match(service, connections)

    starts = notifier.broadcast_events(Event.GAME_START)
    assert len(starts) == 1
    assert starts[0]["match_id"] == match.id
    assert starts[0]["pot"] == "2.00"
    assert starts[0]["state"]["current_player_id"] == "alice"
    assert notifier.rooms[match.id] == {"socket-alice", "socket-bob"}


# --- MOVES ---
def test_full_game_pays_the_winner(
    service: LobbyService,
    ledger: SQLLedgerRepository,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    """Default settings: bet 1.00, fee 10% -> pot 2.00, prize 1.80."""
    alice, bob = connections["alice"], connections["bob"]
    match = start_grid_match(service, connections)

    for connection, cell in [(alice, 0), (bob, 3), (alice, 1), (bob, 4), (alice, 2)]:
        mark(service, connection, cell)

    assert len(notifier.broadcast_events(Event.GAME_STATE_UPDATE)) == 5
    game_over = notifier.broadcast_events(Event.GAME_OVER)
    assert len(game_over) == 1
    assert game_over[0]["winner"] == "alice"
    assert game_over[0]["prize"] == "1.80"
    assert game_over[0]["new_balance"] == "10.80"
    assert game_over[0]["reason"] == "win"

    assert ledger.get_balance("alice") == Decimal("10.80")
    assert ledger.get_balance("bob") == Decimal("9.00")
    assert match.id not in service.registry
    with pytest.raises(MatchNotFoundError):
        service.get_match_state(match.id)


def test_no_moves_after_match_is_over(
    service: LobbyService,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    start_grid_match(service, connections)
    for connection, cell in [(alice, 0), (bob, 3), (alice, 1), (bob, 4), (alice, 2)]:
        mark(service, connection, cell)

    assert service.make_move(bob, GridMoveRequest(cell=8)) is None
    assert notifier.sent_to(bob, Event.ILLEGAL_MOVE)[-1]["reason"]
    assert len(notifier.broadcast_events(Event.GAME_STATE_UPDATE)) == 5


def test_rejected_move_only_reaches_the_mover(
    service: LobbyService,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    match = start_grid_match(service, connections)
    before = match.engine.get_state()

    assert service.make_move(bob, GridMoveRequest(cell=4)) is None

    rejections = notifier.sent_to(bob, Event.ILLEGAL_MOVE)
    assert len(rejections) == 1
    assert "not your turn" in rejections[0]["reason"]
    assert notifier.sent_to(alice, Event.ILLEGAL_MOVE) == []
    assert notifier.broadcast_events(Event.GAME_STATE_UPDATE) == []
    assert match.engine.get_state() == before


def test_occupied_cell_is_reported(
    service: LobbyService,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    start_grid_match(service, connections)
    mark(service, alice, 4)
    assert service.make_move(bob, GridMoveRequest(cell=4)) is None
    assert "taken" in notifier.sent_to(bob, Event.ILLEGAL_MOVE)[0]["reason"]


def test_draw_keeps_the_pot_without_fee(
    service: LobbyService,
    ledger: SQLLedgerRepository,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    start_grid_match(service, connections)

    with patch.object(
        service.settlement, "settle_draw", wraps=service.settlement.settle_draw
    ) as settle_draw:
        for index, cell in enumerate([0, 1, 2, 4, 3, 5, 7, 6, 8]):
            mark(service, alice if index % 2 == 0 else bob, cell)

    settle_draw.assert_called_once()
    game_over = notifier.broadcast_events(Event.GAME_OVER)[0]
    assert game_over["winner"] is None
    assert game_over["reason"] == "draw"
    assert ledger.get_balance("alice") == Decimal("9.00")
    assert ledger.get_balance("bob") == Decimal("9.00")


def test_chess_checkmate_through_the_lobby(
    service: LobbyService,
    ledger: SQLLedgerRepository,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    service.connect(alice)
    service.connect(bob)
    service.join_queue(alice, CHESS)
    service.join_queue(bob, CHESS)

    for connection, (from_square, to_square) in [
        (alice, ("f2", "f3")),
        (bob, ("e7", "e5")),
        (alice, ("g2", "g4")),
        (bob, ("d8", "h4")),
    ]:
        service.make_move(
            connection, ChessMoveRequest(from_square=from_square, to_square=to_square)
        )

    game_over = notifier.broadcast_events(Event.GAME_OVER)
    assert len(game_over) == 1
    assert game_over[0]["winner"] == "bob"
    assert game_over[0]["reason"] == "checkmate"
    assert game_over[0]["state"]["is_checkmate"]
    assert ledger.get_balance("bob") == Decimal("10.80")


def test_settlement_failure_cancels_the_match(
    service: LobbyService,
    ledger: SQLLedgerRepository,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    match = start_grid_match(service, connections)

    with patch.object(
        service.settlement, "settle_win", side_effect=SettlementError("boom")
    ):
        for connection, cell in [(alice, 0), (bob, 3), (alice, 1), (bob, 4), (alice, 2)]:
            mark(service, connection, cell)

    assert notifier.broadcast_events(Event.GAME_OVER) == []
    cancelled = notifier.broadcast_events(Event.GAME_CANCELLED)
    assert len(cancelled) == 1
    # no internal details leak to the players
    assert "boom" not in cancelled[0]["reason"]
    assert match.id not in service.registry
    assert ledger.get_balance("alice") == Decimal("9.00")


# --- DISCONNECTS ---
def test_disconnect_while_queued(
    service: LobbyService, connections: dict[str, Connection]
) -> None:
    alice = connections["alice"]
    service.connect(alice)
    service.join_queue(alice, RACE)
    service.disconnect(alice)
    assert service.matchmaker.queued_kind("alice") is None
    assert "socket-alice" not in service.connections


def test_queueing_needs_a_connection(
    service: LobbyService, connections: dict[str, Connection]
) -> None:
    with pytest.raises(InvalidRequestError):
        service.join_queue(connections["alice"], GRID)
    assert service.matchmaker.queued_kind("alice") is None


def test_disconnect_of_stale_handle_leaves_the_match_alone(
    service: LobbyService,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    match = start_grid_match(service, connections)
    stale = Connection(handle="socket-alice-old", user_id="alice")

    service.disconnect(stale)

    assert match.live_players == ["alice", "bob"]
    assert match.id in service.registry
    assert notifier.broadcast_events(Event.PLAYER_DISCONNECTED) == []


def test_disconnect_to_one_player_is_a_forfeit(
    service: LobbyService,
    ledger: SQLLedgerRepository,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    match = start_grid_match(service, connections)

    with patch.object(
        service.settlement, "settle_forfeit", wraps=service.settlement.settle_forfeit
    ) as settle_forfeit, patch.object(
        service.registry, "discard", wraps=service.registry.discard
    ) as discard:
        service.disconnect(alice)

    settle_forfeit.assert_called_once()
    discard.assert_called_once_with(match.id)

    notices = notifier.broadcast_events(Event.PLAYER_DISCONNECTED)
    assert notices[0]["disconnected_id"] == "alice"
    game_over = notifier.broadcast_events(Event.GAME_OVER)
    assert game_over[0]["winner"] == "bob"
    assert game_over[0]["reason"] == "forfeit"
    assert ledger.get_balance("bob") == Decimal("10.80")
    assert ledger.get_balance("alice") == Decimal("9.00")

    # the winner cannot play on, the loser cannot come back to the match
    assert service.make_move(bob, GridMoveRequest(cell=0)) is None
    assert match.id not in service.registry


def test_disconnect_to_zero_players_drops_the_match(
    service: LobbyService,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    match = Match(
        id="lonely-match",
        game_kind=GameKind.GRID,
        connections=[alice, bob],
        engine=TicTacToe(["alice", "bob"]),
        pot=Decimal("2.00"),
        live_players=["alice"],
    )
    service.registry.add(match)
    service.connect(alice)

    with patch.object(service.settlement, "settle_forfeit") as settle_forfeit, patch.object(
        service.settlement, "settle_win"
    ) as settle_win:
        service.disconnect(alice)

    settle_forfeit.assert_not_called()
    settle_win.assert_not_called()
    assert "lonely-match" not in service.registry
    assert notifier.broadcast_events(Event.GAME_OVER) == []


def test_race_game_continues_without_the_departed(
    service: LobbyService,
    notifier: RecordingNotifier,
    connections: dict[str, Connection],
) -> None:
    players = [connections[name] for name in ["alice", "bob", "carol", "dave"]]
    for connection in players:
        service.connect(connection)
        match = service.join_queue(connection, RACE)
    assert match is not None
    alice, bob, carol, dave = players

    service.disconnect(bob)

    assert match.id in service.registry
    assert match.live_players == ["alice", "carol", "dave"]
    assert match.player_ids == ["alice", "bob", "carol", "dave"]
    assert notifier.broadcast_events(Event.PLAYER_DISCONNECTED)[0]["disconnected_id"] == "bob"

    service.make_move(alice, RollRequest())
    assert match.engine.get_state().current_player_id == "carol"
    assert service.make_move(bob, RollRequest()) is None

    service.disconnect(carol)
    service.disconnect(dave)
    game_over = notifier.broadcast_events(Event.GAME_OVER)
    assert len(game_over) == 1
    assert game_over[0]["winner"] == "alice"
    assert game_over[0]["prize"] == "3.60"
    assert match.id not in service.registry


def test_second_disconnect_of_same_player_is_ignored(
    service: LobbyService, connections: dict[str, Connection]
) -> None:
    players = [connections[name] for name in ["alice", "bob", "carol", "dave"]]
    for connection in players:
        service.connect(connection)
        match = service.join_queue(connection, RACE)
    assert match is not None

    service.disconnect(players[1])
    service.disconnect(players[1])
    assert match.live_players == ["alice", "carol", "dave"]


# --- HISTORY ---
def test_user_history(
    service: LobbyService, connections: dict[str, Connection]
) -> None:
    alice, bob = connections["alice"], connections["bob"]
    start_grid_match(service, connections)
    for connection, cell in [(alice, 0), (bob, 3), (alice, 1), (bob, 4), (alice, 2)]:
        mark(service, connection, cell)

    history = service.user_history("alice")
    assert history.user_id == "alice"
    assert [t.type for t in history.transactions] == ["win", "bet"]
    assert len(history.games) == 1
    assert history.games[0].winner_id == "alice"
    assert history.games[0].game_kind == "tic_tac_toe"

    loser_history = service.user_history("bob")
    assert [t.type for t in loser_history.transactions] == ["bet"]


# --- WIRING ---
def test_create_lobby_uses_configured_database(notifier: RecordingNotifier) -> None:
    lobby = create_lobby(notifier, Settings(database_url="sqlite:///:memory:"))
    assert isinstance(lobby.repo, SQLLedgerRepository)
    lobby.repo.create_user("erin", "erin@example.com", Decimal("1.00"))
    assert lobby.repo.get_balance("erin") == Decimal("1.00")
