"""Orchestration of the lobby: connections -> queues -> matches -> settlement (and the events sent along the way)."""

import logging
from random import Random
from typing import Optional

from pydantic import BaseModel

from src.api.models import (
    GameCancelledEvent,
    GameOverEvent,
    GameStartEvent,
    GameStateUpdateEvent,
    HistoryResponse,
    IllegalMoveEvent,
    JoinQueueRequest,
    MoveRequest,
    PlayerDisconnectedEvent,
    state_payload,
)
from src.core.config import Settings, configure_logging
from src.core.exceptions import (
    GameStateError,
    IllegalMoveError,
    InvalidRequestError,
    NotYourTurnError,
    SettlementError,
)
from src.core.models import GameState, SettlementResult, UserHistory
from src.core.shared_types import Event, GameKind
from src.db.database import build_session
from src.db.repository import LedgerRepository
from src.db.sql_repository import SQLLedgerRepository
from src.services.matchmaker import Match, Matchmaker, MatchRegistry
from src.services.notifier import Connection, Notifier
from src.services.settlement import SettlementCoordinator

logger = logging.getLogger(__name__)

SETTLEMENT_FAILED = "The match could not be settled. Please contact support."


class LobbyService:
    """Orchestration of layers for the game lobby."""

    def __init__(
        self,
        repository: LedgerRepository,
        notifier: Notifier,
        settings: Optional[Settings] = None,
        rng: Optional[Random] = None,
    ) -> None:
        self.repo = repository
        self.notifier = notifier
        self.settings = settings or Settings()
        self.settlement = SettlementCoordinator(repository, self.settings.record_draws)
        self.registry = MatchRegistry()
        self.matchmaker = Matchmaker(
            self.settings, self.settlement, notifier, self.registry, rng
        )
        self.connections: dict[str, Connection] = {}

    # -- Transport events ---
    def connect(self, connection: Connection) -> None:
        """An authenticated player connected."""
        self.connections[connection.handle] = connection
        logger.info("%s connected (%s)", connection.user_id, connection.handle)

    def join_queue(
        self, connection: Connection, request: JoinQueueRequest
    ) -> Optional[Match]:
        """Queue up for a game kind. Returns the match if this player completed a batch."""
        if connection.handle not in self.connections:
            raise InvalidRequestError("Connect before joining a queue.")
        self.matchmaker.enqueue(request.kind, connection)
        match = self.matchmaker.try_form_match(request.kind)
        if match is None:
            return None

        for member in match.connections:
            self.notifier.join_room(member, match.id)
        start = GameStartEvent(
            match_id=match.id, pot=match.pot, state=state_payload(match.engine.get_state())
        )
        self._broadcast(match, Event.GAME_START, start)
        return match

    def make_move(
        self, connection: Connection, request: Optional[MoveRequest] = None
    ) -> Optional[GameState]:
        """
        Apply a move for the player's match.
        ----

        A rejected move is only reported back to the player who made it, the match state stays as it was.
        Returns the new state of the game, or None when the move was rejected.
        """
        match = self.registry.match_for_player(connection.user_id)
        if match is None:
            self._send(
                connection,
                Event.ILLEGAL_MOVE,
                IllegalMoveEvent(reason="You are not playing a match."),
            )
            return None

        with match.lock:
            if match.is_terminal:
                self._send(
                    connection,
                    Event.ILLEGAL_MOVE,
                    IllegalMoveEvent(reason="The game is already over."),
                )
                return None

            move_args = request.to_move_args() if request is not None else None
            try:
                match.engine.apply_move(connection.user_id, move_args)
            except (NotYourTurnError, IllegalMoveError, GameStateError) as error:
                self._send(
                    connection, Event.ILLEGAL_MOVE, IllegalMoveEvent(reason=str(error))
                )
                return None

            state = match.engine.get_state()
            self._broadcast(
                match,
                Event.GAME_STATE_UPDATE,
                GameStateUpdateEvent(match_id=match.id, state=state_payload(state)),
            )
            if match.engine.is_over:
                self._finish(match)
            return state

    def disconnect(self, connection: Connection) -> None:
        """
        A player's connection dropped.
        ----

        0. Unknown handle (never connected, or already gone)? Nothing to do.
        1. Leave every queue.
        2. Leave the live set of the match (the roster stays), tell the others.
        3. One player left? They win by forfeit. Nobody left? The match is dropped without settlement.
        """
        if self.connections.pop(connection.handle, None) is None:
            logger.debug("Ignoring disconnect of unknown handle %s", connection.handle)
            return
        self.matchmaker.remove_from_all_queues(connection)
        logger.info("%s disconnected", connection.user_id)

        match = self.registry.match_for_player(connection.user_id)
        if match is None:
            return

        with match.lock:
            if match.is_terminal or connection.user_id not in match.live_players:
                return
            match.live_players.remove(connection.user_id)
            match.engine.remove_player(connection.user_id)
            self.registry.unbind_player(connection.user_id)
            self.notifier.leave_room(connection, match.id)

            notice = PlayerDisconnectedEvent(
                disconnected_id=connection.user_id,
                message=f"Player {connection.email or connection.user_id} left the match.",
            )
            self._broadcast(match, Event.PLAYER_DISCONNECTED, notice)

            if len(match.live_players) == 1:
                self._forfeit(match)
            elif not match.live_players:
                match.is_terminal = True
                self.registry.discard(match.id)
                logger.info("Match %s dropped: no players left", match.id)

    def user_history(self, user_id: str, limit: int = 10) -> HistoryResponse:
        """Latest transactions and games of a user."""
        history = UserHistory(
            user_id=user_id,
            transactions=self.repo.list_transactions(user_id, limit),
            games=self.repo.list_game_results(user_id, limit),
        )
        return HistoryResponse.from_model(history)

    def get_match_state(self, match_id: str) -> GameState:
        """Raises MatchNotFoundError once the match is over."""
        return self.registry.get(match_id).engine.get_state()

    # -- Internal helpers --
    def _finish(self, match: Match) -> None:
        """The engine reached a terminal state: pay out (or record the draw) and close the match."""
        match.is_terminal = True
        self.registry.discard(match.id)
        winner = match.engine.winner
        try:
            if winner is not None:
                result = self.settlement.settle_win(
                    match.id,
                    winner,
                    match.pot,
                    self.settings.fee_fraction,
                    match.game_kind.value,
                )
            else:
                result = self.settlement.settle_draw(
                    match.id, match.pot, match.game_kind.value
                )
        except SettlementError:
            self._cancel(match)
            return
        if winner is None:
            reason = "draw"
        elif match.game_kind == GameKind.CHESS:
            reason = "checkmate"
        else:
            reason = "win"
        self._announce_game_over(match, result, reason)

    def _forfeit(self, match: Match) -> None:
        match.is_terminal = True
        self.registry.discard(match.id)
        remaining = match.live_players[0]
        try:
            result = self.settlement.settle_forfeit(
                match.id,
                remaining,
                match.pot,
                self.settings.fee_fraction,
                match.game_kind.value,
            )
        except SettlementError:
            self._cancel(match)
            return
        self._announce_game_over(match, result, "forfeit")

    def _announce_game_over(
        self, match: Match, result: SettlementResult, reason: str
    ) -> None:
        event = GameOverEvent(
            match_id=match.id,
            state=state_payload(match.engine.get_state()),
            winner=result.winner_id,
            prize=result.prize if result.winner_id else None,
            new_balance=result.new_balance,
            reason=reason,
        )
        self._broadcast(match, Event.GAME_OVER, event)
        self._close_room(match)

    def _cancel(self, match: Match) -> None:
        logger.error("Match %s cancelled after a failed settlement", match.id)
        self._broadcast(
            match, Event.GAME_CANCELLED, GameCancelledEvent(reason=SETTLEMENT_FAILED)
        )
        self._close_room(match)

    def _close_room(self, match: Match) -> None:
        for player in match.live_players:
            connection = match.connection_of(player)
            if connection is not None:
                self.notifier.leave_room(connection, match.id)

    def _broadcast(self, match: Match, event: Event, payload: BaseModel) -> None:
        self.notifier.broadcast_to(match.id, event, payload.model_dump(mode="json"))

    def _send(self, connection: Connection, event: Event, payload: BaseModel) -> None:
        self.notifier.send_to(connection, event, payload.model_dump(mode="json"))


def create_lobby(notifier: Notifier, settings: Optional[Settings] = None) -> LobbyService:
    """Wire the lobby to the database configured in the settings."""
    settings = settings or Settings.from_env()
    configure_logging(settings)
    repository = SQLLedgerRepository(build_session(settings))
    return LobbyService(repository, notifier, settings)
