"""
Matchmaking: per game kind FIFO waiting queues, and the registry of matches in progress.

A batch leaves the front of a queue only together with its entry fees. If the fees cannot be collected
the whole batch goes back to the front of the queue, in the same order.
"""

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from random import Random
from typing import Optional
from uuid import uuid4

from src.api.models import GameCancelledEvent, QueueUpdateEvent
from src.core.config import Settings
from src.core.exceptions import (
    GameStateError,
    InsufficientFundsError,
    MatchNotFoundError,
    SettlementError,
)
from src.core.models import PlayerId
from src.core.shared_types import Event, GameKind
from src.games.engine import GameEngine, create_game, parse_game_kind
from src.services.notifier import Connection, Notifier
from src.services.settlement import SettlementCoordinator

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Match:
    """A game in progress between a fixed set of players, with its pot."""

    id: str
    game_kind: GameKind
    connections: list[Connection]
    engine: GameEngine
    pot: Decimal
    live_players: list[PlayerId] = field(default_factory=list)
    is_terminal: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock)

    def __post_init__(self) -> None:
        if not self.live_players:
            self.live_players = [c.user_id for c in self.connections]

    @property
    def player_ids(self) -> list[PlayerId]:
        """Original roster. Never shrinks."""
        return [c.user_id for c in self.connections]

    def connection_of(self, player_id: PlayerId) -> Optional[Connection]:
        return next((c for c in self.connections if c.user_id == player_id), None)


class MatchRegistry:
    """Active matches, by ID and by player."""

    def __init__(self) -> None:
        self._matches: dict[str, Match] = {}
        self._by_player: dict[PlayerId, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._matches)

    def __contains__(self, match_id: str) -> bool:
        return match_id in self._matches

    def add(self, match: Match) -> None:
        with self._lock:
            self._matches[match.id] = match
            for player in match.player_ids:
                self._by_player[player] = match.id

    def get(self, match_id: str) -> Match:
        with self._lock:
            match = self._matches.get(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match with {match_id=} not found.")
        return match

    def match_for_player(self, player_id: PlayerId) -> Optional[Match]:
        with self._lock:
            match_id = self._by_player.get(player_id)
            return self._matches.get(match_id) if match_id else None

    def unbind_player(self, player_id: PlayerId) -> None:
        with self._lock:
            self._by_player.pop(player_id, None)

    def discard(self, match_id: str) -> Optional[Match]:
        with self._lock:
            match = self._matches.pop(match_id, None)
            if match is None:
                return None
            for player in match.player_ids:
                if self._by_player.get(player) == match_id:
                    del self._by_player[player]
            return match


class Matchmaker:
    """Owns the waiting queues. Forms matches once enough players wait for the same game kind."""

    def __init__(
        self,
        settings: Settings,
        settlement: SettlementCoordinator,
        notifier: Notifier,
        registry: MatchRegistry,
        rng: Optional[Random] = None,
    ) -> None:
        self.settings = settings
        self.settlement = settlement
        self.notifier = notifier
        self.registry = registry
        self.rng = rng
        self.queues: dict[GameKind, list[Connection]] = {kind: [] for kind in GameKind}
        # held while a batch is out of its queue waiting for the fee collection
        self._lock = threading.RLock()

    def required_players(self, game_kind: GameKind) -> int:
        return self.settings.players_per_game(game_kind)

    def queued_kind(self, player_id: PlayerId) -> Optional[GameKind]:
        with self._lock:
            for kind, queue in self.queues.items():
                if any(c.user_id == player_id for c in queue):
                    return kind
            return None

    def enqueue(self, game_kind: GameKind | str, connection: Connection) -> int:
        """
        Put a player at the back of the queue for this kind and return the new queue size.
        ----

        A player waits in one queue at most: joining another kind leaves the previous queue.
        Every player waiting for the kind gets the new queue size.
        """
        kind = parse_game_kind(game_kind)

        with self._lock:
            if self.registry.match_for_player(connection.user_id) is not None:
                raise GameStateError("You are already playing a match.")
            previous = self.queued_kind(connection.user_id)
            if previous == kind:
                return len(self.queues[kind])
            if previous is not None:
                self._remove(previous, connection.user_id)
                self._broadcast_queue_size(previous)

            self.queues[kind].append(connection)
            logger.info(
                "%s joined the %s queue (%d waiting)",
                connection.user_id,
                kind,
                len(self.queues[kind]),
            )
            self._broadcast_queue_size(kind)
            return len(self.queues[kind])

    def try_form_match(self, game_kind: GameKind | str) -> Optional[Match]:
        """
        Take the first `required` players of the queue into a new match, if there are enough.
        ----

        1. Pop the batch from the front of the queue.
        2. Build the game engine.
        3. Collect the entry fees (all players or none).
        4. Failed? Put the batch back at the front, tell its players, no match.
        5. Register the match.
        """
        kind = parse_game_kind(game_kind)
        required = self.required_players(kind)

        with self._lock:
            queue = self.queues[kind]
            if len(queue) < required:
                return None

            batch = queue[:required]
            del queue[:required]
            player_ids = [c.user_id for c in batch]

            try:
                engine = create_game(kind, player_ids, self.settings, self.rng)
                pot = self.settlement.collect_entry_fees(
                    player_ids, self.settings.bet_amount
                )
            except (InsufficientFundsError, SettlementError) as error:
                queue[:0] = batch
                logger.info("Match for %s cancelled: %s", player_ids, error)
                cancelled = GameCancelledEvent(reason=str(error))
                for connection in batch:
                    self.notifier.send_to(
                        connection, Event.GAME_CANCELLED, cancelled.model_dump(mode="json")
                    )
                return None
            except Exception:
                queue[:0] = batch
                raise

            match = Match(
                id=str(uuid4()),
                game_kind=kind,
                connections=batch,
                engine=engine,
                pot=pot,
            )
            self.registry.add(match)
            logger.info("Match %s (%s) started with %s", match.id, kind, player_ids)
            self._broadcast_queue_size(kind)
            return match

    def remove_from_all_queues(self, connection: Connection) -> list[GameKind]:
        """Drop the player from every queue. Returns the kinds they were waiting for."""
        with self._lock:
            left: list[GameKind] = []
            for kind in self.queues:
                if self._remove(kind, connection.user_id):
                    left.append(kind)
            for kind in left:
                self._broadcast_queue_size(kind)
            return left

    def _remove(self, kind: GameKind, player_id: PlayerId) -> bool:
        queue = self.queues[kind]
        kept = [c for c in queue if c.user_id != player_id]
        removed = len(kept) != len(queue)
        queue[:] = kept
        return removed

    def _broadcast_queue_size(self, kind: GameKind) -> None:
        queue = self.queues[kind]
        update = QueueUpdateEvent(
            game_kind=kind.value, count=len(queue), required=self.required_players(kind)
        ).model_dump(mode="json")
        for connection in queue:
            self.notifier.send_to(connection, Event.QUEUE_UPDATE, update)
