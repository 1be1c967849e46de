"""Protocol for real-time delivery to connected players (implemented by the transport, e.g. a socket server)."""

from dataclasses import dataclass
from typing import Any, Protocol

from src.core.models import PlayerId

Payload = dict[str, Any]


@dataclass(frozen=True)
class Connection:
    """A live, authenticated connection. `user_id` comes from the identity provider and is trusted as is."""

    handle: str
    user_id: PlayerId
    email: str = ""


class Notifier(Protocol):
    """At-least-once delivery. Events of one match arrive in the order they were sent."""

    def send_to(self, connection: Connection, event: str, payload: Payload) -> None:
        """Deliver to a single connection."""
        ...

    def broadcast_to(self, match_id: str, event: str, payload: Payload) -> None:
        """Deliver to every connection in the room of a match."""
        ...

    def join_room(self, connection: Connection, match_id: str) -> None: ...

    def leave_room(self, connection: Connection, match_id: str) -> None: ...
