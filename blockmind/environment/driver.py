"""Environment driver protocols.

The driver is an external collaborator: it connects to a remote world, raises
events and exposes a handful of opaque primitives. Blockmind only depends on
the shapes defined here, so any binding (a real game client, the simulated
world in ``simulated.py``, a test double) can be plugged in.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, TYPE_CHECKING

from .schemas import DriverState

if TYPE_CHECKING:  # pragma: no cover
    from blockmind.schemas import AgentIdentity


# Event names raised by a session ------------------------------------------------
SPAWNED = "spawned"
CHAT_RECEIVED = "chat_received"      # (sender, text)
PEER_JOINED = "peer_joined"          # (peer)
PEER_LEFT = "peer_left"              # (peer)
HEALTH_CHANGED = "health_changed"    # (value)
KICKED = "kicked"                    # (reason)
DISCONNECTED = "disconnected"        # ()

ALL_EVENTS = (
    SPAWNED,
    CHAT_RECEIVED,
    PEER_JOINED,
    PEER_LEFT,
    HEALTH_CHANGED,
    KICKED,
    DISCONNECTED,
)

EventCallback = Callable[..., Awaitable[Any]]


class EnvironmentSession(Protocol):
    """One live connection of one agent to the world."""

    def on(self, event: str, callback: EventCallback) -> None:
        """Register an async callback for a session event."""
        ...

    async def current_state(self) -> DriverState:
        """Read the current world state. Must not mutate anything."""
        ...

    async def move_toward(self, x: float, z: float) -> None:
        ...

    async def follow_entity(self, peer: str, distance: float) -> None:
        ...

    async def send_chat(self, text: str) -> None:
        ...

    async def equip_and_consume(self, item: str) -> None:
        ...

    async def craft(self, recipe: str, count: int) -> None:
        ...

    async def disconnect(self) -> None:
        ...


class EnvironmentDriver(Protocol):
    """Factory for sessions. ``connect`` raises when the world is unreachable."""

    async def connect(
        self, host: str, port: int, identity: "AgentIdentity"
    ) -> EnvironmentSession:
        ...
