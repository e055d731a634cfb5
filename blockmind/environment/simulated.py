"""In-process simulated world and driver.

Stands in for a real game client so agents can run (and be tested) without a
server. It keeps just enough state for the built-in handlers to have something
to act on: positions, an inventory, a tiny recipe table and a shared chat log.
There is no physics and no pathfinding: movement teleports.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from blockmind.errors import EnvironmentDisconnect

from .driver import (
    CHAT_RECEIVED,
    DISCONNECTED,
    HEALTH_CHANGED,
    KICKED,
    PEER_JOINED,
    PEER_LEFT,
    SPAWNED,
    EventCallback,
)
from .schemas import DriverState, InventoryItem, PlayerState, Position


# recipe -> (inputs keyed by item-name fragment, (output item, output count))
RECIPES: Dict[str, Tuple[Dict[str, int], Tuple[str, int]]] = {
    "planks": ({"log": 1}, ("oak_planks", 4)),
    "crafting_table": ({"planks": 4}, ("crafting_table", 1)),
    "stick": ({"planks": 2}, ("stick", 4)),
    "wooden_pickaxe": ({"planks": 3, "stick": 2}, ("wooden_pickaxe", 1)),
    "wooden_axe": ({"planks": 3, "stick": 2}, ("wooden_axe", 1)),
}


class SimulatedWorld:
    """Shared state visible to every simulated session."""

    def __init__(
        self,
        *,
        time_of_day: int = 1000,
        raining: bool = False,
        biome: str = "plains",
        notable_blocks: Optional[List[str]] = None,
    ) -> None:
        self.time_of_day = time_of_day
        self.raining = raining
        self.biome = biome
        self.notable_blocks = list(notable_blocks or [])
        # Non-agent players (humans) and where they stand
        self.players: Dict[str, Optional[Position]] = {}
        self.sessions: List["SimulatedSession"] = []
        self.chat_log: List[Tuple[str, str]] = []

    def add_player(self, name: str, position: Optional[Position] = None) -> List[asyncio.Task]:
        self.players[name] = position
        return self._broadcast(PEER_JOINED, name)

    def remove_player(self, name: str) -> List[asyncio.Task]:
        self.players.pop(name, None)
        return self._broadcast(PEER_LEFT, name)

    def say(self, sender: str, text: str) -> List[asyncio.Task]:
        """Broadcast a chat line to every connected session."""
        self.chat_log.append((sender, text))
        return self._broadcast(CHAT_RECEIVED, sender, text)

    def _broadcast(self, event: str, *args) -> List[asyncio.Task]:
        tasks: List[asyncio.Task] = []
        for session in list(self.sessions):
            tasks.extend(session.emit(event, *args))
        return tasks


class SimulatedSession:
    """A single agent's connection to the simulated world."""

    def __init__(
        self,
        world: SimulatedWorld,
        name: str,
        *,
        spawn_position: Position,
        inventory: Optional[Dict[str, int]] = None,
    ) -> None:
        self.world = world
        self.name = name
        self.spawn_position = spawn_position
        self.position: Optional[Position] = None
        self.health = 20.0
        self.food = 20.0
        self.inventory: Dict[str, int] = dict(inventory or {})
        self.connected = True
        self.moves: List[Tuple[float, float]] = []
        self.follows: List[Tuple[str, float]] = []
        self.crafted: List[Tuple[str, int]] = []
        self._listeners: Dict[str, List[EventCallback]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    # Events ---------------------------------------------------------------------

    def on(self, event: str, callback: EventCallback) -> None:
        self._listeners[event].append(callback)

    def emit(self, event: str, *args) -> List[asyncio.Task]:
        """Schedule every listener for ``event``; returns the scheduled tasks."""
        loop = asyncio.get_running_loop()
        tasks = []
        for callback in self._listeners.get(event, []):
            task = loop.create_task(callback(*args))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    def spawn(self) -> List[asyncio.Task]:
        self.position = self.spawn_position.model_copy()
        return self.emit(SPAWNED)

    def set_health(self, value: float) -> List[asyncio.Task]:
        self.health = value
        return self.emit(HEALTH_CHANGED, value)

    def kick(self, reason: str) -> List[asyncio.Task]:
        tasks = self.emit(KICKED, reason)
        return tasks + self.drop()

    def drop(self) -> List[asyncio.Task]:
        """Lose the connection without a local disconnect request."""
        if not self.connected:
            return []
        self.connected = False
        if self in self.world.sessions:
            self.world.sessions.remove(self)
        return self.emit(DISCONNECTED)

    # Primitives -----------------------------------------------------------------

    def _ensure_connected(self) -> None:
        if not self.connected:
            raise EnvironmentDisconnect(f"{self.name} is not connected")

    async def current_state(self) -> DriverState:
        self._ensure_connected()
        players = [
            PlayerState(name=name, position=position)
            for name, position in self.world.players.items()
        ]
        players.extend(
            PlayerState(name=other.name, position=other.position)
            for other in self.world.sessions
            if other is not self
        )
        return DriverState(
            position=self.position.model_copy() if self.position else None,
            health=self.health,
            food=self.food,
            time_of_day=self.world.time_of_day,
            is_raining=self.world.raining,
            players=players,
            inventory=[
                InventoryItem(name=name, count=count)
                for name, count in self.inventory.items()
                if count > 0
            ],
            biome=self.world.biome,
            notable_blocks=list(self.world.notable_blocks),
        )

    async def move_toward(self, x: float, z: float) -> None:
        self._ensure_connected()
        if self.position is None:
            raise EnvironmentDisconnect(f"{self.name} has not spawned")
        self.moves.append((x, z))
        self.position = Position(x=x, y=self.position.y, z=z)

    async def follow_entity(self, peer: str, distance: float) -> None:
        self._ensure_connected()
        known = set(self.world.players) | {s.name for s in self.world.sessions}
        if peer not in known:
            raise ValueError(f"Unknown player '{peer}'")
        self.follows.append((peer, distance))

    async def send_chat(self, text: str) -> None:
        self._ensure_connected()
        self.world.say(self.name, text)

    async def equip_and_consume(self, item: str) -> None:
        self._ensure_connected()
        if self.inventory.get(item, 0) <= 0:
            raise ValueError(f"No {item} in inventory")
        self.inventory[item] -= 1
        self.food = min(20.0, self.food + 4)

    async def craft(self, recipe: str, count: int) -> None:
        self._ensure_connected()
        if recipe not in RECIPES:
            raise ValueError(f"Unknown recipe '{recipe}'")
        inputs, (output, produced) = RECIPES[recipe]
        for _ in range(count):
            for fragment, needed in inputs.items():
                self._take(fragment, needed, recipe)
            self.inventory[output] = self.inventory.get(output, 0) + produced
        self.crafted.append((recipe, count))

    def _take(self, fragment: str, needed: int, recipe: str) -> None:
        for name, have in self.inventory.items():
            if fragment in name and have >= needed:
                self.inventory[name] = have - needed
                return
        raise ValueError(f"Missing {needed}x {fragment} for {recipe}")

    async def disconnect(self) -> None:
        self.drop()


class SimulatedDriver:
    """Driver that opens ``SimulatedSession`` objects on a shared world."""

    def __init__(
        self,
        world: Optional[SimulatedWorld] = None,
        *,
        spawn_position: Optional[Position] = None,
        inventory: Optional[Dict[str, int]] = None,
        auto_spawn: bool = True,
        fail_connects: int = 0,
    ) -> None:
        self.world = world or SimulatedWorld()
        self.spawn_position = spawn_position or Position(x=0, y=64, z=0)
        self.inventory = dict(inventory or {})
        self.auto_spawn = auto_spawn
        # Number of upcoming connect() calls that should fail
        self.fail_connects = fail_connects
        self.connect_calls: List[Tuple[str, int, str]] = []
        self.sessions: List[SimulatedSession] = []

    async def connect(self, host: str, port: int, identity) -> SimulatedSession:
        self.connect_calls.append((host, port, identity.name))
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise ConnectionError(f"Could not reach simulated world at {host}:{port}")

        session = SimulatedSession(
            self.world,
            identity.name,
            spawn_position=self.spawn_position,
            inventory=self.inventory,
        )
        self.world.sessions.append(session)
        self.sessions.append(session)
        if self.auto_spawn:
            # Spawn on the next loop iteration so the caller can attach handlers first
            asyncio.get_running_loop().call_soon(session.spawn)
        return session


def create_driver() -> SimulatedDriver:
    """Factory used by the CLI's default ``--driver`` value."""
    return SimulatedDriver(
        SimulatedWorld(notable_blocks=["oak_log", "stone"]),
        inventory={"oak_log": 3, "bread": 2},
    )
