"""
Perception snapshot construction.

Turns one raw ``DriverState`` read into the compact, immutable
``PerceptionSnapshot`` the policy gateway prompts with. The builder is a pure
read: it never calls a driver primitive that changes the world.

Classification rules:
- time of day: "day" while the clock is strictly between 6000 and 18000 ticks,
  otherwise "night"
- weather: "rainy" when it rains, otherwise "clear"
- nearby peers: every other player whose position is known, nearest first

Usage:
    snapshot = await build_snapshot(session, agent_name="AI_Explorer")
"""

from typing import List

from blockmind.environment.driver import EnvironmentSession
from blockmind.environment.schemas import DriverState
from blockmind.errors import NotReady
from blockmind.schemas import PeerDescriptor, PerceptionSnapshot

DAY_START_TICKS = 6000
DAY_END_TICKS = 18000


def classify_time_of_day(ticks: int) -> str:
    return "day" if DAY_START_TICKS < ticks < DAY_END_TICKS else "night"


def classify_weather(is_raining: bool) -> str:
    return "rainy" if is_raining else "clear"


def snapshot_from_state(state: DriverState, agent_name: str) -> PerceptionSnapshot:
    """Build a snapshot from an already-fetched driver state.

    Raises:
        NotReady: If the driver does not know the agent's position yet
    """
    if state.position is None:
        raise NotReady(f"{agent_name} has no position yet (not spawned)")

    nearby: List[PeerDescriptor] = [
        PeerDescriptor(name=player.name, distance=state.position.distance_to(player.position))
        for player in state.players
        if player.name != agent_name and player.position is not None
    ]
    nearby.sort(key=lambda peer: peer.distance)

    return PerceptionSnapshot(
        agent_name=agent_name,
        health=state.health,
        food=state.food,
        position=state.position,
        time_of_day=classify_time_of_day(state.time_of_day),
        weather=classify_weather(state.is_raining),
        nearby=tuple(nearby),
        inventory=tuple(item for item in state.inventory if item.count > 0),
        biome=state.biome,
        notable_blocks=tuple(state.notable_blocks),
    )


async def build_snapshot(session: EnvironmentSession, agent_name: str) -> PerceptionSnapshot:
    """Read the session once and return a fresh snapshot.

    Raises:
        NotReady: If the agent has not spawned; the caller skips the cycle
    """
    state = await session.current_state()
    return snapshot_from_state(state, agent_name)
