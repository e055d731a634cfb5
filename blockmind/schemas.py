"""
Pydantic schemas for the blockmind agent system.

Design Philosophy:
- Identity and perception are immutable values (frozen models)
- Long-term records carry the agent name so many agents can share one store
- Serialized payloads (snapshot, result) are stored as JSON text so every
  storage backend treats them the same way
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from blockmind.environment.schemas import InventoryItem, Position


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Identity
# ============================================================================


class Personality(BaseModel):
    """Four traits in [0, 1] that bias the agent's stochastic behavior.

    - chattiness: probability of answering chat that does not mention the agent
    - curiosity: exploratory disposition, shown to the oracle when deciding
    - social: probability of greeting a player who joins
    - caution: risk aversion, shown to the oracle when deciding
    """

    model_config = ConfigDict(frozen=True)

    chattiness: float = Field(0.3, ge=0.0, le=1.0)
    curiosity: float = Field(0.8, ge=0.0, le=1.0)
    social: float = Field(0.6, ge=0.0, le=1.0)
    caution: float = Field(0.4, ge=0.0, le=1.0)


class AgentIdentity(BaseModel):
    """Who the agent is and where it connects. Frozen after creation.

    Personality tuning goes through ``Agent.configure_personality`` which swaps
    in a new identity value, and is only allowed before the first connect.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="In-world username")
    host: str = Field("localhost", description="Environment endpoint host")
    port: int = Field(25565, ge=1, le=65535, description="Environment endpoint port")
    personality: Personality = Field(default_factory=Personality)


# ============================================================================
# Perception
# ============================================================================


class PeerDescriptor(BaseModel):
    """Another player the agent can currently see."""

    model_config = ConfigDict(frozen=True)

    name: str
    distance: float = Field(..., ge=0)


class PerceptionSnapshot(BaseModel):
    """Compact, immutable summary of the world as the agent sees it this cycle.

    Time of day and weather are coarse labels rather than raw ticks so the oracle
    prompt stays short.
    """

    model_config = ConfigDict(frozen=True)

    agent_name: str
    health: float
    food: float
    position: Position
    time_of_day: str = Field(..., description="'day' or 'night'")
    weather: str = Field(..., description="'clear' or 'rainy'")
    nearby: Tuple[PeerDescriptor, ...] = ()
    inventory: Tuple[InventoryItem, ...] = ()
    biome: Optional[str] = None
    notable_blocks: Tuple[str, ...] = ()

    def nearby_summary(self) -> str:
        if not self.nearby:
            return "nobody"
        return ", ".join(f"{peer.name} ({peer.distance:.1f}m)" for peer in self.nearby)

    def inventory_summary(self) -> str:
        if not self.inventory:
            return "empty"
        return ", ".join(f"{item.count}x {item.name}" for item in self.inventory)

    def find_item(self, *fragments: str) -> Optional[InventoryItem]:
        """Return the first stack whose name contains any of ``fragments``."""
        for item in self.inventory:
            if any(fragment in item.name for fragment in fragments):
                return item
        return None

    def has_item(self, fragment: str, count: int = 1) -> bool:
        return any(fragment in item.name and item.count >= count for item in self.inventory)


# ============================================================================
# Actions
# ============================================================================


class ActionToken(str, Enum):
    """Closed action vocabulary. Declaration order is the parse priority."""

    EXPLORE = "explore"
    MINE = "mine"
    BUILD = "build"
    CHAT = "chat"
    EAT = "eat"
    SLEEP = "sleep"
    FOLLOW_PLAYER = "follow_player"
    CRAFT = "craft"
    COLLECT = "collect"


ACTION_PRIORITY: Tuple[ActionToken, ...] = tuple(ActionToken)


class ActionResult(BaseModel):
    """Outcome of one dispatch. Always produced, success or not."""

    action: ActionToken = Field(..., description="Token that was requested")
    handled_by: ActionToken = Field(..., description="Token whose handler actually ran")
    description: str
    success: bool
    details: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Memory records
# ============================================================================


class ShortTermEvent(BaseModel):
    """Volatile event held in the short-term ring buffer only."""

    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)

    def describe(self) -> str:
        """One-line rendering used inside oracle prompts."""
        if not self.payload:
            return self.event_type
        details = ", ".join(f"{key}={value}" for key, value in self.payload.items())
        return f"{self.event_type} ({details})"


class ExperienceRecord(BaseModel):
    """One action attempt and its outcome. Written once per completed dispatch."""

    agent_name: str
    timestamp: datetime = Field(default_factory=utc_now)
    action: str
    snapshot: str = Field(..., description="Perception snapshot as JSON text")
    result: str = Field(..., description="ActionResult as JSON text")
    success: bool


class InteractionRecord(BaseModel):
    """A chat message the agent answered and what it said."""

    agent_name: str
    timestamp: datetime = Field(default_factory=utc_now)
    peer: str
    message: str
    reply: str


class LocationRecord(BaseModel):
    """A place the agent visited, with anything notable it saw there."""

    agent_name: str
    timestamp: datetime = Field(default_factory=utc_now)
    x: float
    y: float
    z: float
    biome: str = "unknown"
    notable_blocks: List[str] = Field(default_factory=list)


class MemorySummary(BaseModel):
    """Lightweight status view over an agent's memory."""

    agent_name: str
    short_term_events: int
    recent_activity: List[str]


# ============================================================================
# Oracle inputs
# ============================================================================


class ChatContext(BaseModel):
    """Everything ``compose_reply`` needs to write a chat line."""

    situation: str
    peers: List[str] = Field(default_factory=list)
    recent_events: List[ShortTermEvent] = Field(default_factory=list, max_length=3)
