"""
Blockmind - autonomous LLM-driven agents for a multiplayer block world.

Each agent runs a perceive-decide-act-remember loop against an environment
driver, asks a policy oracle (a language model) what to do next, and keeps a
short-term event buffer plus a durable long-term log.

All collaborators are injected: the driver, the oracle transport and the
long-term store can each be swapped without touching the loop.
"""

__version__ = "0.1.0"

# Agents and their supervision
from .agent import Agent, AgentSettings, AgentState
from .runner import AgentRunner
from .scheduler import JitteredTicker

# Decision making and acting
from .policy import OracleClient, PolicyGateway, parse_action
from .dispatcher import ActionDispatcher, build_default_dispatcher
from .handlers import ActionContext, HandlerOutcome
from .reactor import EventReactor
from .perception import build_snapshot, snapshot_from_state

# Memory
from .memory import ShortTermMemory, TieredMemory
from .persistence import (
    LongTermStore,
    InMemoryStore,
    JsonlStore,
    SqliteStore,
    PostgresStore,
    build_store,
)

# Core schemas
from .schemas import (
    AgentIdentity,
    Personality,
    PeerDescriptor,
    PerceptionSnapshot,
    ActionToken,
    ActionResult,
    ShortTermEvent,
    ExperienceRecord,
    InteractionRecord,
    LocationRecord,
    MemorySummary,
    ChatContext,
)

from .errors import (
    BlockmindError,
    NotReady,
    OracleUnavailable,
    ActionFailure,
    EnvironmentDisconnect,
    StoreWriteFailure,
    ConfigurationLocked,
    StartupError,
)
from .roster import RosterLoader, default_roster, parse_agent_arg

__all__ = [
    "__version__",
    "Agent",
    "AgentSettings",
    "AgentState",
    "AgentRunner",
    "JitteredTicker",
    "OracleClient",
    "PolicyGateway",
    "parse_action",
    "ActionDispatcher",
    "build_default_dispatcher",
    "ActionContext",
    "HandlerOutcome",
    "EventReactor",
    "build_snapshot",
    "snapshot_from_state",
    "ShortTermMemory",
    "TieredMemory",
    "LongTermStore",
    "InMemoryStore",
    "JsonlStore",
    "SqliteStore",
    "PostgresStore",
    "build_store",
    "AgentIdentity",
    "Personality",
    "PeerDescriptor",
    "PerceptionSnapshot",
    "ActionToken",
    "ActionResult",
    "ShortTermEvent",
    "ExperienceRecord",
    "InteractionRecord",
    "LocationRecord",
    "MemorySummary",
    "ChatContext",
    "BlockmindError",
    "NotReady",
    "OracleUnavailable",
    "ActionFailure",
    "EnvironmentDisconnect",
    "StoreWriteFailure",
    "ConfigurationLocked",
    "StartupError",
    "RosterLoader",
    "default_roster",
    "parse_agent_arg",
]
