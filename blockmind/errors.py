"""Error taxonomy shared by the decision loop, gateway, dispatcher and memory.

Only ``StartupError`` is meant to escape to the process surface. Everything
else is raised and handled inside a single cycle so the next cycle still runs.
"""

from typing import Optional


class BlockmindError(Exception):
    """Base class for all blockmind errors."""


class NotReady(BlockmindError):
    """Perception is unavailable (agent not spawned yet). The cycle is skipped."""


class OracleUnavailable(BlockmindError):
    """The policy oracle could not be reached or returned a malformed response."""


class ActionFailure(BlockmindError):
    """A capability handler raised while executing an action."""

    def __init__(self, action: str, underlying: Exception) -> None:
        self.action = action
        self.underlying = underlying
        super().__init__(f"{action} failed: {underlying}")


class EnvironmentDisconnect(BlockmindError):
    """The environment session was lost."""


class StoreWriteFailure(BlockmindError):
    """A long-term memory write failed. Short-term memory is unaffected."""

    def __init__(self, kind: str, agent_name: str, underlying: Exception) -> None:
        self.kind = kind
        self.agent_name = agent_name
        self.underlying = underlying
        super().__init__(f"Failed to store {kind} for {agent_name}: {underlying}")


class ConfigurationLocked(BlockmindError):
    """Raised when identity settings are changed after the agent connected."""


class StartupError(BlockmindError):
    """Raised when an agent (or the whole process) cannot start.

    Covers the two fatal conditions: the oracle probe failed, or the very first
    environment connection could not be established.
    """

    def __init__(self, *, reason: str, agent_name: Optional[str] = None) -> None:
        self.reason = reason
        self.agent_name = agent_name
        subject = f"Agent {agent_name}" if agent_name else "Blockmind"
        message = (
            f"{subject} could not start: {reason}\n\n"
            "Remediation tips:\n"
            "  - Check the oracle is running (e.g. `ollama serve`) and the model is pulled\n"
            "  - Verify ORACLE_PROVIDER, ORACLE_MODEL and OLLAMA_BASE_URL\n"
            "  - Verify SERVER_HOST / SERVER_PORT point at a reachable game server"
        )
        super().__init__(message)
