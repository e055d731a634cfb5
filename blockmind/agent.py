"""
Agent: decision loop plus lifecycle supervision for one embodied agent.

State machine:
    CREATED -> CONNECTING -> IDLE <-> THINKING -> ACTING -> IDLE
    any connected state -> DISCONNECTED -> RECONNECTING -> CONNECTING -> IDLE
    any state -> SHUTDOWN (terminal)

Decision cycle (one at a time, driven by a jittered ticker):
    snapshot -> decide_action -> dispatch -> record experience (+ location)
    -> short-term "decision" event

A tick that arrives while a cycle is in flight is dropped, never queued. The
cycle never lets an exception escape: ``NotReady`` skips it quietly, anything
else is logged and the next tick tries again.

Reconnection:
    A ``disconnected`` or ``kicked`` event from the live session stops the
    ticker, detaches the reactor, abandons the in-flight cycle and pending
    reactions, enters RECONNECTING, then retries ``connect`` every
    ``reconnect_delay`` seconds until it succeeds or the agent is stopped.
    Only the very first connection failure is fatal (``StartupError``).
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from blockmind.config import Config
from blockmind.dispatcher import ActionDispatcher, build_default_dispatcher
from blockmind.environment.driver import (
    DISCONNECTED,
    KICKED,
    SPAWNED,
    EnvironmentDriver,
    EnvironmentSession,
)
from blockmind.environment.schemas import Position
from blockmind.errors import ConfigurationLocked, NotReady, StartupError
from blockmind.logging_utils import log_deterministic, log_error, log_info, log_success
from blockmind.memory import TieredMemory
from blockmind.perception import build_snapshot
from blockmind.policy import PolicyGateway
from blockmind.reactor import EventReactor
from blockmind.scheduler import JitteredTicker
from blockmind.schemas import ActionResult, AgentIdentity, MemorySummary, Personality


class AgentState(str, Enum):
    CREATED = "created"
    CONNECTING = "connecting"
    IDLE = "idle"
    THINKING = "thinking"
    ACTING = "acting"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    SHUTDOWN = "shutdown"


# States in which the decision cycle may move the agent around
_CYCLE_STATES = (AgentState.IDLE, AgentState.THINKING, AgentState.ACTING)
_OFFLINE_STATES = (AgentState.DISCONNECTED, AgentState.RECONNECTING, AgentState.SHUTDOWN)


@dataclass(frozen=True)
class AgentSettings:
    """Loop timing, in seconds."""

    think_min: float = 3.0
    think_max: float = 8.0
    reconnect_delay: float = 5.0
    spawn_settle_delay: float = 2.0

    @classmethod
    def from_config(cls) -> "AgentSettings":
        return cls(
            think_min=Config.THINK_MIN_SECONDS,
            think_max=Config.THINK_MAX_SECONDS,
            reconnect_delay=Config.RECONNECT_DELAY_SECONDS,
            spawn_settle_delay=Config.SPAWN_SETTLE_SECONDS,
        )


async def _cancel_task(task: Optional[asyncio.Task]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class Agent:
    """One autonomous agent: connects, perceives, decides, acts and remembers."""

    def __init__(
        self,
        identity: AgentIdentity,
        driver: EnvironmentDriver,
        gateway: PolicyGateway,
        memory: Optional[TieredMemory] = None,
        dispatcher: Optional[ActionDispatcher] = None,
        settings: Optional[AgentSettings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.identity = identity
        self.driver = driver
        self.gateway = gateway
        self.rng = rng or random.Random()
        self.memory = memory or TieredMemory(identity.name)
        self.dispatcher = dispatcher or build_default_dispatcher(
            gateway.default_action, rng=self.rng
        )
        self.settings = settings or AgentSettings()
        self.ticker = JitteredTicker(
            self.on_tick,
            self.settings.think_min,
            self.settings.think_max,
            rng=self.rng,
            name=f"{identity.name}-ticker",
        )

        self.state = AgentState.CREATED
        self.session: Optional[EnvironmentSession] = None
        self.reactor: Optional[EventReactor] = None
        self.is_thinking = False
        self.skipped_ticks = 0
        self.cycles_completed = 0
        self.connect_count = 0

        self._cycle_task: Optional[asyncio.Task] = None
        self._settle_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return self.identity.name

    def configure_personality(self, **traits: float) -> Personality:
        """Replace personality traits. Only allowed before the agent connects."""
        if self.state is not AgentState.CREATED:
            raise ConfigurationLocked(
                f"Cannot change the personality of {self.name} after it connected"
            )
        unknown = set(traits) - set(Personality.model_fields)
        if unknown:
            raise ValueError(f"Unknown personality traits: {', '.join(sorted(unknown))}")
        personality = Personality(**{**self.identity.personality.model_dump(), **traits})
        self.identity = self.identity.model_copy(update={"personality": personality})
        return personality

    def memory_summary(self) -> MemorySummary:
        return self.memory.summary()

    # Lifecycle ----------------------------------------------------------------------

    async def start(self) -> None:
        """Open memory and the first session.

        Raises:
            StartupError: If memory or the first connection cannot be opened
        """
        if self.state is not AgentState.CREATED:
            return
        self.reactor = EventReactor(self.identity, self.memory, self.gateway, self.rng)
        self.state = AgentState.CONNECTING
        host, port = self.identity.host, self.identity.port
        log_info(f"Connecting to {host}:{port}...", self.name)
        try:
            await self.memory.initialize()
            await self._open_session()
        except Exception as exc:
            self.state = AgentState.DISCONNECTED
            raise StartupError(
                reason=f"could not connect to {host}:{port}: {exc}", agent_name=self.name
            ) from exc
        log_success(f"Connected to {host}:{port}", self.name)

    async def stop(self) -> None:
        """Graceful stop: in-flight work finishes, timers are cancelled. Idempotent."""
        if self.state is AgentState.SHUTDOWN:
            return
        self.state = AgentState.SHUTDOWN
        if self.reactor is not None:
            self.reactor.detach()
        await self.ticker.stop()
        await _cancel_task(self._settle_task)
        await _cancel_task(self._reconnect_task)

        cycle = self._cycle_task
        if cycle is not None and not cycle.done():
            await asyncio.gather(cycle, return_exceptions=True)
        if self.reactor is not None:
            await self.reactor.drain()

        session, self.session = self.session, None
        if session is not None:
            try:
                await session.disconnect()
            except Exception as exc:
                log_error(f"Error while disconnecting: {exc}", self.name)
        await self.memory.close()
        log_info("Stopped", self.name)

    async def _open_session(self) -> EnvironmentSession:
        session = await self.driver.connect(self.identity.host, self.identity.port, self.identity)
        self.session = session
        self.connect_count += 1
        session.on(SPAWNED, self._bound(session, self._on_spawned))
        session.on(DISCONNECTED, self._bound(session, self._on_disconnected))
        session.on(KICKED, self._bound(session, self._on_kicked))
        assert self.reactor is not None
        self.reactor.attach(session)
        self.dispatcher.attach(session, self.identity)
        return session

    def _bound(
        self, session: EnvironmentSession, handler: Callable[..., Awaitable[None]]
    ) -> Callable[..., Awaitable[None]]:
        async def callback(*args: Any) -> None:
            if session is not self.session:
                return
            await handler(*args)

        return callback

    # Session events -----------------------------------------------------------------

    async def _on_spawned(self) -> None:
        if self.state is AgentState.SHUTDOWN:
            return
        log_success("Spawned", self.name)
        await self.memory.add_event(
            "spawn", {"host": self.identity.host, "port": self.identity.port}
        )
        self.state = AgentState.IDLE
        await _cancel_task(self._settle_task)
        self._settle_task = asyncio.get_running_loop().create_task(self._start_ticker_later())

    async def _start_ticker_later(self) -> None:
        await asyncio.sleep(self.settings.spawn_settle_delay)
        if self.state not in _OFFLINE_STATES:
            self.ticker.start()

    async def _on_kicked(self, reason: str) -> None:
        log_error(f"Kicked: {reason}", self.name)
        await self._handle_disconnect(f"kicked: {reason}")

    async def _on_disconnected(self) -> None:
        await self._handle_disconnect("connection lost")

    async def _handle_disconnect(self, reason: str) -> None:
        if self.state in _OFFLINE_STATES:
            return
        self.state = AgentState.DISCONNECTED
        self.session = None
        log_error(f"Disconnected ({reason})", self.name)

        await self.ticker.stop()
        await _cancel_task(self._settle_task)
        await _cancel_task(self._cycle_task)
        if self.reactor is not None:
            self.reactor.detach()
            await self.reactor.cancel()

        if self.state is AgentState.DISCONNECTED:
            self.state = AgentState.RECONNECTING
            self._reconnect_task = asyncio.get_running_loop().create_task(
                self._reconnect_loop(), name=f"{self.name}-reconnect"
            )

    async def _reconnect_loop(self) -> None:
        host, port = self.identity.host, self.identity.port
        while self.state is not AgentState.SHUTDOWN:
            await asyncio.sleep(self.settings.reconnect_delay)
            if self.state is AgentState.SHUTDOWN:
                return
            log_info(f"Reconnecting to {host}:{port}...", self.name)
            try:
                await self._open_session()
            except Exception as exc:
                log_error(f"Reconnect failed: {exc}", self.name)
                continue
            self.state = AgentState.CONNECTING
            log_success(f"Reconnected to {host}:{port}", self.name)
            return

    # Decision loop ------------------------------------------------------------------

    def on_tick(self) -> Optional[asyncio.Task]:
        """Ticker callback: start a cycle unless one is already running."""
        if self.state in _OFFLINE_STATES:
            return None
        if self.is_thinking:
            self.skipped_ticks += 1
            log_deterministic("Still thinking, tick skipped", self.name)
            return None
        self.is_thinking = True
        task = asyncio.get_running_loop().create_task(self.run_cycle())
        task.add_done_callback(self._cycle_done)
        self._cycle_task = task
        return task

    def _cycle_done(self, task: asyncio.Task) -> None:
        self.is_thinking = False
        if self._cycle_task is task:
            self._cycle_task = None

    def _enter(self, state: AgentState) -> None:
        if self.state in _CYCLE_STATES:
            self.state = state

    async def run_cycle(self) -> Optional[ActionResult]:
        """One perceive-decide-act-remember pass. Returns None when skipped or failed."""
        session = self.session
        self.is_thinking = True
        try:
            if session is None:
                return None
            self._enter(AgentState.THINKING)
            try:
                snapshot = await build_snapshot(session, self.name)
            except NotReady as exc:
                log_deterministic(f"Skipping cycle: {exc}", self.name)
                return None

            action = await self.gateway.decide_action(snapshot, self.identity.personality)
            self._enter(AgentState.ACTING)
            result = await self.dispatcher.dispatch(action, snapshot)

            self.memory.record_experience(action, snapshot, result)
            location = result.details.get("location")
            if location:
                self.memory.record_location(
                    Position(**location),
                    result.details.get("biome"),
                    result.details.get("notable_blocks"),
                )
            await self.memory.add_event(
                "decision",
                {
                    "action": action.value,
                    "handled_by": result.handled_by.value,
                    "success": result.success,
                },
            )
            self.cycles_completed += 1
            return result
        except Exception as exc:
            log_error(f"Cycle failed: {type(exc).__name__}: {exc}", self.name)
            return None
        finally:
            self.is_thinking = False
            self._enter(AgentState.IDLE)
