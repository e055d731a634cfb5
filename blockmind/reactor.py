"""
Event reactor: social reactions to environment events.

Runs beside the decision loop and shares its memory. Every reaction that waits
(a greeting delay, an oracle reply) is spawned as a tracked task so the caller
returns immediately and the agent can ``drain()`` them on a graceful stop or
``cancel()`` them when the session is lost.

Reactions:
- peer joined: record ``peer_joined``; with probability ``social`` greet them
- peer left: record ``peer_left``
- chat received: record ``chat_received``; when the message mentions the
  agent (``name`` or ``@name``, case-insensitive) or with probability
  ``chattiness`` otherwise, compose a reply, wait a little, then say it and log
  the interaction
- health changed: below the threshold record ``low_health`` (nothing else)
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, List, Optional, Tuple

from blockmind.environment.driver import (
    CHAT_RECEIVED,
    HEALTH_CHANGED,
    PEER_JOINED,
    PEER_LEFT,
    EnvironmentSession,
)
from blockmind.logging_utils import log_deterministic, log_error, log_llm
from blockmind.memory import TieredMemory
from blockmind.policy import PolicyGateway
from blockmind.schemas import AgentIdentity, ChatContext


class EventReactor:
    """Reacts to peer, chat and health events for one agent."""

    def __init__(
        self,
        identity: AgentIdentity,
        memory: TieredMemory,
        gateway: PolicyGateway,
        rng: Optional[random.Random] = None,
        *,
        greeting_delay: Tuple[float, float] = (1.0, 4.0),
        reply_delay: Tuple[float, float] = (1.0, 3.0),
        low_health_threshold: float = 10.0,
    ) -> None:
        self.identity = identity
        self.memory = memory
        self.gateway = gateway
        self.rng = rng or random.Random()
        self.greeting_delay = greeting_delay
        self.reply_delay = reply_delay
        self.low_health_threshold = low_health_threshold
        self.session: Optional[EnvironmentSession] = None
        self._pending: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def pending(self) -> int:
        return len(self._pending)

    def attach(self, session: EnvironmentSession) -> None:
        """Listen to ``session``; events from previously attached sessions are ignored."""
        self.session = session
        session.on(PEER_JOINED, self._bound(session, self.on_peer_joined))
        session.on(PEER_LEFT, self._bound(session, self.on_peer_left))
        session.on(CHAT_RECEIVED, self._bound(session, self.on_chat))
        session.on(HEALTH_CHANGED, self._bound(session, self.on_health_changed))

    def detach(self) -> None:
        """Stop accepting events. Reactions already running keep their session."""
        self.session = None

    def _bound(
        self, session: EnvironmentSession, handler: Callable[..., Awaitable[None]]
    ) -> Callable[..., Awaitable[None]]:
        async def callback(*args) -> None:
            if session is not self.session:
                return
            await handler(*args)

        return callback

    def should_respond(self, message: str) -> bool:
        # "@name" contains the name, so one substring check covers both forms
        if self.name.lower() in message.lower():
            return True
        return self.rng.random() < self.identity.personality.chattiness

    # Event handlers -----------------------------------------------------------------

    async def on_peer_joined(self, peer: str) -> None:
        if peer == self.name:
            return
        await self.memory.add_event("peer_joined", {"peer": peer})
        if self.rng.random() < self.identity.personality.social:
            self._spawn(self._greet(self.session, peer))

    async def on_peer_left(self, peer: str) -> None:
        if peer == self.name:
            return
        await self.memory.add_event("peer_left", {"peer": peer})

    async def on_chat(self, sender: str, text: str) -> None:
        if sender == self.name:
            return
        await self.memory.add_event("chat_received", {"sender": sender, "message": text})
        if self.should_respond(text):
            self._spawn(self._reply(self.session, sender, text))

    async def on_health_changed(self, value: float) -> None:
        if value < self.low_health_threshold:
            log_error(f"Low health: {value:.0f}", self.name)
            await self.memory.add_event("low_health", {"health": value})

    # Reactions ----------------------------------------------------------------------

    async def _greet(self, session: Optional[EnvironmentSession], peer: str) -> None:
        await asyncio.sleep(self.rng.uniform(*self.greeting_delay))
        if self._superseded(session):
            return
        try:
            await session.send_chat(f"Hello {peer}!")
        except Exception as exc:
            log_error(f"Could not greet {peer}: {exc}", self.name)
            return
        log_deterministic(f"Greeted {peer}", self.name)

    async def _reply(self, session: Optional[EnvironmentSession], sender: str, text: str) -> None:
        if self._superseded(session):
            return
        context = ChatContext(
            situation=f'{sender} said: "{text}"',
            peers=await self._visible_peers(session),
            recent_events=self.memory.recent_events(3),
        )
        reply = await self.gateway.compose_reply(context, self.name)
        await asyncio.sleep(self.rng.uniform(*self.reply_delay))
        if self._superseded(session):
            return
        try:
            await session.send_chat(reply)
            self.memory.record_interaction(sender, text, reply)
        except Exception as exc:
            log_error(f"Could not reply to {sender}: {exc}", self.name)
            return
        log_llm(f"Replied to {sender}: {reply}", self.name)

    def _superseded(self, session: Optional[EnvironmentSession]) -> bool:
        # a reaction belongs to the session it started on; drop it once another one is attached
        return session is None or (self.session is not None and self.session is not session)

    async def _visible_peers(self, session: Optional[EnvironmentSession]) -> List[str]:
        if session is None:
            return []
        try:
            state = await session.current_state()
        except Exception as exc:
            log_error(f"Could not read peers: {exc}", self.name)
            return []
        return [
            player.name
            for player in state.players
            if player.name != self.name and player.position is not None
        ]

    # Task bookkeeping ---------------------------------------------------------------

    def _spawn(self, reaction: Awaitable[None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(reaction)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending reaction to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cancel(self) -> None:
        """Abandon every pending reaction."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
