"""
Tiered memory for a single agent.

Two tiers:
- Short term: a bounded ring buffer of ``ShortTermEvent`` (capacity 20, oldest
  evicted first). Volatile by design; it only feeds oracle prompts.
- Long term: an append-only log in a ``LongTermStore`` (experiences,
  interactions, locations), keyed by agent name and durable across restarts.

Both the decision loop and the event reactor write to short-term memory, so
appends go through an asyncio.Lock; that lock is the single serialization
point that keeps arrival order intact.

Long-term writes are fire-and-forget for the caller: each ``record_*`` call
schedules the write and returns the task immediately. A failed write is logged
as ``StoreWriteFailure`` and counted, never raised back into the cycle and never
retried. ``close()`` waits for every outstanding write before closing the store,
so shutdown never discards pending rows.
"""

import asyncio
import json
from collections import deque
from typing import Any, Awaitable, Deque, Dict, List, Optional

from blockmind.environment.schemas import Position
from blockmind.errors import StoreWriteFailure
from blockmind.logging_utils import log_error
from blockmind.persistence import InMemoryStore, LongTermStore
from blockmind.schemas import (
    ActionResult,
    ActionToken,
    ExperienceRecord,
    InteractionRecord,
    LocationRecord,
    MemorySummary,
    PerceptionSnapshot,
    ShortTermEvent,
)

SHORT_TERM_CAPACITY = 20


class ShortTermMemory:
    """Bounded FIFO buffer of recent events."""

    def __init__(self, capacity: int = SHORT_TERM_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._events: Deque[ShortTermEvent] = deque()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._events)

    async def add_event(
        self, event_type: str, payload: Optional[Dict[str, Any]] = None
    ) -> ShortTermEvent:
        """Append an event stamped with wall-clock time, evicting the oldest on overflow."""
        async with self._lock:
            # Stamped under the lock so timestamps follow arrival order
            event = ShortTermEvent(event_type=event_type, payload=dict(payload or {}))
            self._events.append(event)
            while len(self._events) > self.capacity:
                self._events.popleft()
        return event

    def recent_events(self, n: int = 5) -> List[ShortTermEvent]:
        """Last ``n`` events, newest last. ``n`` is clamped to the buffer size."""
        if n <= 0:
            return []
        events = list(self._events)
        return events[-n:]


class TieredMemory:
    """Short-term ring buffer plus long-term log for one agent."""

    def __init__(
        self,
        agent_name: str,
        store: Optional[LongTermStore] = None,
        *,
        capacity: int = SHORT_TERM_CAPACITY,
    ):
        self.agent_name = agent_name
        self.store = store or InMemoryStore()
        self.short_term = ShortTermMemory(capacity)
        self._pending: set[asyncio.Task] = set()
        self._closed = False
        self.completed_writes = 0
        self.failed_writes = 0

    async def initialize(self) -> None:
        await self.store.initialize()

    # Short term -------------------------------------------------------------------

    async def add_event(
        self, event_type: str, payload: Optional[Dict[str, Any]] = None
    ) -> ShortTermEvent:
        return await self.short_term.add_event(event_type, payload)

    def recent_events(self, n: int = 5) -> List[ShortTermEvent]:
        return self.short_term.recent_events(n)

    # Long term writes ------------------------------------------------------------------

    def record_experience(
        self,
        action: ActionToken | str,
        snapshot: PerceptionSnapshot,
        result: ActionResult | Any,
        success: Optional[bool] = None,
    ) -> asyncio.Task:
        self._ensure_open()
        if isinstance(result, ActionResult):
            result_json = result.model_dump_json()
            success = result.success if success is None else success
        else:
            result_json = json.dumps(result, default=str)
        record = ExperienceRecord(
            agent_name=self.agent_name,
            action=ActionToken(action).value,
            snapshot=snapshot.model_dump_json(),
            result=result_json,
            success=bool(success),
        )
        return self._schedule("experience", self.store.save_experience(record))

    def record_interaction(self, peer: str, message: str, reply: str) -> asyncio.Task:
        self._ensure_open()
        record = InteractionRecord(
            agent_name=self.agent_name, peer=peer, message=message, reply=reply
        )
        return self._schedule("interaction", self.store.save_interaction(record))

    def record_location(
        self,
        position: Position,
        biome: Optional[str] = None,
        blocks: Optional[List[str]] = None,
    ) -> asyncio.Task:
        self._ensure_open()
        record = LocationRecord(
            agent_name=self.agent_name,
            x=position.x,
            y=position.y,
            z=position.z,
            biome=biome or "unknown",
            notable_blocks=list(blocks or []),
        )
        return self._schedule("location", self.store.save_location(record))

    # Long term queries --------------------------------------------------------------

    async def query_outcomes(
        self, action: ActionToken | str, limit: int = 10
    ) -> List[ExperienceRecord]:
        return await self.store.get_successful_experiences(
            self.agent_name, ActionToken(action).value, limit
        )

    async def query_interactions(self, peer: str, limit: int = 5) -> List[InteractionRecord]:
        return await self.store.get_interactions(self.agent_name, peer, limit)

    async def query_locations(self, limit: int = 20) -> List[LocationRecord]:
        return await self.store.get_locations(self.agent_name, limit)

    def summary(self) -> MemorySummary:
        return MemorySummary(
            agent_name=self.agent_name,
            short_term_events=len(self.short_term),
            recent_activity=[event.event_type for event in self.recent_events(3)],
        )

    # Lifecycle ---------------------------------------------------------------------

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def flush(self) -> None:
        """Wait until every scheduled long-term write has completed or failed."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Drain outstanding writes, then close the store. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self.flush()
        await self.store.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"Memory for {self.agent_name} is closed")

    def _schedule(self, kind: str, write: Awaitable[None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._write(kind, write))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, kind: str, write: Awaitable[None]) -> bool:
        try:
            await write
        except Exception as exc:
            self.failed_writes += 1
            log_error(str(StoreWriteFailure(kind, self.agent_name, exc)), self.agent_name)
            return False
        self.completed_writes += 1
        return True
