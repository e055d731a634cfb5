"""Jittered periodic ticker for the decision loop."""

from __future__ import annotations

import asyncio
import random
from typing import Callable, Optional


class JitteredTicker:
    """Calls ``callback`` repeatedly, waiting a fresh uniform random delay each time.

    The callback is synchronous and must return quickly; the agent uses it to
    either start a cycle task or count a skipped tick. Exceptions from the
    callback propagate and end the ticker task.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        min_delay: float,
        max_delay: float,
        *,
        rng: Optional[random.Random] = None,
        name: str = "ticker",
    ) -> None:
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError(f"invalid tick window [{min_delay}, {max_delay}]")
        self.callback = callback
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rng = rng or random.Random()
        self.name = name
        self.fire_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_delay(self) -> float:
        return self.rng.uniform(self.min_delay, self.max_delay)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.next_delay())
            self.fire_count += 1
            self.callback()
