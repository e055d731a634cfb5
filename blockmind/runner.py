"""
Multi-agent runner.

Startup sequence:
1. Probe the policy oracle once; an unreachable oracle is fatal (StartupError)
2. Build one Agent per identity, each with its own long-term store instance
3. Start agents one after another, ``stagger`` seconds apart, so a server is
   not hit by simultaneous logins
4. Wait for SIGINT / SIGTERM (or ``request_stop()``)
5. Stop every agent gracefully: in-flight cycles and replies finish, pending
   timers are cancelled, memory writes are drained
"""

from __future__ import annotations

import asyncio
import random
import signal
from typing import Callable, List, Optional, Sequence

from blockmind.agent import Agent, AgentSettings
from blockmind.config import Config
from blockmind.environment.driver import EnvironmentDriver
from blockmind.errors import StartupError
from blockmind.logging_utils import log_error, log_info, log_success
from blockmind.memory import TieredMemory
from blockmind.persistence import LongTermStore, build_store
from blockmind.policy import PolicyGateway
from blockmind.schemas import AgentIdentity

StoreFactory = Callable[[str], LongTermStore]


class AgentRunner:
    """Owns a set of agents for the lifetime of the process."""

    def __init__(
        self,
        identities: Sequence[AgentIdentity],
        *,
        driver: EnvironmentDriver,
        gateway: PolicyGateway,
        store_factory: Optional[StoreFactory] = None,
        settings: Optional[AgentSettings] = None,
        stagger: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not identities:
            raise ValueError("AgentRunner needs at least one agent")
        self.driver = driver
        self.gateway = gateway
        self.stagger = Config.AGENT_STAGGER_SECONDS if stagger is None else stagger
        settings = settings or AgentSettings.from_config()
        store_factory = store_factory or (lambda _name: build_store())
        rng = rng or random.Random()

        self.agents: List[Agent] = [
            Agent(
                identity,
                driver,
                gateway,
                memory=TieredMemory(identity.name, store_factory(identity.name)),
                settings=settings,
                rng=random.Random(rng.random()),
            )
            for identity in identities
        ]
        self._stop_requested = asyncio.Event()

    async def start(self) -> None:
        """Probe the oracle, then start agents staggered.

        Raises:
            StartupError: If the oracle is down or an agent cannot connect
        """
        log_info("Checking policy oracle connection...")
        if not await self.gateway.check_available():
            raise StartupError(reason="the policy oracle is not reachable")

        for index, agent in enumerate(self.agents):
            if index and self.stagger > 0:
                await asyncio.sleep(self.stagger)
            await agent.start()
        log_success(f"Started {len(self.agents)} agent(s)")

    async def stop(self) -> None:
        results = await asyncio.gather(
            *(agent.stop() for agent in self.agents), return_exceptions=True
        )
        for agent, result in zip(self.agents, results):
            if isinstance(result, Exception):
                log_error(f"Error during shutdown: {result}", agent.name)
        log_info("All agents stopped")

    def request_stop(self) -> None:
        self._stop_requested.set()

    async def run(self) -> None:
        """Start, wait for a stop request or signal, then stop everything."""
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                # Signal handlers are unavailable on some platforms and in non-main threads
                continue
            installed.append(sig)

        try:
            await self.start()
            log_info("Press Ctrl+C to stop")
            await self._stop_requested.wait()
            log_info("Shutting down agents...")
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            await self.stop()
