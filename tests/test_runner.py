"""Tests for the multi-agent runner."""

import asyncio

import pytest

from blockmind.agent import AgentSettings, AgentState
from blockmind.environment.simulated import SimulatedDriver, SimulatedWorld
from blockmind.errors import StartupError
from blockmind.persistence import InMemoryStore
from blockmind.policy import PolicyGateway
from blockmind.runner import AgentRunner
from blockmind.schemas import AgentIdentity

SETTINGS = AgentSettings(think_min=100, think_max=100, reconnect_delay=0.05, spawn_settle_delay=0)
NAMES = ["AI_Explorer", "AI_Friend", "AI_Miner"]


def make_runner(oracle, *, stagger=0.0, driver=None, stores=None):
    stores = {} if stores is None else stores

    def store_factory(name):
        stores[name] = InMemoryStore()
        return stores[name]

    return AgentRunner(
        [AgentIdentity(name=name) for name in NAMES],
        driver=driver or SimulatedDriver(SimulatedWorld()),
        gateway=PolicyGateway(oracle),
        store_factory=store_factory,
        settings=SETTINGS,
        stagger=stagger,
    )


def test_runner_needs_agents(oracle_factory):
    with pytest.raises(ValueError):
        AgentRunner([], driver=SimulatedDriver(), gateway=PolicyGateway(oracle_factory()))


def test_each_agent_gets_its_own_store(oracle_factory):
    stores = {}
    runner = make_runner(oracle_factory(), stores=stores)

    assert sorted(stores) == sorted(NAMES)
    assert [agent.memory.store for agent in runner.agents] == [stores[name] for name in NAMES]


@pytest.mark.asyncio
async def test_unreachable_oracle_is_fatal_before_connecting(oracle_factory):
    driver = SimulatedDriver(SimulatedWorld())
    runner = make_runner(oracle_factory(available=False), driver=driver)

    with pytest.raises(StartupError):
        await runner.start()

    assert driver.connect_calls == []
    await runner.stop()


@pytest.mark.asyncio
async def test_agents_start_in_order_with_stagger(oracle_factory):
    driver = SimulatedDriver(SimulatedWorld())
    runner = make_runner(oracle_factory(), driver=driver, stagger=0.02)
    loop = asyncio.get_running_loop()

    began = loop.time()
    await runner.start()
    elapsed = loop.time() - began

    assert [name for _, _, name in driver.connect_calls] == NAMES
    assert elapsed >= 0.039
    await runner.stop()
    assert all(agent.state is AgentState.SHUTDOWN for agent in runner.agents)


@pytest.mark.asyncio
async def test_run_until_stop_requested(oracle_factory):
    runner = make_runner(oracle_factory())

    running = asyncio.create_task(runner.run())
    for _ in range(500):
        if all(agent.state is AgentState.IDLE for agent in runner.agents):
            break
        await asyncio.sleep(0.002)
    assert all(agent.state is AgentState.IDLE for agent in runner.agents)

    runner.request_stop()
    await asyncio.wait_for(running, timeout=1)

    assert all(agent.state is AgentState.SHUTDOWN for agent in runner.agents)
