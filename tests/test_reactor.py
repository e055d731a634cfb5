"""Tests for social reactions to chat, joins and health changes."""

import asyncio
import random

import pytest

from blockmind.environment.schemas import Position
from blockmind.environment.simulated import SimulatedDriver, SimulatedWorld
from blockmind.memory import TieredMemory
from blockmind.policy import PolicyGateway
from blockmind.reactor import EventReactor
from blockmind.schemas import AgentIdentity, Personality


class FixedRandom(random.Random):
    """Random whose ``random()`` always returns the same value."""

    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def identity(**traits) -> AgentIdentity:
    return AgentIdentity(name="AI_Friend", personality=Personality(**traits))


async def make_reactor(oracle, *, traits=None, roll=0.99, world=None):
    world = world or SimulatedWorld()
    driver = SimulatedDriver(world, auto_spawn=False)
    who = identity(**(traits or {}))
    session = await driver.connect("localhost", 25565, who)
    session.spawn()
    memory = TieredMemory(who.name)
    reactor = EventReactor(
        who,
        memory,
        PolicyGateway(oracle),
        FixedRandom(roll),
        greeting_delay=(0, 0),
        reply_delay=(0, 0),
    )
    reactor.attach(session)
    return reactor, session, memory


def test_should_respond_on_mention_regardless_of_chattiness(oracle_factory):
    reactor = EventReactor(
        identity(chattiness=0.0), TieredMemory("AI_Friend"), PolicyGateway(oracle_factory()), FixedRandom(0.99)
    )

    assert reactor.should_respond("hey AI_Friend, nice base")
    assert reactor.should_respond("HEY ai_friend")
    assert reactor.should_respond("@AI_Friend come here")
    assert not reactor.should_respond("anyone around?")


def test_should_respond_by_chattiness_otherwise(oracle_factory):
    chatty = EventReactor(
        identity(chattiness=0.8), TieredMemory("AI_Friend"), PolicyGateway(oracle_factory()), FixedRandom(0.5)
    )
    assert chatty.should_respond("anyone around?")


@pytest.mark.asyncio
async def test_mention_gets_a_reply_and_an_interaction(oracle_factory):
    oracle = oracle_factory(["Thanks, Steve!"])
    reactor, session, memory = await make_reactor(oracle, traits={"chattiness": 0.0})

    await reactor.on_chat("Steve", "hey AI_Friend, nice base")
    await reactor.drain()

    assert session.world.chat_log == [("AI_Friend", "Thanks, Steve!")]
    await memory.flush()
    interactions = await memory.query_interactions("Steve")
    assert [(row.message, row.reply) for row in interactions] == [
        ("hey AI_Friend, nice base", "Thanks, Steve!")
    ]
    assert memory.recent_events(1)[0].event_type == "chat_received"
    assert 'Steve said: "hey AI_Friend, nice base"' in oracle.prompts[0][0]


@pytest.mark.asyncio
async def test_reply_prompt_lists_visible_peers(oracle_factory):
    world = SimulatedWorld()
    world.add_player("Steve", Position(x=1, y=64, z=1))
    world.add_player("Ghost", None)
    oracle = oracle_factory(["hi"])
    reactor, _session, _memory = await make_reactor(oracle, traits={"chattiness": 1.0}, roll=0.0, world=world)

    await reactor.on_chat("Steve", "hello")
    await reactor.drain()

    prompt = oracle.prompts[0][0]
    assert "OTHER PLAYERS: Steve" in prompt
    assert "Ghost" not in prompt


@pytest.mark.asyncio
async def test_unmentioned_chat_is_recorded_but_not_answered(oracle_factory):
    oracle = oracle_factory()
    reactor, session, memory = await make_reactor(oracle, traits={"chattiness": 0.1})

    await reactor.on_chat("Steve", "nice weather")
    await reactor.drain()

    assert oracle.prompts == []
    assert session.world.chat_log == []
    assert memory.recent_events(1)[0].payload == {"sender": "Steve", "message": "nice weather"}


@pytest.mark.asyncio
async def test_own_messages_are_ignored(oracle_factory):
    reactor, _session, memory = await make_reactor(oracle_factory())

    await reactor.on_chat("AI_Friend", "hello AI_Friend")

    assert memory.recent_events(5) == []
    assert reactor.pending == 0


@pytest.mark.asyncio
async def test_oracle_failure_replies_with_fallback(oracle_factory):
    oracle = oracle_factory(error=ConnectionError("down"))
    reactor, session, _memory = await make_reactor(oracle)

    await reactor.on_chat("Steve", "@AI_Friend hi")
    await reactor.drain()

    assert session.world.chat_log == [("AI_Friend", reactor.gateway.fallback_reply)]


@pytest.mark.asyncio
async def test_peer_join_greets_depending_on_social(oracle_factory):
    social, session, memory = await make_reactor(oracle_factory(), traits={"social": 0.9}, roll=0.5)
    await social.on_peer_joined("Steve")
    await social.drain()
    assert session.world.chat_log == [("AI_Friend", "Hello Steve!")]
    assert memory.recent_events(1)[0].event_type == "peer_joined"

    shy, shy_session, shy_memory = await make_reactor(oracle_factory(), traits={"social": 0.2}, roll=0.5)
    await shy.on_peer_joined("Steve")
    await shy.drain()
    assert shy_session.world.chat_log == []
    assert shy_memory.recent_events(1)[0].event_type == "peer_joined"


@pytest.mark.asyncio
async def test_peer_left_and_low_health_are_recorded(oracle_factory):
    reactor, session, memory = await make_reactor(oracle_factory())

    await reactor.on_peer_left("Steve")
    await reactor.on_health_changed(15)
    await reactor.on_health_changed(6)

    assert [event.event_type for event in memory.recent_events(5)] == ["peer_left", "low_health"]
    assert memory.recent_events(1)[0].payload == {"health": 6}
    assert session.world.chat_log == []


@pytest.mark.asyncio
async def test_events_flow_from_the_session(oracle_factory):
    reactor, session, memory = await make_reactor(oracle_factory(["Hi Steve!"]))

    tasks = session.world.say("Steve", "AI_Friend, are you there?")
    await asyncio.gather(*tasks)
    await reactor.drain()

    assert ("AI_Friend", "Hi Steve!") in session.world.chat_log


@pytest.mark.asyncio
async def test_events_from_detached_sessions_are_ignored(oracle_factory):
    reactor, old_session, memory = await make_reactor(oracle_factory())
    driver = SimulatedDriver(old_session.world, auto_spawn=False)
    new_session = await driver.connect("localhost", 25565, reactor.identity)
    reactor.attach(new_session)

    await asyncio.gather(*old_session.emit("peer_joined", "Steve"))

    assert memory.recent_events(5) == []


@pytest.mark.asyncio
async def test_cancel_abandons_pending_replies(oracle_factory):
    oracle = oracle_factory(["late reply"])
    reactor, session, _memory = await make_reactor(oracle)
    reactor.reply_delay = (10, 10)

    await reactor.on_chat("Steve", "AI_Friend?")
    assert reactor.pending == 1
    await asyncio.sleep(0)

    await reactor.cancel()

    assert reactor.pending == 0
    assert session.world.chat_log == []


@pytest.mark.asyncio
async def test_detach_ignores_new_events_but_finishes_started_replies(oracle_factory):
    oracle = oracle_factory(["On my way!"])
    reactor, session, memory = await make_reactor(oracle)

    await reactor.on_chat("Steve", "AI_Friend, come here")
    reactor.detach()
    await asyncio.gather(*session.world.say("Alex", "AI_Friend?"))
    await reactor.drain()

    assert [event.payload["sender"] for event in memory.recent_events(5)] == ["Steve"]
    assert len(oracle.prompts) == 1
    assert ("AI_Friend", "On my way!") in session.world.chat_log
