"""Built-in capability handlers.

Each handler is an ``async (ActionContext) -> HandlerOutcome`` callable. A
handler may issue several driver calls (craft checks the inventory, makes an
intermediate material, then a tool); those sub-steps stay internal and only the
final outcome is recorded. Raising is fine: the dispatcher turns any exception
into a failed ``ActionResult``.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List

from blockmind.environment.driver import EnvironmentSession
from blockmind.environment.schemas import DriverState
from blockmind.schemas import AgentIdentity, PerceptionSnapshot

EXPLORE_RADIUS = 25.0
FOLLOW_DISTANCE = 3.0
MAX_FOOD = 20
FOOD_KEYWORDS = ("bread", "apple", "cooked")
# Crafting batches; each stick batch yields four sticks, enough for both tools
PLANK_BATCHES = 4
STICK_BATCHES = 1

CHAT_LINES = [
    "This world is beautiful!",
    "What is everyone up to today?",
    "Shall we build something together?",
    "Exploring new places is so much fun!",
    "Can I help anyone with anything?",
    "Lovely weather today.",
]


@dataclass
class ActionContext:
    """What a handler gets to work with."""

    session: EnvironmentSession
    snapshot: PerceptionSnapshot
    identity: AgentIdentity
    rng: random.Random


@dataclass
class HandlerOutcome:
    description: str
    success: bool = True
    details: Dict[str, Any] = field(default_factory=dict)


async def explore(ctx: ActionContext) -> HandlerOutcome:
    """Walk toward a random point within EXPLORE_RADIUS blocks."""
    origin = ctx.snapshot.position
    x = origin.x + (ctx.rng.random() - 0.5) * 2 * EXPLORE_RADIUS
    z = origin.z + (ctx.rng.random() - 0.5) * 2 * EXPLORE_RADIUS
    await ctx.session.move_toward(x, z)
    return HandlerOutcome(
        f"Exploring toward ({x:.0f}, {z:.0f})",
        details={
            "location": {"x": x, "y": origin.y, "z": z},
            "biome": ctx.snapshot.biome,
            "notable_blocks": list(ctx.snapshot.notable_blocks),
        },
    )


async def follow_player(ctx: ActionContext) -> HandlerOutcome:
    if not ctx.snapshot.nearby:
        return HandlerOutcome("No players nearby to follow", details={"target": None})
    target = ctx.snapshot.nearby[0].name
    await ctx.session.follow_entity(target, FOLLOW_DISTANCE)
    return HandlerOutcome(f"Following {target}", details={"target": target})


async def chat(ctx: ActionContext) -> HandlerOutcome:
    line = ctx.rng.choice(CHAT_LINES)
    await ctx.session.send_chat(line)
    return HandlerOutcome(f"Said: {line}", details={"message": line})


async def eat(ctx: ActionContext) -> HandlerOutcome:
    if ctx.snapshot.food >= MAX_FOOD:
        return HandlerOutcome("Not hungry")
    food = ctx.snapshot.find_item(*FOOD_KEYWORDS)
    if food is None:
        return HandlerOutcome("Nothing to eat", success=False, details={"missing": "food"})
    await ctx.session.equip_and_consume(food.name)
    return HandlerOutcome(f"Ate {food.name}", details={"item": food.name})


def _count(state: DriverState, fragment: str) -> int:
    return sum(item.count for item in state.inventory if fragment in item.name)


def _has_tool(state: DriverState, suffix: str) -> bool:
    return any(item.name.endswith(suffix) for item in state.inventory)


async def craft(ctx: ActionContext) -> HandlerOutcome:
    """Logs -> planks -> crafting table, otherwise sticks -> wooden tools.

    Stops at the first missing prerequisite.
    """
    session = ctx.session
    crafted: List[str] = []

    if not ctx.snapshot.has_item("crafting_table"):
        logs = ctx.snapshot.find_item("log", "wood")
        if logs is not None:
            await session.craft("planks", min(PLANK_BATCHES, logs.count))
            crafted.append("planks")
            await session.send_chat("I made some planks!")
            await session.craft("crafting_table", 1)
            crafted.append("crafting_table")
            await session.send_chat("I made a crafting table!")
            return HandlerOutcome(
                "Crafted planks and a crafting table", details={"crafted": crafted}
            )

    state = await session.current_state()
    if _has_tool(state, "_pickaxe") and _has_tool(state, "_axe"):
        return HandlerOutcome("Already has basic tools", details={"crafted": crafted})

    if _count(state, "stick") < 2:
        if _count(state, "planks") < 2:
            await session.send_chat("Not enough materials for crafting...")
            return HandlerOutcome(
                "Not enough planks for sticks", success=False, details={"missing": "planks"}
            )
        await session.craft("stick", STICK_BATCHES)
        crafted.append("stick")
        state = await session.current_state()

    if _count(state, "stick") < 2 or _count(state, "planks") < 3:
        await session.send_chat("Not enough materials for crafting...")
        return HandlerOutcome(
            "Not enough materials for a tool",
            success=False,
            details={"missing": "planks", "crafted": crafted},
        )

    if _has_tool(state, "_pickaxe"):
        recipe, label = "wooden_axe", "axe"
    else:
        recipe, label = "wooden_pickaxe", "pickaxe"
    await session.craft(recipe, 1)
    crafted.append(recipe)
    await session.send_chat(f"I made a wooden {label}!")
    return HandlerOutcome(f"Crafted a wooden {label}", details={"crafted": crafted})
