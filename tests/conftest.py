"""Shared fixtures: a scripted oracle and snapshot builders."""

from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from blockmind.environment.schemas import InventoryItem, Position
from blockmind.schemas import PeerDescriptor, PerceptionSnapshot


class ScriptedOracle:
    """Oracle double that replays canned answers and records prompts."""

    def __init__(
        self,
        responses: Optional[List[str]] = None,
        *,
        error: Optional[Exception] = None,
        available: bool = True,
        default: str = "explore",
    ) -> None:
        self.responses = list(responses or [])
        self.error = error
        self.available = available
        self.default = default
        self.prompts: List[Tuple[str, int]] = []

    async def generate(self, prompt: str, max_tokens: int) -> str:
        self.prompts.append((prompt, max_tokens))
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return self.default

    async def check_available(self) -> bool:
        return self.available


def build_snapshot(
    *,
    agent_name: str = "AI_Explorer",
    health: float = 20,
    food: float = 20,
    position: Optional[Position] = None,
    nearby: Tuple[PeerDescriptor, ...] = (),
    inventory: Optional[dict] = None,
    biome: Optional[str] = "plains",
    notable_blocks: Tuple[str, ...] = (),
) -> PerceptionSnapshot:
    return PerceptionSnapshot(
        agent_name=agent_name,
        health=health,
        food=food,
        position=position or Position(x=0, y=64, z=0),
        time_of_day="day",
        weather="clear",
        nearby=nearby,
        inventory=tuple(
            InventoryItem(name=name, count=count) for name, count in (inventory or {}).items()
        ),
        biome=biome,
        notable_blocks=notable_blocks,
    )


@pytest.fixture(autouse=True)
def _plain_output(monkeypatch):
    monkeypatch.setenv("BLOCKMIND_NO_COLOR", "1")


@pytest.fixture
def oracle_factory():
    return ScriptedOracle


@pytest.fixture
def make_snapshot():
    return build_snapshot
