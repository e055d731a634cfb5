"""Driver-level state models.

These describe what an environment driver reports about the world, before the
perception builder turns it into a compact snapshot. They carry raw values
(time of day in ticks, rain flag) that never reach oracle prompts directly.
"""

from __future__ import annotations

import math
from typing import List, Optional

from pydantic import BaseModel, Field


class Position(BaseModel):
    """A point in the 3-D block world."""

    x: float
    y: float
    z: float

    def distance_to(self, other: "Position") -> float:
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )


class InventoryItem(BaseModel):
    """A stack of items held by the agent."""

    name: str = Field(..., description="Item identifier (oak_log, bread, stick, ...)")
    count: int = Field(..., ge=0, description="Stack size")


class PlayerState(BaseModel):
    """A player known to the driver. Position is None when out of render range."""

    name: str
    position: Optional[Position] = None


class DriverState(BaseModel):
    """Raw environment state as returned by ``EnvironmentSession.current_state()``."""

    # None until the agent entity has spawned in the world
    position: Optional[Position] = Field(None, description="Agent position, None before spawn")
    health: float = Field(20.0, ge=0, description="Health points (0-20)")
    food: float = Field(20.0, ge=0, description="Hunger points (0-20)")
    # Minecraft-style day clock: 0..24000 ticks
    time_of_day: int = Field(0, ge=0, description="Day clock in ticks")
    is_raining: bool = False
    players: List[PlayerState] = Field(default_factory=list)
    inventory: List[InventoryItem] = Field(default_factory=list)
    biome: Optional[str] = None
    notable_blocks: List[str] = Field(default_factory=list)
