"""Environment driver interfaces and the in-process simulated world."""

from .schemas import DriverState, InventoryItem, PlayerState, Position
from .driver import (
    ALL_EVENTS,
    CHAT_RECEIVED,
    DISCONNECTED,
    HEALTH_CHANGED,
    KICKED,
    PEER_JOINED,
    PEER_LEFT,
    SPAWNED,
    EnvironmentDriver,
    EnvironmentSession,
)
from .simulated import SimulatedDriver, SimulatedSession, SimulatedWorld

__all__ = [
    "DriverState",
    "InventoryItem",
    "PlayerState",
    "Position",
    "ALL_EVENTS",
    "CHAT_RECEIVED",
    "DISCONNECTED",
    "HEALTH_CHANGED",
    "KICKED",
    "PEER_JOINED",
    "PEER_LEFT",
    "SPAWNED",
    "EnvironmentDriver",
    "EnvironmentSession",
    "SimulatedDriver",
    "SimulatedSession",
    "SimulatedWorld",
]
