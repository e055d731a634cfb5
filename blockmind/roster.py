"""
Roster loading: which agents to run and where to connect them.

A roster is a JSON file:

```json
{
  "server": {"host": "localhost", "port": 25565},
  "agents": [
    {"name": "AI_Explorer", "personality": {"curiosity": 0.9, "social": 0.7}},
    {"name": "AI_Friend", "personality": {"chattiness": 0.8, "social": 0.9}}
  ]
}
```

The ``server`` block is optional (defaults come from ``Config``) and any agent
entry may override ``host``/``port``. Personality traits not given keep their
defaults. Anything malformed raises ``ValueError`` before an agent is built.

Agents can also be given on the command line as ``NAME[:trait=value,...]``,
for example ``AI_Miner:curiosity=0.95,chattiness=0.1``.

Usage:
    loader = RosterLoader()
    identities = loader.load("roster")
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config import Config
from .schemas import AgentIdentity, Personality

DEFAULT_AGENTS: List[Dict[str, Any]] = [
    {"name": "AI_Explorer", "personality": {"curiosity": 0.9, "social": 0.7}},
    {"name": "AI_Friend", "personality": {"chattiness": 0.8, "social": 0.9}},
]


def _server_defaults(host: Optional[str], port: Optional[int]) -> Dict[str, Any]:
    return {
        "host": host or Config.SERVER_HOST,
        "port": port or Config.SERVER_PORT,
    }


def build_identity(entry: Dict[str, Any], *, host: Optional[str] = None, port: Optional[int] = None) -> AgentIdentity:
    """Validate one agent entry into an ``AgentIdentity``.

    Raises:
        ValueError: If the entry is not an object, lacks a name or has bad traits
    """
    if not isinstance(entry, dict):
        raise ValueError(f"Agent entry must be an object, got {type(entry).__name__}")
    if not entry.get("name"):
        raise ValueError("Each agent entry must include a 'name'")

    unknown = set(entry.get("personality") or {}) - set(Personality.model_fields)
    if unknown:
        raise ValueError(
            f"Agent '{entry['name']}' has unknown personality traits: {sorted(unknown)}"
        )

    data = {**_server_defaults(host, port), **entry}
    try:
        return AgentIdentity(**data)
    except ValidationError as exc:
        raise ValueError(f"Invalid agent entry '{entry['name']}': {exc}") from exc


def parse_roster(data: Dict[str, Any], *, host: Optional[str] = None, port: Optional[int] = None) -> List[AgentIdentity]:
    """Turn decoded roster JSON into identities.

    Explicit ``host``/``port`` arguments win over the file's ``server`` block.
    """
    if not isinstance(data, dict):
        raise ValueError("Roster must be a JSON object")
    agents = data.get("agents")
    if not isinstance(agents, list) or not agents:
        raise ValueError("Roster must have at least one agent")

    server = data.get("server") or {}
    if not isinstance(server, dict):
        raise ValueError("Roster 'server' must be an object")
    host = host or server.get("host")
    port = port or server.get("port")

    identities = [build_identity(entry, host=host, port=port) for entry in agents]
    _check_unique(identities)
    return identities


def parse_agent_arg(value: str, *, host: Optional[str] = None, port: Optional[int] = None) -> AgentIdentity:
    """Parse ``NAME[:trait=value,...]`` from the command line."""
    name, _, traits_text = value.partition(":")
    name = name.strip()
    if not name:
        raise ValueError(f"Agent argument '{value}' has no name")

    personality: Dict[str, float] = {}
    for item in filter(None, (part.strip() for part in traits_text.split(","))):
        trait, sep, raw = item.partition("=")
        if not sep:
            raise ValueError(f"Expected trait=value in '{item}'")
        try:
            personality[trait.strip()] = float(raw)
        except ValueError:
            raise ValueError(f"Trait '{trait.strip()}' must be a number, got '{raw}'") from None

    return build_identity({"name": name, "personality": personality}, host=host, port=port)


def default_roster(*, host: Optional[str] = None, port: Optional[int] = None) -> List[AgentIdentity]:
    return [build_identity(dict(entry), host=host, port=port) for entry in DEFAULT_AGENTS]


def _check_unique(identities: List[AgentIdentity]) -> None:
    seen = set()
    for identity in identities:
        if identity.name in seen:
            raise ValueError(f"Duplicate agent name in roster: {identity.name}")
        seen.add(identity.name)


class RosterLoader:
    """Load rosters by name from a directory, or from an explicit path."""

    def __init__(self, rosters_dir: Optional[Path] = None):
        self.rosters_dir = rosters_dir or Config.EXAMPLES_DIR

    def resolve(self, roster: str | Path) -> Path:
        path = Path(roster)
        if path.suffix != ".json" and not path.exists():
            path = self.rosters_dir / f"{roster}.json"
        return path

    def load(
        self,
        roster: str | Path,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> List[AgentIdentity]:
        """Read and validate a roster file.

        Raises:
            FileNotFoundError: If the roster file does not exist
            ValueError: If the JSON is malformed or fails validation
        """
        path = self.resolve(roster)
        if not path.exists():
            raise FileNotFoundError(f"Roster '{roster}' not found at {path}")
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise ValueError(f"Roster {path} is not valid JSON: {exc}") from exc
        return parse_roster(data, host=host, port=port)
