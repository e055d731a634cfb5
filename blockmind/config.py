"""
Blockmind Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Application configuration loaded from environment variables."""

    # Policy oracle
    # "ollama" talks to a local Ollama server; any other value is handed to mirascope
    ORACLE_PROVIDER: str = os.getenv("ORACLE_PROVIDER", "ollama")
    ORACLE_MODEL: str = os.getenv("ORACLE_MODEL", "gemma3:1b")
    OLLAMA_BASE_URL: str | None = os.getenv("OLLAMA_BASE_URL")
    ORACLE_TIMEOUT_SECONDS: float = float(os.getenv("ORACLE_TIMEOUT_SECONDS", "30"))
    ORACLE_ACTION_MAX_TOKENS: int = int(os.getenv("ORACLE_ACTION_MAX_TOKENS", "20"))
    ORACLE_REPLY_MAX_TOKENS: int = int(os.getenv("ORACLE_REPLY_MAX_TOKENS", "50"))
    DEFAULT_ACTION: str = os.getenv("DEFAULT_ACTION", "explore")

    # Game server
    SERVER_HOST: str = os.getenv("SERVER_HOST", "localhost")
    SERVER_PORT: int = int(os.getenv("SERVER_PORT", "25565"))

    # Long-term memory store
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "sqlite")
    STORE_PATH: str = os.getenv("STORE_PATH", "data/agents.db")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/blockmind")

    # Loop timing (seconds)
    THINK_MIN_SECONDS: float = float(os.getenv("THINK_MIN_SECONDS", "3"))
    THINK_MAX_SECONDS: float = float(os.getenv("THINK_MAX_SECONDS", "8"))
    RECONNECT_DELAY_SECONDS: float = float(os.getenv("RECONNECT_DELAY_SECONDS", "5"))
    SPAWN_SETTLE_SECONDS: float = float(os.getenv("SPAWN_SETTLE_SECONDS", "2"))
    AGENT_STAGGER_SECONDS: float = float(os.getenv("AGENT_STAGGER_SECONDS", "3"))

    # Debugging
    DEBUG_LLM: bool = _env_flag("DEBUG_LLM")

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    EXAMPLES_DIR: Path = PROJECT_ROOT / "examples"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are inconsistent."""
        from .schemas import ActionToken

        if cls.DEFAULT_ACTION not in {token.value for token in ActionToken}:
            raise ValueError(
                f"DEFAULT_ACTION '{cls.DEFAULT_ACTION}' is not a known action. "
                f"Choose one of: {', '.join(token.value for token in ActionToken)}"
            )

        if cls.THINK_MIN_SECONDS <= 0 or cls.THINK_MAX_SECONDS < cls.THINK_MIN_SECONDS:
            raise ValueError(
                "THINK_MIN_SECONDS must be > 0 and THINK_MAX_SECONDS must be >= THINK_MIN_SECONDS"
            )

        if cls.ORACLE_TIMEOUT_SECONDS <= 0:
            raise ValueError("ORACLE_TIMEOUT_SECONDS must be > 0")

        if cls.STORE_BACKEND not in {"sqlite", "jsonl", "memory", "postgres"}:
            raise ValueError(
                f"Unknown STORE_BACKEND '{cls.STORE_BACKEND}'. "
                "Use one of: sqlite, jsonl, memory, postgres"
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Blockmind Configuration:",
            f"  Oracle: {cls.ORACLE_PROVIDER}/{cls.ORACLE_MODEL} (timeout {cls.ORACLE_TIMEOUT_SECONDS:g}s)",
            f"  Default Action: {cls.DEFAULT_ACTION}",
            f"  Server: {cls.SERVER_HOST}:{cls.SERVER_PORT}",
            f"  Store: {cls.STORE_BACKEND} ({cls.STORE_PATH if cls.STORE_BACKEND != 'postgres' else cls.DATABASE_URL})",
            f"  Think Window: {cls.THINK_MIN_SECONDS:g}-{cls.THINK_MAX_SECONDS:g}s",
        ]
        return "\n".join(lines)
