"""
LongTermStore interface for pluggable durable memory backends.

This module provides the abstract LongTermStore interface and four concrete
implementations for the agents' long-term log (experiences, interactions and
visited locations).

Core principle: every row carries the agent name, so several agents can write
to one store (or to several handles on one database) without row collision.

Included implementations:
1. InMemoryStore - Dict-based storage, data lost on exit (testing, prototyping)
2. JsonlStore - Append-only JSON Lines files, one directory per agent
3. SqliteStore - Single-file relational store (default)
4. PostgresStore - Database storage via asyncpg (shared, production)

Query semantics (all backends):
- Results are newest first (timestamp descending, insertion order breaks ties)
- ``limit`` bounds the number of rows returned
- ``get_successful_experiences`` only returns rows with success=True

Usage pattern:
    store = SqliteStore("data/agents.db")
    await store.initialize()
    await store.save_experience(record)
    rows = await store.get_successful_experiences("AI_Explorer", "explore", limit=5)
    await store.close()
"""

import asyncio
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from blockmind.schemas import ExperienceRecord, InteractionRecord, LocationRecord
from .config import Config

try:  # Optional dependency (only needed for PostgresStore)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for sqlite/jsonl usage
    asyncpg = None


RecordT = TypeVar("RecordT", bound=BaseModel)


class LongTermStore(ABC):
    """Abstract base class for the durable half of tiered memory.

    Async interface rationale:
    - Writes happen concurrently with the decision loop (don't block cognition)
    - Database and file I/O can be slow; async keeps other agents' loops running
    - initialize() and close() manage connection lifecycle (pools, files, etc.)
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections / create tables. Called once before first use."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Called once after the last write completed."""
        pass

    @abstractmethod
    async def save_experience(self, record: ExperienceRecord) -> None:
        pass

    @abstractmethod
    async def save_interaction(self, record: InteractionRecord) -> None:
        pass

    @abstractmethod
    async def save_location(self, record: LocationRecord) -> None:
        pass

    @abstractmethod
    async def get_successful_experiences(
        self, agent_name: str, action: str, limit: int = 10
    ) -> List[ExperienceRecord]:
        """Most recent successful experiences of ``agent_name`` for ``action``."""
        pass

    @abstractmethod
    async def get_interactions(
        self, agent_name: str, peer: str, limit: int = 5
    ) -> List[InteractionRecord]:
        """Most recent interactions of ``agent_name`` with ``peer``."""
        pass

    @abstractmethod
    async def get_locations(self, agent_name: str, limit: int = 20) -> List[LocationRecord]:
        """Most recently visited locations of ``agent_name``."""
        pass


def _newest_first(rows: List[Tuple[int, RecordT]], limit: int) -> List[RecordT]:
    # rows are (insertion_seq, record); timestamp desc, later insertion wins ties
    ordered = sorted(rows, key=lambda item: (item[1].timestamp, item[0]), reverse=True)
    return [record for _, record in ordered[: max(limit, 0)]]


class InMemoryStore(LongTermStore):
    """In-memory store using Python lists (no database, no files).

    Data is ephemeral - lost when the process exits. Perfect for unit tests and
    for running agents without any storage setup.
    """

    def __init__(self):
        self.experiences: List[Tuple[int, ExperienceRecord]] = []
        self.interactions: List[Tuple[int, InteractionRecord]] = []
        self.locations: List[Tuple[int, LocationRecord]] = []
        self._seq = 0

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept after close so callers can inspect it post-run
        pass

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def save_experience(self, record: ExperienceRecord) -> None:
        self.experiences.append((self._next(), record))

    async def save_interaction(self, record: InteractionRecord) -> None:
        self.interactions.append((self._next(), record))

    async def save_location(self, record: LocationRecord) -> None:
        self.locations.append((self._next(), record))

    async def get_successful_experiences(
        self, agent_name: str, action: str, limit: int = 10
    ) -> List[ExperienceRecord]:
        rows = [
            (seq, rec)
            for seq, rec in self.experiences
            if rec.agent_name == agent_name and rec.action == action and rec.success
        ]
        return _newest_first(rows, limit)

    async def get_interactions(
        self, agent_name: str, peer: str, limit: int = 5
    ) -> List[InteractionRecord]:
        rows = [
            (seq, rec)
            for seq, rec in self.interactions
            if rec.agent_name == agent_name and rec.peer == peer
        ]
        return _newest_first(rows, limit)

    async def get_locations(self, agent_name: str, limit: int = 20) -> List[LocationRecord]:
        rows = [(seq, rec) for seq, rec in self.locations if rec.agent_name == agent_name]
        return _newest_first(rows, limit)


class JsonlStore(LongTermStore):
    """File-based store using JSON Lines, one directory per agent.

    Directory structure:
    ```
    {base_path}/
      AI_Explorer/
        experiences.jsonl
        interactions.jsonl
        locations.jsonl
      AI_Friend/
        ...
    ```

    Files are append-only. All file I/O runs in a worker thread
    (asyncio.to_thread); a lock keeps concurrent appends from interleaving.
    """

    def __init__(self, base_path: Path | str = "agent_memory"):
        self.base_path = Path(base_path)
        self._lock = threading.Lock()

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        # Nothing to clean up for JSONL files
        return None

    async def save_experience(self, record: ExperienceRecord) -> None:
        await self._append(record.agent_name, "experiences", record)

    async def save_interaction(self, record: InteractionRecord) -> None:
        await self._append(record.agent_name, "interactions", record)

    async def save_location(self, record: LocationRecord) -> None:
        await self._append(record.agent_name, "locations", record)

    async def get_successful_experiences(
        self, agent_name: str, action: str, limit: int = 10
    ) -> List[ExperienceRecord]:
        rows = await self._read(agent_name, "experiences", ExperienceRecord)
        rows = [(seq, rec) for seq, rec in rows if rec.action == action and rec.success]
        return _newest_first(rows, limit)

    async def get_interactions(
        self, agent_name: str, peer: str, limit: int = 5
    ) -> List[InteractionRecord]:
        rows = await self._read(agent_name, "interactions", InteractionRecord)
        return _newest_first([(seq, rec) for seq, rec in rows if rec.peer == peer], limit)

    async def get_locations(self, agent_name: str, limit: int = 20) -> List[LocationRecord]:
        rows = await self._read(agent_name, "locations", LocationRecord)
        return _newest_first(rows, limit)

    def _path(self, agent_name: str, kind: str) -> Path:
        return self.base_path / agent_name / f"{kind}.jsonl"

    async def _append(self, agent_name: str, kind: str, record: BaseModel) -> None:
        path = self._path(agent_name, kind)
        line = record.model_dump_json()

        def _write() -> None:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(line)
                    handle.write("\n")

        await asyncio.to_thread(_write)

    async def _read(
        self, agent_name: str, kind: str, model: Type[RecordT]
    ) -> List[Tuple[int, RecordT]]:
        path = self._path(agent_name, kind)
        if not path.exists():
            return []

        def _load() -> List[str]:
            with self._lock:
                return path.read_text("utf-8").splitlines()

        lines = await asyncio.to_thread(_load)
        return [
            (index, model.model_validate_json(line))
            for index, line in enumerate(lines)
            if line.strip()
        ]


def _to_utc_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Fixed-width UTC text so lexical ORDER BY matches chronological order
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


class SqliteStore(LongTermStore):
    """SQLite-backed store. One file holds every agent's rows.

    sqlite3 is blocking, so every statement runs on a worker thread. The
    connection is shared between threads and guarded by a lock.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS experiences (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            agent_name TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            action TEXT NOT NULL,
            context TEXT NOT NULL,
            result TEXT NOT NULL,
            success INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS interactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            agent_name TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            other_agent TEXT NOT NULL,
            message TEXT NOT NULL,
            response TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS locations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            agent_name TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            x REAL NOT NULL,
            y REAL NOT NULL,
            z REAL NOT NULL,
            biome TEXT NOT NULL DEFAULT 'unknown',
            interesting_blocks TEXT NOT NULL DEFAULT '[]'
        );

        CREATE INDEX IF NOT EXISTS idx_experiences_agent_action
            ON experiences(agent_name, action, timestamp DESC);
        CREATE INDEX IF NOT EXISTS idx_interactions_agent_peer
            ON interactions(agent_name, other_agent, timestamp DESC);
        CREATE INDEX IF NOT EXISTS idx_locations_agent
            ON locations(agent_name, timestamp DESC);
    """

    def __init__(self, path: Path | str = "data/agents.db"):
        self.path = Path(path)
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    async def initialize(self) -> None:
        if self.conn is not None:
            return

        def _open() -> sqlite3.Connection:
            if str(self.path) != ":memory:":
                self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(self.SCHEMA)
            conn.commit()
            return conn

        self.conn = await asyncio.to_thread(_open)

    async def close(self) -> None:
        if self.conn is None:
            return
        conn, self.conn = self.conn, None

        def _close() -> None:
            with self._lock:
                conn.close()

        await asyncio.to_thread(_close)

    async def _execute(self, query: str, params: tuple) -> None:
        assert self.conn is not None, "Store not initialized"
        conn = self.conn

        def _run() -> None:
            with self._lock:
                conn.execute(query, params)
                conn.commit()

        await asyncio.to_thread(_run)

    async def _fetch(self, query: str, params: tuple) -> List[sqlite3.Row]:
        assert self.conn is not None, "Store not initialized"
        conn = self.conn

        def _run() -> List[sqlite3.Row]:
            with self._lock:
                return conn.execute(query, params).fetchall()

        return await asyncio.to_thread(_run)

    async def save_experience(self, record: ExperienceRecord) -> None:
        await self._execute(
            """
            INSERT INTO experiences (agent_name, timestamp, action, context, result, success)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.agent_name,
                _to_utc_text(record.timestamp),
                record.action,
                record.snapshot,
                record.result,
                1 if record.success else 0,
            ),
        )

    async def save_interaction(self, record: InteractionRecord) -> None:
        await self._execute(
            """
            INSERT INTO interactions (agent_name, timestamp, other_agent, message, response)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                record.agent_name,
                _to_utc_text(record.timestamp),
                record.peer,
                record.message,
                record.reply,
            ),
        )

    async def save_location(self, record: LocationRecord) -> None:
        await self._execute(
            """
            INSERT INTO locations (agent_name, timestamp, x, y, z, biome, interesting_blocks)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.agent_name,
                _to_utc_text(record.timestamp),
                record.x,
                record.y,
                record.z,
                record.biome,
                json.dumps(record.notable_blocks),
            ),
        )

    async def get_successful_experiences(
        self, agent_name: str, action: str, limit: int = 10
    ) -> List[ExperienceRecord]:
        rows = await self._fetch(
            """
            SELECT agent_name, timestamp, action, context, result, success
            FROM experiences
            WHERE agent_name = ? AND success = 1 AND action = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (agent_name, action, limit),
        )
        return [
            ExperienceRecord(
                agent_name=row["agent_name"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                action=row["action"],
                snapshot=row["context"],
                result=row["result"],
                success=bool(row["success"]),
            )
            for row in rows
        ]

    async def get_interactions(
        self, agent_name: str, peer: str, limit: int = 5
    ) -> List[InteractionRecord]:
        rows = await self._fetch(
            """
            SELECT agent_name, timestamp, other_agent, message, response
            FROM interactions
            WHERE agent_name = ? AND other_agent = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (agent_name, peer, limit),
        )
        return [
            InteractionRecord(
                agent_name=row["agent_name"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                peer=row["other_agent"],
                message=row["message"],
                reply=row["response"],
            )
            for row in rows
        ]

    async def get_locations(self, agent_name: str, limit: int = 20) -> List[LocationRecord]:
        rows = await self._fetch(
            """
            SELECT agent_name, timestamp, x, y, z, biome, interesting_blocks
            FROM locations
            WHERE agent_name = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (agent_name, limit),
        )
        return [
            LocationRecord(
                agent_name=row["agent_name"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                x=row["x"],
                y=row["y"],
                z=row["z"],
                biome=row["biome"],
                notable_blocks=json.loads(row["interesting_blocks"] or "[]"),
            )
            for row in rows
        ]


class PostgresStore(LongTermStore):
    """PostgreSQL-backed store using an asyncpg connection pool.

    Suited to many agents across several processes writing to one database.
    Tables are created on initialize() if they do not exist.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS agent_experiences (
            id BIGSERIAL PRIMARY KEY,
            agent_name TEXT NOT NULL,
            timestamp TIMESTAMPTZ NOT NULL,
            action TEXT NOT NULL,
            context JSONB NOT NULL,
            result JSONB NOT NULL,
            success BOOLEAN NOT NULL
        );
        CREATE TABLE IF NOT EXISTS agent_interactions (
            id BIGSERIAL PRIMARY KEY,
            agent_name TEXT NOT NULL,
            timestamp TIMESTAMPTZ NOT NULL,
            peer TEXT NOT NULL,
            message TEXT NOT NULL,
            reply TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS agent_locations (
            id BIGSERIAL PRIMARY KEY,
            agent_name TEXT NOT NULL,
            timestamp TIMESTAMPTZ NOT NULL,
            x DOUBLE PRECISION NOT NULL,
            y DOUBLE PRECISION NOT NULL,
            z DOUBLE PRECISION NOT NULL,
            biome TEXT NOT NULL DEFAULT 'unknown',
            notable_blocks TEXT[] NOT NULL DEFAULT '{}'
        );
    """

    def __init__(self, database_url: Optional[str] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresStore. Install with `pip install blockmind[postgres]`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.pool: Optional["asyncpg.Pool"] = None

    async def initialize(self) -> None:
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.database_url)
            async with self.pool.acquire() as conn:
                await conn.execute(self.SCHEMA)

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def save_experience(self, record: ExperienceRecord) -> None:
        assert self.pool is not None, "Store not initialized"

        query = """
            INSERT INTO agent_experiences (agent_name, timestamp, action, context, result, success)
            VALUES ($1, $2, $3, $4::jsonb, $5::jsonb, $6)
        """
        async with self.pool.acquire() as conn:
            await conn.execute(
                query,
                record.agent_name,
                record.timestamp,
                record.action,
                record.snapshot,
                record.result,
                record.success,
            )

    async def save_interaction(self, record: InteractionRecord) -> None:
        assert self.pool is not None, "Store not initialized"

        query = """
            INSERT INTO agent_interactions (agent_name, timestamp, peer, message, reply)
            VALUES ($1, $2, $3, $4, $5)
        """
        async with self.pool.acquire() as conn:
            await conn.execute(
                query, record.agent_name, record.timestamp, record.peer, record.message, record.reply
            )

    async def save_location(self, record: LocationRecord) -> None:
        assert self.pool is not None, "Store not initialized"

        query = """
            INSERT INTO agent_locations (agent_name, timestamp, x, y, z, biome, notable_blocks)
            VALUES ($1, $2, $3, $4, $5, $6, $7::text[])
        """
        async with self.pool.acquire() as conn:
            await conn.execute(
                query,
                record.agent_name,
                record.timestamp,
                record.x,
                record.y,
                record.z,
                record.biome,
                record.notable_blocks,
            )

    async def get_successful_experiences(
        self, agent_name: str, action: str, limit: int = 10
    ) -> List[ExperienceRecord]:
        assert self.pool is not None, "Store not initialized"

        query = """
            SELECT agent_name, timestamp, action, context::text AS context, result::text AS result, success
            FROM agent_experiences
            WHERE agent_name = $1 AND action = $2 AND success
            ORDER BY timestamp DESC, id DESC
            LIMIT $3
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, agent_name, action, limit)

        return [
            ExperienceRecord(
                agent_name=row["agent_name"],
                timestamp=row["timestamp"],
                action=row["action"],
                snapshot=row["context"],
                result=row["result"],
                success=row["success"],
            )
            for row in rows
        ]

    async def get_interactions(
        self, agent_name: str, peer: str, limit: int = 5
    ) -> List[InteractionRecord]:
        assert self.pool is not None, "Store not initialized"

        query = """
            SELECT agent_name, timestamp, peer, message, reply
            FROM agent_interactions
            WHERE agent_name = $1 AND peer = $2
            ORDER BY timestamp DESC, id DESC
            LIMIT $3
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, agent_name, peer, limit)

        return [InteractionRecord(**dict(row)) for row in rows]

    async def get_locations(self, agent_name: str, limit: int = 20) -> List[LocationRecord]:
        assert self.pool is not None, "Store not initialized"

        query = """
            SELECT agent_name, timestamp, x, y, z, biome, notable_blocks
            FROM agent_locations
            WHERE agent_name = $1
            ORDER BY timestamp DESC, id DESC
            LIMIT $2
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, agent_name, limit)

        return [
            LocationRecord(**{**dict(row), "notable_blocks": list(row["notable_blocks"] or [])})
            for row in rows
        ]


def build_store(
    backend: Optional[str] = None,
    *,
    path: Optional[str] = None,
    database_url: Optional[str] = None,
) -> LongTermStore:
    """Create a store for the configured backend name."""

    backend = (backend or Config.STORE_BACKEND).lower()
    stores: Dict[str, Callable[[], LongTermStore]] = {
        "memory": lambda: InMemoryStore(),
        "jsonl": lambda: JsonlStore(path or Path(Config.STORE_PATH).with_suffix("")),
        "sqlite": lambda: SqliteStore(path or Config.STORE_PATH),
        "postgres": lambda: PostgresStore(database_url),
    }
    if backend not in stores:
        raise ValueError(f"Unknown store backend '{backend}'")
    return stores[backend]()
