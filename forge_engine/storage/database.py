"""Database connection and initialization.

Features:
- Connection pooling
- Automatic migrations
- Health checks
- Schema versioning
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Tuple

import aiosqlite
import structlog

from ..exceptions import StorageError

logger = structlog.get_logger()


# Python 3.12+: sqlite3's default datetime adapter is deprecated.
# Register explicit adapters/converters once at import time to avoid warnings
# and keep consistent ISO-8601 persistence for datetime values.
sqlite3.register_adapter(datetime, lambda value: value.isoformat())
sqlite3.register_converter("TIMESTAMP", lambda b: datetime.fromisoformat(b.decode()))

# Initial schema migration
INITIAL_SCHEMA = """
-- Automations: if-trigger-then-action rules scoped to one board
CREATE TABLE automations (
    id TEXT PRIMARY KEY,
    board_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    trigger JSON NOT NULL,
    conditions JSON DEFAULT '[]',
    actions JSON NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    run_count INTEGER NOT NULL DEFAULT 0,
    last_run_at TIMESTAMP,
    created_by_id TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Append-only execution log, one row per triggered execution
CREATE TABLE automation_logs (
    id TEXT PRIMARY KEY,
    automation_id TEXT NOT NULL,
    trigger_data JSON,
    actions_executed JSON,
    success BOOLEAN NOT NULL,
    error TEXT,
    executed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (automation_id) REFERENCES automations(id) ON DELETE CASCADE
);

-- Agents: tool-using AI personas scoped to one workspace
CREATE TABLE agents (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    system_prompt TEXT NOT NULL,
    tools JSON DEFAULT '[]',
    triggers JSON DEFAULT '[]',
    guardrails JSON,
    status TEXT NOT NULL DEFAULT 'active',
    created_by_id TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Agent runs: written once at creation and once at a terminal state
CREATE TABLE agent_runs (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    triggered_by TEXT,
    status TEXT NOT NULL DEFAULT 'queued',
    messages JSON DEFAULT '[]',
    tool_calls JSON DEFAULT '[]',
    error TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    FOREIGN KEY (agent_id) REFERENCES agents(id) ON DELETE CASCADE
);

-- Indexes for performance
CREATE INDEX idx_automations_board_id ON automations(board_id);
CREATE INDEX idx_automations_status ON automations(status);
CREATE INDEX idx_automation_logs_automation ON automation_logs(automation_id, executed_at);
CREATE INDEX idx_agents_workspace_id ON agents(workspace_id);
CREATE INDEX idx_agents_status ON agents(status);
CREATE INDEX idx_agent_runs_agent ON agent_runs(agent_id, created_at);
"""


class DatabaseManager:
    """Manage database connections and initialization."""

    def __init__(self, database_url: str):
        """Initialize database manager."""
        self.database_path = self._parse_database_url(database_url)
        self._connection_pool: List[aiosqlite.Connection] = []
        self._pool_size = 5
        self._pool_lock = asyncio.Lock()

    def _parse_database_url(self, database_url: str) -> Path:
        """Parse database URL to path."""
        if database_url.startswith("sqlite:///"):
            return Path(database_url[10:])
        elif database_url.startswith("sqlite://"):
            return Path(database_url[9:])
        else:
            return Path(database_url)

    async def initialize(self) -> None:
        """Initialize database and run migrations."""
        logger.info("Initializing database", path=str(self.database_path))

        try:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            await self._run_migrations()
            await self._init_pool()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(
                f"Cannot initialize database at {self.database_path}: {e}"
            ) from e

        logger.info("Database initialization complete")

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self.database_path, detect_types=sqlite3.PARSE_DECLTYPES
        )
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON")
        return conn

    async def _run_migrations(self) -> None:
        """Run database migrations."""
        conn = await self._connect()
        try:
            current_version = await self._get_schema_version(conn)
            logger.info("Current schema version", version=current_version)

            for version, migration in self._get_migrations():
                if version > current_version:
                    logger.info("Running migration", version=version)
                    await conn.executescript(migration)
                    await self._set_schema_version(conn, version)

            await conn.commit()
        finally:
            await conn.close()

    async def _get_schema_version(self, conn: aiosqlite.Connection) -> int:
        """Get current schema version."""
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            )
        """
        )

        cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        return row[0] if row and row[0] else 0

    async def _set_schema_version(
        self, conn: aiosqlite.Connection, version: int
    ) -> None:
        """Set schema version."""
        await conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)", (version,)
        )

    def _get_migrations(self) -> List[Tuple[int, str]]:
        """Get migration scripts."""
        return [
            (1, INITIAL_SCHEMA),
            (
                2,
                """
                -- Enable WAL mode for better concurrent write performance
                PRAGMA journal_mode=WAL;
                """,
            ),
        ]

    async def _init_pool(self) -> None:
        """Initialize connection pool."""
        logger.info("Initializing connection pool", size=self._pool_size)

        async with self._pool_lock:
            for _ in range(self._pool_size):
                self._connection_pool.append(await self._connect())

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get database connection from pool."""
        async with self._pool_lock:
            if self._connection_pool:
                conn = self._connection_pool.pop()
            else:
                conn = await self._connect()

        try:
            yield conn
        finally:
            async with self._pool_lock:
                if len(self._connection_pool) < self._pool_size:
                    self._connection_pool.append(conn)
                else:
                    await conn.close()

    async def close(self) -> None:
        """Close all connections in pool."""
        logger.info("Closing database connections")

        async with self._pool_lock:
            for conn in self._connection_pool:
                await conn.close()
            self._connection_pool.clear()

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.get_connection() as conn:
                await conn.execute("SELECT 1")
                return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False
