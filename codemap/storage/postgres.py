"""PostgreSQL replica store for durable, listable payload records."""

import asyncio
import re
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import pool, sql
from psycopg2.extras import RealDictCursor

from .base import StoredRecord
from codemap.exceptions import ConfigurationError
from codemap.utils.config import PostgresConfig
from codemap.utils.logging import get_logger
from codemap.utils.retry import RetryConfig, connect_with_retry

logger = get_logger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class PostgresReplicaStore:
    """Replica store over a psycopg2 connection pool.

    psycopg2 is blocking, so every query runs in a worker thread. A query
    abandoned by a timeout finishes in its thread and returns its
    connection to the pool on its own. If the pool or the table could not
    be set up at startup, the first query sets them up.

    Table: hash_key (primary key), payload, expires_at (epoch seconds)
    """

    name = "postgres"

    PURGE_BATCH_SIZE = 1000

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        user: str = "codemap",
        password: str = "codemap",
        database: str = "codemap",
        table: str = "code_map",
        min_connections: int = 1,
        max_connections: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        if not _IDENTIFIER.match(table):
            raise ConfigurationError(f"Invalid table name: {table!r}")

        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.table = table
        self.min_connections = min_connections
        self.max_connections = max_connections

        self._retry_config = RetryConfig.for_connect(
            max_retries, retry_delay, (psycopg2.OperationalError, psycopg2.InterfaceError)
        )

        self._pool: Optional[pool.ThreadedConnectionPool] = None
        self._schema_ready = False
        self._lock = threading.Lock()
        self._table = sql.Identifier(table)

    @classmethod
    def from_config(cls, config: PostgresConfig) -> "PostgresReplicaStore":
        return cls(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            database=config.database,
            table=config.table,
            min_connections=config.min_connections,
            max_connections=config.max_connections,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )

    # =========================================================================
    # Connection management
    # =========================================================================

    def _create_pool(self) -> pool.ThreadedConnectionPool:
        """Return the pool, building it on first call.

        Callers run in worker threads, so creation is serialized and the
        first pool built is the only one.
        """
        with self._lock:
            if self._pool is None:
                self._pool = pool.ThreadedConnectionPool(
                    self.min_connections,
                    self.max_connections,
                    host=self.host,
                    port=self.port,
                    user=self.user,
                    password=self.password,
                    database=self.database,
                    connect_timeout=10,
                )
            return self._pool

    def _ready_pool(self) -> pool.ThreadedConnectionPool:
        """Pool with the table in place; recovers from a failed startup."""
        pool_ = self._pool
        if pool_ is None:
            pool_ = self._create_pool()
        if not self._schema_ready:
            self._init_schema_sync(pool_)
        return pool_

    async def connect(self) -> None:
        """Create the pool with retries, then make sure the table exists."""
        await connect_with_retry(
            lambda: asyncio.to_thread(self._create_pool),
            backend=self.name,
            config=self._retry_config,
        )
        await self.init_schema()
        logger.info(f"PostgresReplicaStore initialized at {self.host}:{self.port}/{self.database}")

    @staticmethod
    @contextmanager
    def _borrow(pool_: pool.ThreadedConnectionPool):
        conn = pool_.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pool_.putconn(conn)

    @contextmanager
    def _get_connection(self):
        with self._borrow(self._ready_pool()) as conn:
            yield conn

    def _execute(
        self,
        query: sql.Composable,
        params: tuple = None,
        fetch: bool = False,
    ) -> Any:
        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                if fetch:
                    return [dict(row) for row in cur.fetchall()]
                return cur.rowcount

    async def _run(self, query: sql.Composable, params: tuple = None, fetch: bool = False) -> Any:
        return await asyncio.to_thread(self._execute, query, params, fetch)

    def _init_schema_sync(self, pool_: pool.ThreadedConnectionPool) -> None:
        with self._lock:
            if self._schema_ready:
                return
            with self._borrow(pool_) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql.SQL("""
                        CREATE TABLE IF NOT EXISTS {table} (
                            hash_key TEXT PRIMARY KEY,
                            payload TEXT NOT NULL,
                            expires_at BIGINT NOT NULL
                        )
                    """).format(table=self._table))
                    cur.execute(sql.SQL("""
                        CREATE INDEX IF NOT EXISTS {index}
                        ON {table}(expires_at)
                    """).format(
                        index=sql.Identifier(f"idx_{self.table}_expires_at"),
                        table=self._table,
                    ))
            self._schema_ready = True
        logger.debug(f"PostgreSQL table {self.table} initialized")

    async def init_schema(self) -> None:
        await asyncio.to_thread(self._ready_pool)

    async def close(self) -> None:
        pool_, self._pool = self._pool, None
        self._schema_ready = False
        if pool_:
            pool_.closeall()
            logger.info("PostgreSQL connection pool closed")


    async def ping(self) -> bool:
        rows = await self._run(sql.SQL("SELECT 1 AS ok"), fetch=True)
        return bool(rows)

    # =========================================================================
    # Record operations
    # =========================================================================

    @staticmethod
    def _now() -> int:
        return int(time.time())

    async def get(self, key: str) -> Optional[str]:
        query = sql.SQL(
            "SELECT payload FROM {table} WHERE hash_key = %s AND expires_at > %s"
        ).format(table=self._table)
        rows = await self._run(query, (key, self._now()), fetch=True)
        if not rows:
            return None
        return rows[0]["payload"]

    async def put(self, key: str, payload: str, ttl_seconds: int) -> None:
        query = sql.SQL("""
            INSERT INTO {table} (hash_key, payload, expires_at)
            VALUES (%s, %s, %s)
            ON CONFLICT (hash_key) DO UPDATE SET
                payload = EXCLUDED.payload,
                expires_at = EXCLUDED.expires_at
        """).format(table=self._table)
        await self._run(query, (key, payload, self._now() + ttl_seconds))

    async def delete(self, key: str) -> None:
        query = sql.SQL("DELETE FROM {table} WHERE hash_key = %s").format(table=self._table)
        await self._run(query, (key,))

    async def list(self) -> List[StoredRecord]:
        query = sql.SQL(
            "SELECT hash_key, payload, expires_at FROM {table} WHERE expires_at > %s"
        ).format(table=self._table)
        rows: List[Dict[str, Any]] = await self._run(query, (self._now(),), fetch=True)
        return [
            StoredRecord(key=row["hash_key"], payload=row["payload"], expires_at=int(row["expires_at"]))
            for row in rows
        ]

    async def purge_expired(self, batch_size: int = PURGE_BATCH_SIZE) -> int:
        """Delete expired rows in batches and return the total removed."""
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        # ctid is PostgreSQL's internal row identifier
        query = sql.SQL("""
            DELETE FROM {table}
            WHERE ctid IN (
                SELECT ctid FROM {table}
                WHERE expires_at <= %s
                LIMIT %s
            )
        """).format(table=self._table)

        now = self._now()
        total_deleted = 0
        while True:
            deleted = await self._run(query, (now, batch_size))
            total_deleted += deleted
            if deleted < batch_size:
                break
            logger.debug(f"Deleted batch of {deleted} expired records from {self.table}, total: {total_deleted}")

        logger.info(f"Purge completed for {self.table}: {total_deleted} expired records deleted")
        return total_deleted
