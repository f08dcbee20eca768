"""RedisPrimaryStore - low-latency primary store backed by Redis.

Payloads are plain string values under ``{key_prefix}{content_key}`` with a
native Redis expiry, so expired keys disappear without any sweep.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError, TimeoutError

from codemap.utils.config import RedisConfig
from codemap.utils.logging import get_logger
from codemap.utils.retry import RetryConfig, connect_with_retry

logger = get_logger(__name__)


class RedisPrimaryStore:
    name = "redis"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        key_prefix: str = "codemap:",
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client: Optional[aioredis.Redis] = None,
    ):
        """Initialize Redis storage.

        No connection is opened here; call connect() at startup. An explicit
        ``client`` replaces the one built from host/port.
        """
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.key_prefix = key_prefix
        self.socket_timeout = socket_timeout
        self.socket_connect_timeout = socket_connect_timeout

        self._retry_config = RetryConfig.for_connect(
            max_retries, retry_delay, (ConnectionError, TimeoutError, OSError)
        )
        self._client: Optional[aioredis.Redis] = client

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisPrimaryStore":
        return cls(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            key_prefix=config.key_prefix,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_connect_timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )

    @property
    def client(self) -> aioredis.Redis:
        """Get Redis client, creating it on first use."""
        if self._client is None:
            self._client = aioredis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_connect_timeout,
                decode_responses=True,
            )
        return self._client

    async def connect(self) -> None:
        """Verify the Redis connection with exponential backoff retry logic."""
        await connect_with_retry(self.client.ping, backend=self.name, config=self._retry_config)
        logger.info(f"Connected to Redis at {self.host}:{self.port}/{self.db}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(self._make_key(key))

    async def put(self, key: str, payload: str, ttl_seconds: int) -> None:
        await self.client.set(self._make_key(key), payload, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._make_key(key))
