"""In-process stores for local runs and tests.

Both stores can be told to fail or to stall, which is how the fallback and
timeout paths of HybridStorage are exercised without live backends.
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional, Tuple

from .base import StoredRecord
from codemap.utils.logging import get_logger

logger = get_logger(__name__)

FAILURE_OPERATIONS = ("get", "put", "delete", "all")


class _FailureInjection:
    """Shared failure and latency switches."""

    def __init__(self, name: str):
        self.name = name
        self._fail_operations: Tuple[str, ...] = ()
        self._delay_seconds = 0.0

    def set_failure(self, enabled: bool, operation: str = "all") -> None:
        """Make ``operation`` (or every operation) raise ConnectionError."""
        if operation not in FAILURE_OPERATIONS:
            raise ValueError(f"operation must be one of {FAILURE_OPERATIONS}, got {operation!r}")
        if not enabled:
            self._fail_operations = ()
        elif operation == "all":
            self._fail_operations = ("get", "put", "delete", "list", "purge", "ping")
        else:
            self._fail_operations = (operation,)

    def set_delay(self, seconds: float) -> None:
        """Stall every call by ``seconds`` before it runs."""
        self._delay_seconds = seconds

    async def _enter(self, operation: str) -> None:
        if self._delay_seconds > 0:
            await asyncio.sleep(self._delay_seconds)
        if operation in self._fail_operations:
            raise ConnectionError(f"{self.name} {operation} failure (injected)")

    async def connect(self) -> None:
        logger.info(f"{self.name} ready")

    async def close(self) -> None:
        return None

    async def ping(self) -> bool:
        await self._enter("ping")
        return True


class MemoryPrimaryStore(_FailureInjection):
    """Dict-backed primary store.

    Expiry is applied lazily on read, the way a TTL cache eventually
    drops keys on its own.
    """

    def __init__(self, name: str = "memory-primary", clock: Callable[[], float] = time.time):
        super().__init__(name)
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        await self._enter("get")
        entry = self._data.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return payload

    async def put(self, key: str, payload: str, ttl_seconds: int) -> None:
        await self._enter("put")
        self._data[key] = (payload, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._enter("delete")
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class MemoryReplicaStore(_FailureInjection):
    """Dict-backed replica store with an explicit expiry per record."""

    def __init__(self, name: str = "memory-replica", clock: Callable[[], float] = time.time):
        super().__init__(name)
        self._clock = clock
        self._records: Dict[str, StoredRecord] = {}

    def _now(self) -> int:
        return int(self._clock())

    async def get(self, key: str) -> Optional[str]:
        await self._enter("get")
        record = self._records.get(key)
        if record is None or record.is_expired(self._now()):
            return None
        return record.payload

    async def put(self, key: str, payload: str, ttl_seconds: int) -> None:
        await self._enter("put")
        self._records[key] = StoredRecord(key, payload, self._now() + ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._enter("delete")
        self._records.pop(key, None)

    async def list(self) -> List[StoredRecord]:
        await self._enter("list")
        now = self._now()
        return [record for record in self._records.values() if not record.is_expired(now)]

    async def purge_expired(self) -> int:
        await self._enter("purge")
        now = self._now()
        expired = [key for key, record in self._records.items() if record.is_expired(now)]
        for key in expired:
            del self._records[key]
        if expired:
            logger.info(f"{self.name}: purged {len(expired)} expired records")
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)
