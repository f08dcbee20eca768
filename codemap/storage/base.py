"""Backend contracts for the hybrid storage layer.

PrimaryStore is the low-latency, TTL-expiring backend (Redis). It offers no
enumeration. ReplicaStore is the durable backend (PostgreSQL) with an
explicit expiry column, and the only one that can list or purge records.

Both contracts report backend trouble by raising. Returning None from get
means the key is absent, never that the backend is down.
"""

import time
from dataclasses import dataclass
from typing import List, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class StoredRecord:
    """A payload as held by the replica store.

    expires_at is epoch seconds. A record at or past its expiry is
    logically absent even if the row still exists.
    """

    key: str
    payload: str
    expires_at: int

    def is_expired(self, now: Optional[float] = None) -> bool:
        if now is None:
            now = time.time()
        return self.expires_at <= int(now)

    def to_dict(self) -> dict:
        return {"key": self.key, "payload": self.payload, "expires_at": self.expires_at}


@runtime_checkable
class PrimaryStore(Protocol):
    """Low-latency key-value backend with TTL expiry."""

    name: str

    async def get(self, key: str) -> Optional[str]:
        ...

    async def put(self, key: str, payload: str, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        """Remove a key. A missing key is not an error."""
        ...

    async def ping(self) -> bool:
        ...

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class ReplicaStore(Protocol):
    """Durable, listable backend with explicit expiry timestamps."""

    name: str

    async def get(self, key: str) -> Optional[str]:
        """Return the payload if present and not expired."""
        ...

    async def put(self, key: str, payload: str, ttl_seconds: int) -> None:
        """Upsert: an existing key gets the new payload and expiry."""
        ...

    async def delete(self, key: str) -> None:
        ...

    async def list(self) -> List[StoredRecord]:
        """Full scan of unexpired records, in no particular order."""
        ...

    async def purge_expired(self) -> int:
        """Physically delete expired records and return how many went."""
        ...

    async def ping(self) -> bool:
        ...

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...
