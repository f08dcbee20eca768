"""HybridStorage - routes payload reads and writes across primary and replica.

Routing rules:
- get: primary first; on a miss or a failure, the replica (if fallback is
  enabled). Total failure degrades to None.
- put: primary first; on success, an optional background copy to the
  replica (dual write); on failure, the replica as the sole write path (if
  fallback is enabled). Total failure raises StorageUnavailable.
- delete: best effort on both stores, never raises.
- list: replica only, never raises.

Each backend is called at most once per operation, under its own timeout.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, TypeVar, Union

from .base import PrimaryStore, ReplicaStore, StoredRecord
from codemap.exceptions import BackendUnavailable, ConfigurationError, StorageUnavailable
from codemap.utils.config import StorageConfig
from codemap.utils.logging import get_logger
from codemap.utils.metrics import (
    record_error,
    record_fallback,
    record_storage_operation,
    track_latency,
)
from codemap.utils.timeout import DetachedTasks, with_timeout

logger = get_logger(__name__)

T = TypeVar("T")

Store = Union[PrimaryStore, ReplicaStore]


@dataclass
class BackendHealth:
    name: str
    role: str
    healthy: bool
    latency_ms: float
    error: Optional[str] = None


@dataclass
class StorageHealth:
    backends: List[BackendHealth]
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def status(self) -> str:
        """One of healthy, degraded or unhealthy."""
        healthy_count = sum(1 for backend in self.backends if backend.healthy)
        if healthy_count == len(self.backends):
            return "healthy"
        if healthy_count == 0:
            return "unhealthy"
        return "degraded"


class HybridStorage:
    def __init__(
        self,
        primary: PrimaryStore,
        replica: Optional[ReplicaStore] = None,
        config: Optional[StorageConfig] = None,
    ):
        if primary is None:
            raise ConfigurationError("HybridStorage requires a primary store")
        self.primary = primary
        self.replica = replica
        self.config = config if config is not None else StorageConfig()
        self._background = DetachedTasks()

        if self.replica is None:
            logger.warning("No replica store configured; fallback, dual write and list are unavailable")

    def _trace(self, message: str) -> None:
        if self.config.enable_debug_logs:
            logger.info(f"[Storage] {message}")

    def _timeout_for(self, store: Store) -> int:
        if store is self.primary:
            return self.config.primary_timeout_ms
        return self.config.replica_timeout_ms

    async def _call(
        self,
        store: Store,
        operation: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one backend call under that backend's timeout.

        Any failure, timeouts included, comes out as BackendUnavailable.
        """
        try:
            with track_latency(store.name, operation):
                result = await with_timeout(
                    call(),
                    self._timeout_for(store),
                    f"{store.name} {operation}",
                    self._background,
                )
        except Exception as e:
            record_storage_operation(store.name, operation, "error")
            raise BackendUnavailable(store.name, operation, str(e)) from e
        record_storage_operation(store.name, operation, "success")
        return result

    @property
    def _fallback_available(self) -> bool:
        return self.config.enable_fallback and self.replica is not None

    # =========================================================================
    # Public contract
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        """Fetch a payload, or None.

        None means either "not found" or "no backend could answer"; the two
        are not distinguished.
        """
        try:
            value = await self._call(self.primary, "get", lambda: self.primary.get(key))
        except BackendUnavailable as e:
            logger.warning(
                f"Primary get failed for key {key}: {e}",
                extra={"backend": self.primary.name, "operation": "get", "key": key},
            )
        else:
            if value is not None:
                self._trace(f"get {key}: served by {self.primary.name}")
                return value
            self._trace(f"get {key}: miss on {self.primary.name}")

        if not self._fallback_available:
            self._trace(f"get {key}: fallback disabled, returning nothing")
            return None

        record_fallback("get")
        try:
            value = await self._call(self.replica, "get", lambda: self.replica.get(key))
        except BackendUnavailable as e:
            logger.warning(
                f"Replica get failed for key {key}: {e}",
                extra={"backend": self.replica.name, "operation": "get", "key": key},
            )
            return None

        self._trace(f"get {key}: {'served by' if value is not None else 'miss on'} {self.replica.name}")
        return value

    def _resolve_ttl(self, ttl_seconds: Optional[int]) -> int:
        if ttl_seconds is None:
            return self.config.default_ttl_seconds
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds <= 0:
            raise ConfigurationError(f"ttl_seconds must be a positive integer, got {ttl_seconds!r}")
        return ttl_seconds

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store a payload.

        Raises:
            StorageUnavailable: If no backend accepted the write
            ConfigurationError: If ttl_seconds is not a positive integer
        """
        ttl = self._resolve_ttl(ttl_seconds)

        try:
            await self._call(self.primary, "put", lambda: self.primary.put(key, value, ttl))
        except BackendUnavailable as primary_error:
            logger.warning(
                f"Primary put failed for key {key}: {primary_error}",
                extra={"backend": self.primary.name, "operation": "put", "key": key},
            )
            if not self._fallback_available:
                record_error("hybrid_storage", "storage_unavailable", "critical")
                logger.error(f"Primary storage is unavailable and fallback is disabled (key {key})")
                raise StorageUnavailable(
                    "Primary storage is unavailable and fallback is disabled"
                ) from primary_error

            record_fallback("put")
            try:
                await self._call(self.replica, "put", lambda: self.replica.put(key, value, ttl))
            except BackendUnavailable as replica_error:
                record_error("hybrid_storage", "storage_unavailable", "critical")
                logger.error(f"Both primary and replica storage are unavailable (key {key})")
                raise StorageUnavailable(
                    "Both primary and replica storage are unavailable"
                ) from replica_error

            self._trace(f"put {key}: stored on {self.replica.name} after primary failure")
            return

        self._trace(f"put {key}: stored on {self.primary.name} (ttl={ttl}s)")

        if self.config.enable_dual_write and self.replica is not None:
            self._background.spawn(
                self._call(self.replica, "put", lambda: self.replica.put(key, value, ttl)),
                f"dual write of {key} to {self.replica.name}",
            )

    async def delete(self, key: str) -> None:
        """Best-effort removal from both stores. Never raises."""
        stores: List[Store] = [self.primary]
        if self.replica is not None:
            stores.append(self.replica)

        for store in stores:
            try:
                await self._call(store, "delete", lambda: store.delete(key))
            except BackendUnavailable as e:
                logger.warning(
                    f"Delete of key {key} failed on {store.name}: {e}",
                    extra={"backend": store.name, "operation": "delete", "key": key},
                )
            else:
                self._trace(f"delete {key}: removed from {store.name}")

    async def list(self) -> List[StoredRecord]:
        """Unexpired records from the replica; empty if it cannot answer."""
        if self.replica is None:
            logger.warning("list requested but no replica store is configured")
            return []
        try:
            records = await self._call(self.replica, "list", self.replica.list)
        except BackendUnavailable as e:
            logger.warning(
                f"Replica list failed: {e}",
                extra={"backend": self.replica.name, "operation": "list"},
            )
            return []
        return list(records)

    # =========================================================================
    # Administration
    # =========================================================================

    async def purge_expired(self) -> int:
        """Physically remove expired replica rows.

        Raises BackendUnavailable if the replica fails; this is an explicit
        administrative action, not a degraded read.
        """
        if self.replica is None:
            return 0
        return await self._call(self.replica, "purge", self.replica.purge_expired)

    async def _check(self, store: Store, role: str) -> BackendHealth:
        start = time.perf_counter()
        try:
            healthy = await self._call(store, "ping", store.ping)
            error = None if healthy else "Ping failed"
        except BackendUnavailable as e:
            healthy = False
            error = str(e)
        latency_ms = (time.perf_counter() - start) * 1000
        return BackendHealth(
            name=store.name,
            role=role,
            healthy=bool(healthy),
            latency_ms=round(latency_ms, 2),
            error=error,
        )

    async def health(self) -> StorageHealth:
        backends = [await self._check(self.primary, "primary")]
        if self.replica is not None:
            backends.append(await self._check(self.replica, "replica"))
        return StorageHealth(backends=backends)

    @property
    def pending_background_tasks(self) -> int:
        return self._background.pending

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for dual writes and abandoned calls to settle."""
        return await self._background.drain(timeout)

    async def connect(self) -> None:
        """Open both backends.

        A backend that cannot be reached at startup is logged and left to
        reconnect on first use; the other one keeps serving.
        """
        stores: List[Any] = [self.primary]
        if self.replica is not None:
            stores.append(self.replica)
        for store in stores:
            try:
                await store.connect()
            except Exception as e:
                record_error("hybrid_storage", f"{store.name}_connect_error", "critical")
                logger.warning(f"Could not connect to {store.name} at startup: {e}")

    async def close(self, drain_timeout: Optional[float] = 10.0) -> None:
        await self.drain(drain_timeout)
        await self.primary.close()
        if self.replica is not None:
            await self.replica.close()
