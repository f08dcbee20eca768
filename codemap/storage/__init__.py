"""
Hybrid content-addressed storage for compressed payloads.

This module provides a two-backend storage system:
- Primary (Redis): low-latency reads and writes, TTL expiry, no listing
- Replica (PostgreSQL): durable, queryable, explicit expiry column

Components:
- HybridStorage: Routes get/put/delete/list across both backends
- RedisPrimaryStore: Redis adapter for the primary role
- PostgresReplicaStore: PostgreSQL adapter for the replica role
- MemoryPrimaryStore / MemoryReplicaStore: In-process stores for local runs and tests
- create_storage / open_storage: Build a HybridStorage from AppConfig
"""

from .base import PrimaryStore, ReplicaStore, StoredRecord
from .hybrid import BackendHealth, HybridStorage, StorageHealth
from .memory import MemoryPrimaryStore, MemoryReplicaStore
from .postgres import PostgresReplicaStore
from .redis import RedisPrimaryStore
from .factory import create_storage, open_storage

__all__ = [
    # Contracts
    "PrimaryStore",
    "ReplicaStore",
    "StoredRecord",
    # Orchestration
    "HybridStorage",
    "StorageHealth",
    "BackendHealth",
    # Backends
    "RedisPrimaryStore",
    "PostgresReplicaStore",
    "MemoryPrimaryStore",
    "MemoryReplicaStore",
    # Construction
    "create_storage",
    "open_storage",
]
