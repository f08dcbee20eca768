"""Builds a HybridStorage and its backends from application config."""

from .hybrid import HybridStorage
from .memory import MemoryPrimaryStore, MemoryReplicaStore
from .postgres import PostgresReplicaStore
from .redis import RedisPrimaryStore
from codemap.exceptions import ConfigurationError
from codemap.utils.config import AppConfig
from codemap.utils.logging import get_logger

logger = get_logger(__name__)


def create_storage(config: AppConfig) -> HybridStorage:
    """Construct backends for ``config.backend`` without connecting them."""
    if config.backend == "memory":
        primary = MemoryPrimaryStore()
        replica = MemoryReplicaStore() if config.replica_enabled else None
    elif config.backend == "redis":
        primary = RedisPrimaryStore.from_config(config.redis)
        replica = PostgresReplicaStore.from_config(config.postgres) if config.replica_enabled else None
    else:
        raise ConfigurationError(f"Unknown storage backend: {config.backend!r}")

    logger.info(
        f"Storage backend={config.backend} primary={primary.name} "
        f"replica={replica.name if replica is not None else 'none'} "
        f"fallback={config.storage.enable_fallback} dual_write={config.storage.enable_dual_write}"
    )
    return HybridStorage(primary=primary, replica=replica, config=config.storage)


async def open_storage(config: AppConfig) -> HybridStorage:
    """create_storage() followed by connecting both backends."""
    storage = create_storage(config)
    await storage.connect()
    return storage
