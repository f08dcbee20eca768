"""
Configuration utilities for environment variable loading.

Provides type-safe environment variable loading with defaults, plus the
configuration dataclasses the storage layer and API are built from.

Utilities provided:
- get_env_str(): Get string from environment variable
- get_env_int(): Get integer from environment variable
- get_env_float(): Get float from environment variable
- get_env_bool(): Get boolean from environment variable
- get_env_list(): Get list from environment variable
- get_env_optional(): Get optional string from environment variable

Configuration Classes:
- StorageConfig: Hybrid storage policy (fallback, dual write, timeouts, TTL)
- RedisConfig: Redis connection configuration (primary store)
- PostgresConfig: PostgreSQL connection configuration (replica store)
- ApiConfig: HTTP façade settings
- AppConfig: Main configuration container

Configuration is read from the environment exactly once, by the from_env()
classmethods. Everything downstream receives the resulting immutable values.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from codemap.exceptions import ConfigurationError


def get_env_str(key: str, default: str = "") -> str:
    """
    Get string from environment variable.

    Args:
        key: Environment variable name
        default: Default value if not set (default: "")

    Returns:
        Environment variable value or default

    Example:
        host = get_env_str("REDIS_HOST", "localhost")
    """
    return os.getenv(key, default)


def get_env_int(key: str, default: int = 0) -> int:
    """
    Get integer from environment variable.

    Unset and blank values fall back to the default.

    Args:
        key: Environment variable name
        default: Default value if not set (default: 0)

    Returns:
        Parsed integer value or default

    Raises:
        ConfigurationError: If the value cannot be parsed as int

    Example:
        timeout = get_env_int("PRIMARY_TIMEOUT_MS", 5000)
    """
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from e


def get_env_float(key: str, default: float = 0.0) -> float:
    """
    Get float from environment variable.

    Args:
        key: Environment variable name
        default: Default value if not set (default: 0.0)

    Returns:
        Parsed float value or default

    Raises:
        ConfigurationError: If the value cannot be parsed as float
    """
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from e


_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


def get_env_bool(key: str, default: bool = False) -> bool:
    """
    Get boolean from environment variable.

    Accepts: "true", "false", "1", "0", "yes", "no", "on", "off"
    (case-insensitive). Any other value leaves the default in place, so
    ENABLE_FALLBACK=enabled keeps fallback on.

    Args:
        key: Environment variable name
        default: Default value if not set (default: False)

    Returns:
        Parsed boolean value or default

    Example:
        fallback = get_env_bool("ENABLE_FALLBACK", True)
    """
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


def get_env_list(
    key: str,
    default: Optional[List[str]] = None,
    separator: str = ","
) -> List[str]:
    """
    Get list from environment variable.

    Splits by separator and strips whitespace from each item.
    Empty items are filtered out.

    Example:
        origins = get_env_list("CORS_ALLOW_ORIGINS", ["*"])
        # With env CORS_ALLOW_ORIGINS="https://a.example, https://b.example"
        # Returns: ["https://a.example", "https://b.example"]
    """
    if default is None:
        default = []

    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default

    return [item.strip() for item in value.split(separator) if item.strip()]


def get_env_optional(key: str) -> Optional[str]:
    """
    Get optional string from environment variable.

    Returns None if the environment variable is not set,
    unlike get_env_str which returns an empty string by default.
    """
    return os.getenv(key)


# ============================================================================
# CONFIGURATION CLASSES
# ============================================================================

DEFAULT_TTL_SECONDS = 60 * 60 * 24 * 30  # 30 days


@dataclass(frozen=True)
class StorageConfig:
    """Hybrid storage policy.

    Read once per HybridStorage instance and never mutated.
    """

    # Use the replica when the primary misses or fails
    enable_fallback: bool = True
    # Mirror successful primary writes to the replica
    enable_dual_write: bool = True
    primary_timeout_ms: int = 5000
    replica_timeout_ms: int = 3000
    # Trace routing decisions at INFO
    enable_debug_logs: bool = False
    default_ttl_seconds: int = DEFAULT_TTL_SECONDS

    def __post_init__(self) -> None:
        for name in ("primary_timeout_ms", "replica_timeout_ms", "default_ttl_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Create configuration from environment variables."""
        return cls(
            enable_fallback=get_env_bool("ENABLE_FALLBACK", True),
            enable_dual_write=get_env_bool("ENABLE_DUAL_WRITE", True),
            primary_timeout_ms=get_env_int("PRIMARY_TIMEOUT_MS", 5000),
            replica_timeout_ms=get_env_int("REPLICA_TIMEOUT_MS", 3000),
            enable_debug_logs=get_env_bool("ENABLE_STORAGE_DEBUG_LOGS", False),
            default_ttl_seconds=get_env_int("DEFAULT_TTL_SECONDS", DEFAULT_TTL_SECONDS),
        )


@dataclass
class RedisConfig:
    """Redis connection configuration for the primary store."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "codemap:"

    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0

    # Startup connection retries
    max_retries: int = 3
    retry_delay: float = 1.0

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """Create configuration from environment variables."""
        return cls(
            host=get_env_str("REDIS_HOST", "localhost"),
            port=get_env_int("REDIS_PORT", 6379),
            db=get_env_int("REDIS_DB", 0),
            password=get_env_optional("REDIS_PASSWORD"),
            key_prefix=get_env_str("REDIS_KEY_PREFIX", "codemap:"),
            socket_timeout=get_env_float("REDIS_SOCKET_TIMEOUT", 5.0),
            socket_connect_timeout=get_env_float("REDIS_SOCKET_CONNECT_TIMEOUT", 5.0),
            max_retries=get_env_int("CONNECT_MAX_RETRIES", 3),
            retry_delay=get_env_float("CONNECT_RETRY_DELAY", 1.0),
        )


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration for the replica store."""

    host: str = "localhost"
    port: int = 5432
    user: str = "codemap"
    password: str = "codemap"
    database: str = "codemap"
    table: str = "code_map"

    # Connection pool settings
    min_connections: int = 1
    max_connections: int = 10

    # Startup connection retries
    max_retries: int = 3
    retry_delay: float = 1.0

    @classmethod
    def from_env(cls) -> "PostgresConfig":
        """Create configuration from environment variables."""
        return cls(
            host=get_env_str("POSTGRES_HOST", "localhost"),
            port=get_env_int("POSTGRES_PORT", 5432),
            user=get_env_str("POSTGRES_USER", "codemap"),
            password=get_env_str("POSTGRES_PASSWORD", "codemap"),
            database=get_env_str("POSTGRES_DB", "codemap"),
            table=get_env_str("POSTGRES_TABLE", "code_map"),
            max_connections=get_env_int("POSTGRES_MAX_CONNECTIONS", 10),
            max_retries=get_env_int("CONNECT_MAX_RETRIES", 3),
            retry_delay=get_env_float("CONNECT_RETRY_DELAY", 1.0),
        )


@dataclass
class ApiConfig:
    """HTTP façade settings."""

    rate_limit: str = "100/minute"
    rate_limit_enabled: bool = True
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])
    # Admin routes expose every stored payload and are unauthenticated
    admin_enabled: bool = False

    @classmethod
    def from_env(cls) -> "ApiConfig":
        """Create configuration from environment variables."""
        return cls(
            rate_limit=get_env_str("RATE_LIMIT", "100/minute"),
            rate_limit_enabled=get_env_bool("RATE_LIMIT_ENABLED", True),
            cors_allow_origins=get_env_list("CORS_ALLOW_ORIGINS", ["*"]),
            admin_enabled=get_env_bool("ADMIN_API_ENABLED", False),
        )


STORAGE_BACKENDS = ("redis", "memory")


@dataclass
class AppConfig:
    """Main configuration container.

    Storage Architecture:
    - Primary: Redis (low latency, TTL expiry, no listing)
    - Replica: PostgreSQL (durable, queryable, explicit expiry column)
    - memory backend: in-process stores for local runs
    """

    storage: StorageConfig
    redis: RedisConfig
    postgres: PostgresConfig
    api: ApiConfig

    backend: str = "redis"
    replica_enabled: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self) -> None:
        if self.backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"STORAGE_BACKEND must be one of {STORAGE_BACKENDS}, got {self.backend!r}"
            )

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create complete configuration from environment variables."""
        return cls(
            storage=StorageConfig.from_env(),
            redis=RedisConfig.from_env(),
            postgres=PostgresConfig.from_env(),
            api=ApiConfig.from_env(),
            backend=get_env_str("STORAGE_BACKEND", "redis").strip().lower(),
            replica_enabled=get_env_bool("REPLICA_ENABLED", True),
            log_level=get_env_str("LOG_LEVEL", "INFO"),
            log_json=get_env_bool("LOG_JSON", False),
        )
