"""
Shared utilities for the codemap storage service.

Utilities provided:
-------------------

**Retry Utilities** (retry.py):
    - ExponentialBackoff: Calculator for backoff delays with jitter
    - RetryConfig: Configuration dataclass for retry behavior
    - connect_with_retry(): Startup connect with backoff and attempt metrics

**Timeout Utilities** (timeout.py):
    - with_timeout(): Race a backend call against a timer
    - DetachedTasks: Registry for fire-and-forget and abandoned calls

**Configuration Utilities** (config.py):
    - get_env_str(), get_env_int(), get_env_float(), get_env_bool(),
      get_env_list(), get_env_optional()
    - StorageConfig, RedisConfig, PostgresConfig, ApiConfig, AppConfig

**Logging Utilities** (logging.py):
    - setup_logging(): Configure logging for the application
    - get_logger(): Get a configured logger by name
    - JSONFormatter: Structured JSON log records

**Metrics Utilities** (metrics.py):
    - STORAGE_OPERATIONS, STORAGE_FALLBACKS, STORAGE_LATENCY: Storage metrics
    - record_storage_operation(), record_fallback(), record_connect_attempt(),
      record_error(): Helper functions
    - track_latency: Context manager for latency tracking

Usage:
------
    from codemap.utils import (
        StorageConfig,
        get_env_int,
        setup_logging,
        get_logger,
        with_timeout,
    )
"""

from codemap.utils.retry import (
    ExponentialBackoff,
    RetryConfig,
    connect_with_retry,
)

from codemap.utils.timeout import (
    DetachedTasks,
    with_timeout,
)

from codemap.utils.config import (
    get_env_str,
    get_env_int,
    get_env_float,
    get_env_bool,
    get_env_list,
    get_env_optional,
    StorageConfig,
    RedisConfig,
    PostgresConfig,
    ApiConfig,
    AppConfig,
)

from codemap.utils.logging import (
    setup_logging,
    get_logger,
    JSONFormatter,
)

from codemap.utils.metrics import (
    STORAGE_OPERATIONS,
    STORAGE_FALLBACKS,
    STORAGE_LATENCY,
    ERRORS_TOTAL,
    CONNECT_ATTEMPTS,
    record_storage_operation,
    record_fallback,
    record_latency,
    record_error,
    record_connect_attempt,
    track_latency,
)

__all__ = [
    # Retry utilities
    "ExponentialBackoff",
    "RetryConfig",
    "connect_with_retry",
    # Timeout utilities
    "DetachedTasks",
    "with_timeout",
    # Config utilities
    "get_env_str",
    "get_env_int",
    "get_env_float",
    "get_env_bool",
    "get_env_list",
    "get_env_optional",
    "StorageConfig",
    "RedisConfig",
    "PostgresConfig",
    "ApiConfig",
    "AppConfig",
    # Logging utilities
    "setup_logging",
    "get_logger",
    "JSONFormatter",
    # Metrics
    "STORAGE_OPERATIONS",
    "STORAGE_FALLBACKS",
    "STORAGE_LATENCY",
    "ERRORS_TOTAL",
    "CONNECT_ATTEMPTS",
    "record_storage_operation",
    "record_fallback",
    "record_latency",
    "record_error",
    "record_connect_attempt",
    "track_latency",
]
