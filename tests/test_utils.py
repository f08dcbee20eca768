"""
Test module for Utils Module.

Contains unit tests and property-based tests for:
- Retry utilities (ExponentialBackoff, RetryConfig, connect_with_retry)
- Timeout utilities (with_timeout, DetachedTasks)
- Configuration utilities (get_env_* functions, StorageConfig, AppConfig)
- Logging utilities (setup_logging, get_logger, JSONFormatter)
- Metrics utilities (record_*, track_latency)
"""

import asyncio
import dataclasses
import json
import logging
import os
import time
from unittest.mock import AsyncMock, patch

import pytest
from hypothesis import given, settings, strategies as st
from prometheus_client import REGISTRY

from codemap.exceptions import ConfigurationError
from codemap.utils import (
    # Retry utilities
    ExponentialBackoff,
    RetryConfig,
    connect_with_retry,
    # Timeout utilities
    DetachedTasks,
    with_timeout,
    # Config utilities
    get_env_str,
    get_env_int,
    get_env_float,
    get_env_bool,
    get_env_list,
    get_env_optional,
    StorageConfig,
    AppConfig,
    # Logging utilities
    setup_logging,
    get_logger,
    JSONFormatter,
    # Metrics utilities
    record_storage_operation,
    record_fallback,
    record_error,
    record_connect_attempt,
    track_latency,
)
from codemap.utils.config import DEFAULT_TTL_SECONDS


# ============================================================================
# EXPONENTIAL BACKOFF TESTS
# ============================================================================

class TestExponentialBackoff:
    """Tests for ExponentialBackoff class."""

    def test_initial_delay(self):
        """Test that first delay is approximately initial_delay_ms."""
        backoff = ExponentialBackoff(
            initial_delay_ms=1000,
            max_delay_ms=60000,
            multiplier=2.0,
            jitter_factor=0.0  # No jitter for predictable test
        )
        assert backoff.next_delay_ms() == 1000

    def test_exponential_growth(self):
        """Test that delays grow exponentially."""
        backoff = ExponentialBackoff(
            initial_delay_ms=1000,
            max_delay_ms=60000,
            multiplier=2.0,
            jitter_factor=0.0
        )
        assert backoff.next_delay_ms() == 1000
        assert backoff.next_delay_ms() == 2000
        assert backoff.next_delay_ms() == 4000

    def test_max_delay_cap(self):
        """Test that delay is capped at max_delay_ms."""
        backoff = ExponentialBackoff(
            initial_delay_ms=1000,
            max_delay_ms=5000,
            multiplier=2.0,
            jitter_factor=0.0
        )
        for _ in range(10):
            delay = backoff.next_delay_ms()
        assert delay == 5000

    def test_reset(self):
        """Test that reset() resets the attempt counter."""
        backoff = ExponentialBackoff(initial_delay_ms=1000, jitter_factor=0.0)
        backoff.next_delay_ms()
        backoff.next_delay_ms()
        assert backoff.attempt_count == 2

        backoff.reset()
        assert backoff.attempt_count == 0
        assert backoff.next_delay_ms() == 1000

    def test_invalid_parameters(self):
        """Test that invalid parameters raise ValueError."""
        with pytest.raises(ValueError):
            ExponentialBackoff(initial_delay_ms=0)
        with pytest.raises(ValueError):
            ExponentialBackoff(multiplier=0.5)
        with pytest.raises(ValueError):
            ExponentialBackoff(jitter_factor=1.5)

    @given(
        initial=st.integers(min_value=1, max_value=10000),
        jitter=st.floats(min_value=0.0, max_value=1.0),
        attempts=st.integers(min_value=1, max_value=20),
    )
    @settings(max_examples=100)
    def test_delay_never_exceeds_cap_plus_jitter(self, initial, jitter, attempts):
        """Property: every delay stays within max_delay_ms * (1 + jitter)."""
        backoff = ExponentialBackoff(
            initial_delay_ms=initial,
            max_delay_ms=30000,
            jitter_factor=jitter,
        )
        for _ in range(attempts):
            delay = backoff.next_delay_ms()
            assert 0 < delay <= int(30000 * (1 + jitter))


# ============================================================================
# ASYNC RETRY TESTS
# ============================================================================

class TestConnectWithRetry:
    """Tests for connect_with_retry."""

    @staticmethod
    def attempts(backend, result):
        return REGISTRY.get_sample_value(
            "codemap_connect_attempts_total", {"backend": backend, "result": result}
        ) or 0.0

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self):
        """Test a healthy backend connects on the first attempt."""
        connect = AsyncMock(return_value=True)

        assert await connect_with_retry(connect, backend="retry-ok") is True
        connect.assert_awaited_once()
        assert self.attempts("retry-ok", "success") == 1.0

    @pytest.mark.asyncio
    async def test_retries_until_connected(self):
        """Test failed attempts are counted and the connect is retried."""
        connect = AsyncMock(side_effect=[ConnectionError("refused"), ConnectionError("refused"), True])
        config = RetryConfig(max_retries=3, initial_delay_ms=1, jitter_factor=0.0)

        assert await connect_with_retry(connect, backend="retry-flaky", config=config) is True
        assert connect.await_count == 3
        assert self.attempts("retry-flaky", "failed") == 2.0
        assert self.attempts("retry-flaky", "success") == 1.0

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self):
        """Test the last error is raised once attempts run out."""
        connect = AsyncMock(side_effect=ConnectionError("down"))
        config = RetryConfig(max_retries=2, initial_delay_ms=1, jitter_factor=0.0)

        with pytest.raises(ConnectionError, match="down"):
            await connect_with_retry(connect, backend="retry-down", config=config)

        assert connect.await_count == 2
        assert self.attempts("retry-down", "failed") == 1.0
        assert self.attempts("retry-down", "exhausted") == 1.0

    @pytest.mark.asyncio
    async def test_non_retryable_exception_propagates_immediately(self):
        """Test that exceptions outside retryable_exceptions are not retried."""
        connect = AsyncMock(side_effect=KeyError("nope"))
        config = RetryConfig(
            max_retries=5,
            initial_delay_ms=1,
            retryable_exceptions=(ConnectionError,),
        )

        with pytest.raises(KeyError):
            await connect_with_retry(connect, backend="retry-bad", config=config)
        connect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_zero_retries_still_attempts_once(self):
        connect = AsyncMock(return_value="ok")
        config = RetryConfig(max_retries=0)

        assert await connect_with_retry(connect, backend="retry-zero", config=config) == "ok"

    def test_for_connect_converts_seconds(self):
        config = RetryConfig.for_connect(4, 0.25, (ConnectionError,))

        assert config.max_retries == 4
        assert config.initial_delay_ms == 250
        assert config.retryable_exceptions == (ConnectionError,)

    def test_for_connect_keeps_delay_positive(self):
        config = RetryConfig.for_connect(3, 0.0, (ConnectionError,))
        assert config.initial_delay_ms == 1
        assert config.backoff().next_delay_ms() >= 1


# ============================================================================
# TIMEOUT UTILITIES TESTS
# ============================================================================

class TestWithTimeout:
    """Tests for with_timeout and DetachedTasks."""

    @pytest.mark.asyncio
    async def test_returns_result_within_timeout(self):
        """A call that finishes in time returns its value."""
        detached = DetachedTasks()

        async def quick():
            return "value"

        assert await with_timeout(quick(), 1000, "quick", detached) == "value"
        assert detached.pending == 0

    @pytest.mark.asyncio
    async def test_propagates_call_exception(self):
        """A call that fails in time raises its own error."""
        detached = DetachedTasks()

        async def broken():
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError, match="refused"):
            await with_timeout(broken(), 1000, "broken", detached)

    @pytest.mark.asyncio
    async def test_timeout_message_and_abandoned_call(self):
        """A slow call raises TimeoutError and keeps running detached."""
        detached = DetachedTasks()
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.1)
            finished.set()
            return "late"

        with pytest.raises(TimeoutError, match="redis get timed out after 10ms"):
            await with_timeout(slow(), 10, "redis get", detached)

        assert detached.pending == 1
        assert await detached.drain(timeout=2.0) is True
        assert finished.is_set()
        assert detached.pending == 0

    @pytest.mark.asyncio
    async def test_detached_failure_is_logged_not_raised(self, caplog):
        """A detached task that fails is logged at WARNING."""
        detached = DetachedTasks()

        async def fails():
            raise ConnectionError("replica down")

        with caplog.at_level(logging.WARNING, logger="codemap.utils.timeout"):
            detached.spawn(fails(), "dual write of abc to memory-replica")
            assert await detached.drain(timeout=1.0) is True

        assert "dual write of abc to memory-replica: failed: replica down" in caplog.text

    @pytest.mark.asyncio
    async def test_drain_reports_timeout(self):
        """drain returns False while tasks are still running."""
        detached = DetachedTasks()
        detached.spawn(asyncio.sleep(0.5), "sleeper")

        assert await detached.drain(timeout=0.01) is False
        assert detached.pending == 1
        assert await detached.drain(timeout=2.0) is True


# ============================================================================
# CONFIGURATION UTILITIES TESTS
# ============================================================================

class TestConfigUtilities:
    """Tests for configuration utilities."""

    def test_get_env_str_with_value(self):
        """Test get_env_str returns environment variable value."""
        with patch.dict(os.environ, {"TEST_STR": "hello"}):
            assert get_env_str("TEST_STR", "default") == "hello"

    def test_get_env_str_with_default(self):
        """Test get_env_str returns default when not set."""
        assert get_env_str("NONEXISTENT_VAR", "default_value") == "default_value"

    def test_get_env_int_with_value(self):
        """Test get_env_int parses integer."""
        with patch.dict(os.environ, {"TEST_INT": "42"}):
            assert get_env_int("TEST_INT", 0) == 42

    def test_get_env_int_blank_uses_default(self):
        """Test get_env_int treats a blank value as unset."""
        with patch.dict(os.environ, {"TEST_INT": "  "}):
            assert get_env_int("TEST_INT", 7) == 7

    def test_get_env_int_invalid_raises(self):
        """Test get_env_int names the variable when the value is malformed."""
        with patch.dict(os.environ, {"TEST_INT": "abc"}):
            with pytest.raises(ConfigurationError, match="TEST_INT"):
                get_env_int("TEST_INT", 0)

    def test_get_env_float_invalid_raises(self):
        """Test get_env_float raises ConfigurationError on malformed input."""
        with patch.dict(os.environ, {"TEST_FLOAT": "fast"}):
            with pytest.raises(ConfigurationError):
                get_env_float("TEST_FLOAT", 1.0)

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("TRUE", True), ("1", True), ("yes", True), ("on", True),
        ("false", False), ("0", False), ("no", False), ("Off", False),
    ])
    def test_get_env_bool(self, raw, expected):
        """Test get_env_bool parsing."""
        with patch.dict(os.environ, {"TEST_BOOL": raw}):
            assert get_env_bool("TEST_BOOL", not expected) is expected

    @pytest.mark.parametrize("default", [True, False])
    def test_get_env_bool_unrecognized_keeps_default(self, default):
        """Test an unrecognized value falls back to the default."""
        with patch.dict(os.environ, {"TEST_BOOL": "enabled"}):
            assert get_env_bool("TEST_BOOL", default) is default

    def test_get_env_list(self):
        """Test get_env_list splits and strips items."""
        with patch.dict(os.environ, {"TEST_LIST": "a, b,,c "}):
            assert get_env_list("TEST_LIST") == ["a", "b", "c"]

    def test_get_env_optional(self):
        """Test get_env_optional returns None when not set."""
        assert get_env_optional("NONEXISTENT_OPT") is None


class TestStorageConfig:
    """Tests for StorageConfig defaults, validation and env loading."""

    def test_defaults(self):
        config = StorageConfig()
        assert config.enable_fallback is True
        assert config.enable_dual_write is True
        assert config.primary_timeout_ms == 5000
        assert config.replica_timeout_ms == 3000
        assert config.enable_debug_logs is False
        assert config.default_ttl_seconds == DEFAULT_TTL_SECONDS == 2592000

    def test_is_immutable(self):
        config = StorageConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.enable_fallback = False

    @pytest.mark.parametrize("field_name", [
        "primary_timeout_ms", "replica_timeout_ms", "default_ttl_seconds",
    ])
    @pytest.mark.parametrize("bad_value", [0, -1, True, 1.5])
    def test_rejects_non_positive_integers(self, field_name, bad_value):
        with pytest.raises(ConfigurationError):
            StorageConfig(**{field_name: bad_value})

    def test_from_env_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            assert StorageConfig.from_env() == StorageConfig()

    def test_from_env_overrides(self):
        env = {
            "ENABLE_FALLBACK": "false",
            "ENABLE_DUAL_WRITE": "0",
            "PRIMARY_TIMEOUT_MS": "250",
            "REPLICA_TIMEOUT_MS": "125",
            "ENABLE_STORAGE_DEBUG_LOGS": "true",
            "DEFAULT_TTL_SECONDS": "60",
        }
        with patch.dict(os.environ, env, clear=True):
            config = StorageConfig.from_env()

        assert config == StorageConfig(
            enable_fallback=False,
            enable_dual_write=False,
            primary_timeout_ms=250,
            replica_timeout_ms=125,
            enable_debug_logs=True,
            default_ttl_seconds=60,
        )

    def test_from_env_malformed_timeout(self):
        with patch.dict(os.environ, {"PRIMARY_TIMEOUT_MS": "soon"}, clear=True):
            with pytest.raises(ConfigurationError, match="PRIMARY_TIMEOUT_MS"):
                StorageConfig.from_env()


class TestAppConfig:
    """Tests for the application config container."""

    def test_from_env_backend_selection(self):
        with patch.dict(os.environ, {"STORAGE_BACKEND": " Memory ", "REPLICA_ENABLED": "no"}, clear=True):
            config = AppConfig.from_env()
        assert config.backend == "memory"
        assert config.replica_enabled is False
        assert config.redis.key_prefix == "codemap:"
        assert config.postgres.table == "code_map"
        assert config.api.rate_limit == "100/minute"

    def test_unknown_backend_rejected(self):
        with patch.dict(os.environ, {"STORAGE_BACKEND": "cassandra"}, clear=True):
            with pytest.raises(ConfigurationError):
                AppConfig.from_env()

    def test_cors_origins_list(self):
        with patch.dict(os.environ, {"CORS_ALLOW_ORIGINS": "https://a.example,https://b.example"}, clear=True):
            config = AppConfig.from_env()
        assert config.api.cors_allow_origins == ["https://a.example", "https://b.example"]

    def test_admin_api_switch(self):
        with patch.dict(os.environ, {}, clear=True):
            assert AppConfig.from_env().api.admin_enabled is False
        with patch.dict(os.environ, {"ADMIN_API_ENABLED": "true"}, clear=True):
            assert AppConfig.from_env().api.admin_enabled is True

    def test_unrecognized_flag_keeps_fallback_on(self):
        with patch.dict(os.environ, {"ENABLE_FALLBACK": "enabled", "ENABLE_DUAL_WRITE": "on"}, clear=True):
            config = AppConfig.from_env()
        assert config.storage.enable_fallback is True
        assert config.storage.enable_dual_write is True


# ============================================================================
# LOGGING UTILITIES TESTS
# ============================================================================

class TestLoggingUtilities:
    """Tests for logging utilities."""

    def test_setup_logging_sets_level(self):
        """Test that setup_logging sets the correct log level."""
        setup_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_case_insensitive(self):
        """Test that setup_logging accepts case-insensitive level."""
        setup_logging(level="warning")
        assert logging.getLogger().level == logging.WARNING

    def test_get_logger_returns_logger(self):
        """Test that get_logger returns a Logger instance."""
        logger = get_logger("test_module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "test_module"

    def test_json_formatter(self):
        """Test that JSONFormatter emits a parseable record."""
        record = logging.LogRecord(
            name="codemap.storage.hybrid",
            level=logging.WARNING,
            pathname=__file__,
            lineno=10,
            msg="Primary get failed for key %s",
            args=("abc",),
            exc_info=None,
        )
        record.backend = "redis"
        record.operation = "get"
        record.key = "abc"

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["logger"] == "codemap.storage.hybrid"
        assert data["message"] == "Primary get failed for key abc"
        assert (data["backend"], data["operation"], data["key"]) == ("redis", "get", "abc")
        assert "timestamp" in data


# ============================================================================
# METRICS UTILITIES TESTS
# ============================================================================

class TestMetricsUtilities:
    """Tests for metrics utilities."""

    def test_record_helpers_do_not_raise(self):
        record_storage_operation("redis", "get", "success")
        record_fallback("get")
        record_error("test_service", "connection_error", "error")
        record_connect_attempt("redis", "failed")

    def test_track_latency_context_manager(self):
        """Test track_latency context manager."""
        with track_latency("redis", "get"):
            time.sleep(0.01)

    def test_track_latency_records_on_error(self):
        """Test track_latency lets the exception through."""
        with pytest.raises(RuntimeError):
            with track_latency("redis", "put"):
                raise RuntimeError("boom")
