"""Backoff and retry for opening backend connections.

Storage operations themselves are attempted at most once per backend; only
the startup connect of a store retries.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from codemap.utils.logging import get_logger
from codemap.utils.metrics import record_connect_attempt, record_error

logger = get_logger(__name__)

T = TypeVar("T")


class ExponentialBackoff:
    def __init__(
        self,
        initial_delay_ms: int = 1000,
        max_delay_ms: int = 60000,
        multiplier: float = 2.0,
        jitter_factor: float = 0.1,
    ):
        if initial_delay_ms <= 0:
            raise ValueError("initial_delay_ms must be positive")
        if max_delay_ms <= 0:
            raise ValueError("max_delay_ms must be positive")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= jitter_factor <= 1.0:
            raise ValueError("jitter_factor must be between 0.0 and 1.0")

        self.initial_delay_ms = initial_delay_ms
        self.max_delay_ms = max_delay_ms
        self.multiplier = multiplier
        self.jitter_factor = jitter_factor
        self._attempt = 0

    def next_delay_ms(self) -> int:
        """Capped delay for the next attempt, plus up to jitter_factor of it."""
        delay = min(self.initial_delay_ms * (self.multiplier ** self._attempt), self.max_delay_ms)
        self._attempt += 1
        return int(delay + delay * self.jitter_factor * random.random())

    def reset(self) -> None:
        self._attempt = 0

    @property
    def attempt_count(self) -> int:
        return self._attempt


@dataclass
class RetryConfig:
    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 60000
    multiplier: float = 2.0
    jitter_factor: float = 0.1
    retryable_exceptions: Tuple[Type[Exception], ...] = field(
        default_factory=lambda: (Exception,)
    )

    @classmethod
    def for_connect(
        cls,
        max_retries: int,
        retry_delay: float,
        retryable_exceptions: Tuple[Type[Exception], ...],
    ) -> "RetryConfig":
        """Build from CONNECT_MAX_RETRIES / CONNECT_RETRY_DELAY (seconds)."""
        return cls(
            max_retries=max_retries,
            initial_delay_ms=max(1, int(retry_delay * 1000)),
            retryable_exceptions=retryable_exceptions,
        )

    def backoff(self) -> ExponentialBackoff:
        return ExponentialBackoff(
            initial_delay_ms=self.initial_delay_ms,
            max_delay_ms=self.max_delay_ms,
            multiplier=self.multiplier,
            jitter_factor=self.jitter_factor,
        )


async def connect_with_retry(
    connect: Callable[[], Awaitable[T]],
    backend: str,
    config: Optional[RetryConfig] = None,
) -> T:
    """Await ``connect()`` until it succeeds or the attempts run out.

    Every attempt is counted in codemap_connect_attempts_total as "failed",
    "success" or "exhausted" (the last failed attempt). Exhaustion and
    non-retryable errors also count as a critical connection error, and the
    last exception is re-raised.
    """
    config = config or RetryConfig()
    backoff = config.backoff()
    attempts = max(1, config.max_retries)

    for attempt in range(1, attempts + 1):
        try:
            result = await connect()
        except config.retryable_exceptions as e:
            if attempt == attempts:
                record_connect_attempt(backend, "exhausted")
                record_error(backend, "connection_error", "critical")
                logger.error(f"Could not connect to {backend} after {attempts} attempts: {e}")
                raise
            delay_ms = backoff.next_delay_ms()
            record_connect_attempt(backend, "failed")
            logger.warning(
                f"Connect to {backend} failed (attempt {attempt}/{attempts}): {e}. "
                f"Retrying in {delay_ms}ms"
            )
            await asyncio.sleep(delay_ms / 1000.0)
        except Exception:
            record_error(backend, "connection_error", "critical")
            raise
        else:
            record_connect_attempt(backend, "success")
            if attempt > 1:
                logger.info(f"Connected to {backend} after {attempt} attempts")
            return result
