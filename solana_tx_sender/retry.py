"""
Retry logic for idempotent reads.

Used for fetching the latest blockhash and for Jupiter quote/swap requests.
It is never applied to transaction broadcasts: the confirmation race is the
only component that retransmits a transaction.
"""

import asyncio
import functools
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Set, Tuple, Type, TypeVar

from .exceptions import SolanaSenderError

logger = logging.getLogger(__name__)

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])


class RetryExhaustedError(Exception):
    """A retryable call kept failing until the policy gave up."""

    def __init__(
        self,
        message: str,
        last_exception: Optional[Exception] = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


@dataclass
class RetryConfig:
    """
    Attributes:
        max_retries: Retries after the first attempt (0 = no retries)
        base_delay: Delay before the first retry in seconds
        max_delay: Cap for the exponential delay
        exponential_base: Growth factor between retries
        jitter: Randomise each delay by up to +/- jitter_factor
        retryable_exceptions: Exception types worth retrying
        retry_status_codes: HTTP status codes worth retrying (empty = any)
        timeout: Total time budget across all attempts
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.5
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)
    retry_status_codes: Set[int] = field(default_factory=set)
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")

    def delay_for(self, attempt: int) -> float:
        """Exponential delay after failed attempt number `attempt`."""
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter and self.jitter_factor > 0:
            spread = delay * self.jitter_factor
            delay += random.uniform(-spread, spread)
        return max(0.0, min(delay, self.max_delay))


def should_retry(exception: Exception, config: RetryConfig, attempt: int) -> bool:
    if attempt > config.max_retries:
        return False

    if isinstance(exception, SolanaSenderError) and not exception.is_recoverable:
        return False

    status_code = getattr(exception, "status_code", None)
    if status_code is not None and config.retry_status_codes:
        if status_code not in config.retry_status_codes:
            return False

    return isinstance(exception, config.retryable_exceptions)


class RetryContext:
    """
    Usage:
        async with RetryContext(config) as ctx:
            result = await ctx.execute(fetch, arg)

    A non-retryable error on the first attempt propagates unchanged; later
    failures raise RetryExhaustedError chained to the last error.
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()
        self._attempt = 0
        self._start_time: Optional[float] = None
        self._last_exception: Optional[Exception] = None

    async def __aenter__(self) -> "RetryContext":
        self._start_time = time.monotonic()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    def _check_timeout(self) -> None:
        if not self.config.timeout or self._start_time is None:
            return
        elapsed = time.monotonic() - self._start_time
        if elapsed >= self.config.timeout:
            raise RetryExhaustedError(
                f"Timeout exceeded after {elapsed:.2f}s",
                self._last_exception,
                self._attempt - 1,
            )

    async def execute(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        self._attempt = 0

        while True:
            self._attempt += 1
            self._check_timeout()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self._last_exception = e
                if not should_retry(e, self.config, self._attempt):
                    if self._attempt == 1:
                        raise
                    logger.error(f"Operation failed after {self._attempt} attempts. Last error: {e}")
                    raise RetryExhaustedError(
                        f"Exhausted {self._attempt} attempts", e, self._attempt
                    ) from e

                delay = self.config.delay_for(self._attempt)
                logger.warning(
                    f"Retry attempt {self._attempt}/{self.config.max_retries} "
                    f"after {delay:.2f}s delay. Exception: {e}"
                )
                await asyncio.sleep(delay)
                continue

            if self._attempt > 1:
                logger.info(f"Operation succeeded after {self._attempt} attempts")
            return result

    @property
    def attempts(self) -> int:
        return self._attempt

    @property
    def last_exception(self) -> Optional[Exception]:
        return self._last_exception


def async_retry(config: Optional[RetryConfig] = None) -> Callable[[F], F]:
    """Decorate a coroutine function so each call runs inside a RetryContext."""
    config = config or RetryConfig()

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            async with RetryContext(config) as ctx:
                return await ctx.execute(func, *args, **kwargs)

        return wrapper

    return decorator


_TRANSIENT = (ConnectionError, TimeoutError, OSError, SolanaSenderError)

RPC_READ_RETRY_POLICY = RetryConfig(
    max_retries=3,
    base_delay=0.5,
    max_delay=5.0,
    jitter_factor=0.3,
    retryable_exceptions=_TRANSIENT,
)

JUPITER_RETRY_POLICY = RetryConfig(
    max_retries=3,
    base_delay=0.3,
    max_delay=10.0,
    jitter_factor=0.4,
    retryable_exceptions=_TRANSIENT,
    retry_status_codes={429, 500, 502, 503, 504},
    timeout=30.0,
)


__all__ = [
    "RetryExhaustedError",
    "RetryConfig",
    "should_retry",
    "RetryContext",
    "async_retry",
    "RPC_READ_RETRY_POLICY",
    "JUPITER_RETRY_POLICY",
]
