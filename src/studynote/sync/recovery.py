"""Retry with exponential backoff for backend calls made during sync."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

import httpx

from studynote.exceptions import BackendRequestError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters for one class of failure."""

    max_retries: int
    base_delay: float
    max_delay: float
    backoff_multiplier: float

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.base_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)


DEFAULT_RETRY = RetryConfig(max_retries=3, base_delay=1.0, max_delay=30.0, backoff_multiplier=2.0)
AGGRESSIVE_RETRY = RetryConfig(max_retries=5, base_delay=0.5, max_delay=60.0, backoff_multiplier=2.5)
RATE_LIMITED_RETRY = RetryConfig(max_retries=2, base_delay=5.0, max_delay=120.0, backoff_multiplier=3.0)

NETWORK_TIMEOUT = "network_timeout"
NETWORK_UNAVAILABLE = "network_unavailable"
SERVER_ERROR = "server_error"
RATE_LIMITED = "rate_limited"
TEMPORARY_FAILURE = "temporary_failure"


@dataclass(frozen=True)
class RecoverableError:
    """Classification of a failure that may be retried."""

    kind: str
    status_code: int | None = None

    @property
    def should_retry(self) -> bool:
        if self.kind == SERVER_ERROR:
            return self.status_code is not None and 500 <= self.status_code < 600
        return True

    @property
    def retry_config(self) -> RetryConfig:
        if self.kind in (NETWORK_TIMEOUT, NETWORK_UNAVAILABLE):
            return AGGRESSIVE_RETRY
        if self.kind == RATE_LIMITED:
            return RATE_LIMITED_RETRY
        return DEFAULT_RETRY


def _classify_status(status_code: int) -> RecoverableError | None:
    if status_code == 429:
        return RecoverableError(RATE_LIMITED, status_code)
    if status_code == 408:
        return RecoverableError(NETWORK_TIMEOUT, status_code)
    if status_code == 503:
        return RecoverableError(TEMPORARY_FAILURE, status_code)
    if 500 <= status_code < 600:
        return RecoverableError(SERVER_ERROR, status_code)
    return None


def classify_error(error: BaseException) -> RecoverableError | None:
    """Decide whether an error is worth retrying.

    Returns None for errors that should fail immediately.
    """
    if isinstance(error, httpx.TimeoutException):
        return RecoverableError(NETWORK_TIMEOUT)
    if isinstance(error, (httpx.ConnectError, httpx.NetworkError, httpx.RemoteProtocolError)):
        return RecoverableError(NETWORK_UNAVAILABLE)
    if isinstance(error, httpx.TooManyRedirects):
        return RecoverableError(TEMPORARY_FAILURE)
    if isinstance(error, httpx.HTTPStatusError):
        return _classify_status(error.response.status_code)
    if isinstance(error, BackendRequestError):
        if error.status_code is not None:
            return _classify_status(error.status_code)
        if error.__cause__ is not None:
            return classify_error(error.__cause__)

    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return RecoverableError(NETWORK_TIMEOUT)
    if "network" in message or "connection" in message:
        return RecoverableError(NETWORK_UNAVAILABLE)
    if "rate limit" in message or "too many requests" in message:
        return RecoverableError(RATE_LIMITED)
    if "server error" in message or "internal error" in message:
        return RecoverableError(SERVER_ERROR, 500)
    return None


def execute_with_retry(
    operation: Callable[[], T],
    operation_name: str,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation``, retrying recoverable failures with backoff.

    Args:
        operation: Zero-argument callable to run
        operation_name: Name used in log messages
        sleep: Delay function (injectable for tests)

    Returns:
        The operation's result

    Raises:
        The last error raised by the operation once it is not recoverable
        or its retry budget is exhausted.
    """
    attempt = 0
    while True:
        try:
            result = operation()
            if attempt > 0:
                logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
            return result
        except Exception as e:
            attempt += 1
            logger.warning(f"{operation_name} failed on attempt {attempt}: {e}")

            recoverable = classify_error(e)
            if (
                recoverable is None
                or not recoverable.should_retry
                or attempt > recoverable.retry_config.max_retries
            ):
                logger.error(f"{operation_name} failed permanently: {e}")
                raise

            delay = recoverable.retry_config.delay_for(attempt)
            logger.info(
                f"Retrying {operation_name} in {delay:.1f}s "
                f"(attempt {attempt + 1}/{recoverable.retry_config.max_retries + 1})"
            )
            sleep(delay)
