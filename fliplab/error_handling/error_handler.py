"""
Error handler with retry logic for FlipLab search.

Implements bounded retries with linear backoff, per-attempt timeouts and an
optional caller deadline.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .errors import TransportError


# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for retry behavior with linear backoff.

    Attributes:
        max_attempts: Total number of attempts, including the first one
        base_delay_ms: Backoff unit in milliseconds
        timeout_per_attempt_ms: Timeout applied to each individual attempt
    """
    max_attempts: int = 3
    base_delay_ms: int = 1000
    timeout_per_attempt_ms: int = 30000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms cannot be negative")
        if self.timeout_per_attempt_ms <= 0:
            raise ValueError("timeout_per_attempt_ms must be positive")

    def get_timeout(self) -> float:
        """Per-attempt timeout in seconds."""
        return self.timeout_per_attempt_ms / 1000

    def get_backoff_delay(self, attempt: int) -> float:
        """
        Calculate backoff delay after a failed attempt.

        The delay before attempt n+1 is ``base_delay_ms * n``, so delays grow
        1x, 2x, 3x and so on.

        Args:
            attempt: Number of the attempt that just failed (1-indexed)

        Returns:
            Delay in seconds before the next attempt
        """
        return self.base_delay_ms * attempt / 1000


def is_retryable(error: BaseException) -> bool:
    """Default retry predicate: only errors that say so are retried."""
    return bool(getattr(error, "retryable", False))


class ErrorHandler:
    """
    Runs an async operation under a RetryConfig.

    The operation is called as ``operation(attempt, timeout)`` where ``timeout``
    is the number of seconds the attempt may take. Errors accepted by the
    retry predicate are retried until the budget is spent; anything else
    propagates after the first attempt.

    Attributes:
        config: Retry configuration
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        retry_predicate: Callable[[BaseException], bool] = is_retryable,
    ):
        self.config = config or RetryConfig()
        self.retry_predicate = retry_predicate

    async def retry_with_backoff(
        self,
        operation: Callable[[int, float], Awaitable[Any]],
        operation_name: str = "operation",
        deadline: Optional[float] = None,
    ) -> Any:
        """
        Execute operation with linear backoff retry logic.

        Args:
            operation: Async callable taking ``(attempt, timeout_seconds)``
            operation_name: Label used in log lines
            deadline: Optional overall budget in seconds, measured from now.
                An attempt cut short by the deadline counts as consumed.

        Returns:
            Result from the first successful attempt

        Raises:
            TransportError: With ``exhausted=True`` once all attempts failed
                or the deadline passed
            Exception: Any error rejected by the retry predicate, unchanged
        """
        max_attempts = self.config.max_attempts
        started = time.monotonic()
        last_error: Optional[BaseException] = None
        attempts = 0

        for attempt in range(1, max_attempts + 1):
            timeout = self.config.get_timeout()
            if deadline is not None:
                remaining = deadline - (time.monotonic() - started)
                if remaining <= 0:
                    logger.warning(
                        f"Deadline reached for {operation_name} before attempt {attempt}/{max_attempts}"
                    )
                    break
                timeout = min(timeout, remaining)

            attempts = attempt
            attempt_started = time.monotonic()
            try:
                result = await operation(attempt, timeout)
            except Exception as e:
                elapsed_ms = (time.monotonic() - attempt_started) * 1000
                last_error = e
                retryable = self.retry_predicate(e)
                self._log_attempt(operation_name, attempt, max_attempts, "error", elapsed_ms, e)

                if not retryable:
                    raise

                # If this was the last attempt, don't wait
                if attempt == max_attempts:
                    break

                backoff_delay = self.config.get_backoff_delay(attempt)
                if deadline is not None and (time.monotonic() - started) + backoff_delay >= deadline:
                    logger.warning(f"Deadline would pass during backoff for {operation_name}")
                    break

                logger.info(f"Waiting {backoff_delay:.1f}s before retry...")
                await asyncio.sleep(backoff_delay)
                continue

            elapsed_ms = (time.monotonic() - attempt_started) * 1000
            self._log_attempt(operation_name, attempt, max_attempts, "success", elapsed_ms)
            return result

        reason = str(last_error) if last_error is not None else "deadline exceeded"
        logger.error(f"Operation {operation_name} failed after {attempts} attempts. Final error: {reason}")
        raise TransportError(
            f"Operation failed after {attempts} attempts: {reason}",
            status=getattr(last_error, "status", None),
            attempts=attempts,
            retryable=False,
            exhausted=True,
        ) from last_error

    def _log_attempt(
        self,
        operation_name: str,
        attempt: int,
        max_attempts: int,
        outcome: str,
        elapsed_ms: float,
        error: Optional[BaseException] = None,
    ) -> None:
        """Emit one structured log line per attempt."""
        fields = {
            "operation": operation_name,
            "attempt": attempt,
            "max_attempts": max_attempts,
            "outcome": outcome,
            "elapsed_ms": round(elapsed_ms, 1),
        }
        if error is None:
            logger.info(
                f"Attempt {attempt}/{max_attempts} for {operation_name} succeeded in {elapsed_ms:.0f}ms",
                extra=fields,
            )
        else:
            fields["error_type"] = type(error).__name__
            logger.warning(
                f"Attempt {attempt}/{max_attempts} for {operation_name} failed in {elapsed_ms:.0f}ms | "
                f"Error: {type(error).__name__}: {error}",
                extra=fields,
            )
