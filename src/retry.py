"""
Transient Retry Executor - retries provider calls around transient failures.

Wraps a single provider operation. Transient network errors and the
recently-deleted creation race are retried indefinitely with a fixed delay;
every other error is propagated to the caller on the first attempt.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from errors import ErrorKind, classify_error, is_retryable
from metrics import PROVIDER_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


class TransientRetryExecutor:
    """
    Executes provider operations, retrying the ones that failed transiently.

    There is no retry limit and no backoff: a transient failure always waits
    the same fixed delay before the operation is attempted again from scratch.
    """

    def __init__(
        self,
        retry_delay: float = 30,
        recently_deleted_delay: float = 10,
    ):
        self.retry_delay = retry_delay
        self.recently_deleted_delay = recently_deleted_delay

    def _delay_for(self, kind: ErrorKind) -> Optional[float]:
        """Return the retry delay for an error kind, or None if not retryable."""
        if not is_retryable(kind):
            return None
        if kind is ErrorKind.RECENTLY_DELETED:
            return self.recently_deleted_delay
        return self.retry_delay

    async def _wait(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def execute(self, label: str, operation: Operation) -> Any:
        """
        Run the operation until it succeeds or fails non-transiently.

        Args:
            label: Name used in log messages only (e.g. 'my-queue - queues::Create')
            operation: Zero-argument callable returning a fresh awaitable per attempt

        Returns:
            The result of the first successful attempt

        Raises:
            Exception: The first non-retryable error raised by the operation
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                kind = classify_error(e)
                delay = self._delay_for(kind)
                if delay is None:
                    # Expected convergence conditions are handled by the adapter
                    level = (
                        logging.INFO
                        if kind in (ErrorKind.ALREADY_EXISTS, ErrorKind.NOT_FOUND)
                        else logging.ERROR
                    )
                    logger.log(
                        level,
                        f"[{label}]: non-retryable {kind.value} error in operation "
                        f"(attempt {attempt}): {e}",
                    )
                    raise

                PROVIDER_RETRIES.labels(reason=kind.value).inc()
                logger.warning(
                    f"[{label}]: transient {kind.value} error ({e}), "
                    f"retrying in {delay}s"
                )
                await self._wait(delay)
