"""
Per-Key Serializer - one operation chain per resource name.

Each key behaves like a single-threaded actor: operations enqueued for the
same key run one at a time in enqueue order, while operations for different
keys run independently of each other.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

OperationFactory = Callable[[], Awaitable[Any]]


class PerKeySerializer:
    """
    Serializes asynchronous operations per key.

    Maintains a mapping from key to the task at the tail of that key's chain.
    A newly enqueued operation starts only after the current tail has settled,
    whether it succeeded or failed, so a failure never blocks the operations
    queued behind it. Each caller observes the outcome of its own operation
    through the returned task.
    """

    def __init__(self, evict_settled: bool = True):
        """
        Args:
            evict_settled: Drop a key's entry once its tail task has settled.
                When False, tails are retained for the lifetime of the
                serializer.
        """
        self.evict_settled = evict_settled
        self._tails: Dict[str, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()

    def enqueue(self, key: str, operation: OperationFactory) -> asyncio.Task:
        """
        Schedule an operation to run after every earlier operation for the key.

        Must be called from within a running event loop. The chain is updated
        before this method returns, so two consecutive enqueues for the same
        key are always ordered, even if neither has started yet.

        Args:
            key: The resource name the operation belongs to
            operation: Zero-argument callable returning the awaitable to run

        Returns:
            Task resolving to the operation's result (or raising its error)
        """
        previous = self._tails.get(key)
        task = asyncio.get_running_loop().create_task(
            self._run_after(previous, operation)
        )
        self._tails[key] = task
        self._inflight.add(task)
        task.add_done_callback(lambda t: self._settled(key, t))
        return task

    async def _run_after(
        self, previous: Optional[asyncio.Task], operation: OperationFactory
    ) -> Any:
        if previous is not None and not previous.done():
            # asyncio.wait never raises the awaited task's exception
            await asyncio.wait([previous])
        return await operation()

    def _settled(self, key: str, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if self.evict_settled and self._tails.get(key) is task:
            del self._tails[key]

    def keys(self) -> List[str]:
        """Keys that currently have a chain entry."""
        return list(self._tails.keys())

    def pending_count(self) -> int:
        """Number of enqueued operations that have not settled yet."""
        return len(self._inflight)

    async def join(self) -> None:
        """Wait until every operation enqueued so far has settled."""
        while self._inflight:
            await asyncio.wait(list(self._inflight))

    def cancel_all(self) -> int:
        """
        Cancel every operation that has not settled yet.

        Only used on shutdown: the engine itself never cancels an enqueued
        operation.

        Returns:
            Number of tasks cancelled
        """
        pending = [task for task in self._inflight if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.info(f"Cancelled {len(pending)} pending operations")
        return len(pending)
