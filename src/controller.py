"""
Converge Controller - watch-driven reconciliation loops.

Each enabled resource kind gets one ReconciliationLoop: list everything,
treat every listed resource as an update, then watch from the listing's
cursor and turn every event into a create, update or delete. When the watch
ends the loop lists again. Operations for the same resource name are
serialized; operations for different names run concurrently.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from errors import ErrorKind, classify_error
from metrics import OPERATIONS, PENDING_OPERATIONS, WATCH_EVENTS, WATCH_RESTARTS
from plugins import get_registry
from plugins.adapters.base import ResourceAdapter
from plugins.base import ManagedResource, OperationResult, OperationType
from plugins.registry import PluginRegistry
from plugins.sources.base import ADDED, DELETED, ERROR, MODIFIED, WatchEvent, WatchSource
from retry import TransientRetryExecutor
from serializer import PerKeySerializer

logger = logging.getLogger(__name__)

EVENT_OPERATIONS = {
    ADDED: OperationType.CREATE,
    MODIFIED: OperationType.UPDATE,
    DELETED: OperationType.DELETE,
}

OPERATION_MESSAGES = {
    OperationType.CREATE: "Creating resource",
    OperationType.UPDATE: "Updating resource attributes",
    OperationType.DELETE: "Deleting resource",
}


class LoopState(Enum):
    """Phase of a reconciliation loop."""

    INITIAL_LIST = "initial_list"
    WATCHING = "watching"
    STOPPED = "stopped"


def is_newer_version(candidate: str, current: Optional[str]) -> bool:
    """
    Compare two resource versions.

    Versions are opaque strings; when both are integers they are compared
    numerically, otherwise the candidate is taken as the latest.
    """
    if current is None:
        return True
    try:
        return int(candidate) > int(current)
    except ValueError:
        return candidate != current


class ReconciliationLoop:
    """
    List+watch loop for a single resource kind.

    The first listing is the startup connection: if it fails, run() raises.
    Listing failures on later resyncs are logged and retried after
    resync_error_delay seconds.
    """

    def __init__(
        self,
        source: WatchSource,
        adapter: ResourceAdapter,
        serializer: Optional[PerKeySerializer] = None,
        resync_error_delay: float = 5,
    ):
        self.source = source
        self.adapter = adapter
        self.kind = source.kind
        self.serializer = serializer or PerKeySerializer()
        self.resync_error_delay = resync_error_delay

        self.state = LoopState.INITIAL_LIST
        self.cursor: Optional[str] = None
        self.running = False
        self._listed_once = False

    async def run(self) -> None:
        """Run list+watch cycles until stopped."""
        self.running = True
        await self.source.start()

        while self.running:
            self.state = LoopState.INITIAL_LIST
            try:
                listing = await self.source.list()
            except Exception as e:
                if not self._listed_once:
                    raise
                logger.error(
                    f"Cannot list {self.kind}: {e}, "
                    f"retrying in {self.resync_error_delay}s",
                    exc_info=True,
                )
                await asyncio.sleep(self.resync_error_delay)
                continue

            self._listed_once = True
            self.cursor = listing.cursor

            # Everything we see in a listing is treated as an update, which
            # creates or updates the provider resource as needed
            for resource in listing.items:
                self.enqueue(OperationType.UPDATE, resource, message="Syncing")

            self.state = LoopState.WATCHING
            logger.info(f"Watching {self.kind} at {self.cursor}...")
            try:
                async for event in self.source.watch(self.cursor):
                    self.handle_event(event)
                    if not self.running:
                        break
            except Exception as e:
                logger.warning(f"Watch of {self.kind} failed: {e}", exc_info=True)

            if not self.running:
                break

            logger.info(f"Watch of {self.kind} ended, restarting")
            WATCH_RESTARTS.labels(kind=self.kind).inc()

        self.state = LoopState.STOPPED

    def stop(self) -> None:
        """Ask the loop to stop after the current event."""
        self.running = False
        self.state = LoopState.STOPPED

    def handle_event(self, event: WatchEvent) -> Optional[asyncio.Task]:
        """
        Dispatch one watch event.

        Returns:
            The enqueued operation task, or None if the event was ignored
        """
        WATCH_EVENTS.labels(kind=self.kind, type=event.type or "UNKNOWN").inc()
        self.advance_cursor(event.resource_version)

        if event.type == ERROR:
            # Usually the stream ends right after, but there may be more
            # events in it that we still want to consume
            logger.warning(
                f"Error while watching {self.kind}: {event.message}, ignoring"
            )
            return None

        operation = EVENT_OPERATIONS.get(event.type)
        if operation is None:
            logger.warning(f"Unknown watch event type {event.type}, ignoring")
            return None
        if event.resource is None:
            logger.warning(
                f"{event.type} event for {self.kind} without a named resource, "
                "ignoring"
            )
            return None

        return self.enqueue(operation, event.resource)

    def advance_cursor(self, version: Optional[str]) -> None:
        if version and is_newer_version(version, self.cursor):
            self.cursor = version

    def enqueue(
        self,
        operation: OperationType,
        resource: ManagedResource,
        message: Optional[str] = None,
    ) -> asyncio.Task:
        """
        Queue an adapter operation behind every earlier one for the resource.

        Failures are logged and counted; they never propagate out of the loop.
        """
        action = {
            OperationType.CREATE: self.adapter.create,
            OperationType.UPDATE: self.adapter.update,
            OperationType.DELETE: self.adapter.delete,
        }[operation]
        message = message or OPERATION_MESSAGES[operation]

        async def run_operation():
            logger.info(f"[{self.kind}/{resource.name}]: {message}")
            return await action(resource)

        task = self.serializer.enqueue(resource.key, run_operation)
        task.add_done_callback(
            lambda t: self._log_outcome(operation, resource.name, t)
        )
        PENDING_OPERATIONS.labels(kind=self.kind).set(self.serializer.pending_count())
        return task

    def _log_outcome(
        self, operation: OperationType, name: str, task: asyncio.Task
    ) -> None:
        PENDING_OPERATIONS.labels(kind=self.kind).set(self.serializer.pending_count())

        if task.cancelled():
            logger.info(f"[{self.kind}/{name}]: Cancelled {operation.value}")
            OPERATIONS.labels(
                kind=self.kind, operation=operation.value, outcome="cancelled"
            ).inc()
            return

        error = task.exception()
        if error is not None:
            kind = classify_error(error)
            logger.error(
                f"[{self.kind}/{name}]: Error {error} ({kind.value})",
                exc_info=error if kind is ErrorKind.UNKNOWN else None,
            )
            OPERATIONS.labels(
                kind=self.kind, operation=operation.value, outcome="error"
            ).inc()
            return

        logger.info(f"[{self.kind}/{name}]: Success {_encode_result(task.result())}")
        OPERATIONS.labels(
            kind=self.kind, operation=operation.value, outcome="success"
        ).inc()

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "cursor": self.cursor,
            "pending_operations": self.serializer.pending_count(),
        }


def _encode_result(result: Any) -> str:
    if isinstance(result, OperationResult):
        return result.to_json()
    return json.dumps(result, default=str)


@dataclass
class ControllerConfig:
    """Configuration for the controller."""

    retry_delay: float = 30
    recently_deleted_delay: float = 10
    resync_error_delay: float = 5
    evict_settled_operations: bool = True
    shutdown_grace_period: float = 30
    adapter_configs: Optional[Dict[str, Dict[str, Any]]] = None

    def __post_init__(self):
        if self.adapter_configs is None:
            self.adapter_configs = {}


# Builds the watch source for a resource kind
SourceFactory = Callable[[str], WatchSource]


class Controller:
    """
    Main controller running one reconciliation loop per resource kind.

    Loops share nothing but the retry executor settings: each kind has its
    own adapter, watch source and serializer.
    """

    def __init__(
        self,
        source_factory: SourceFactory,
        registry: Optional[PluginRegistry] = None,
        config: Optional[ControllerConfig] = None,
        resource_types: Optional[List[str]] = None,
    ):
        self.source_factory = source_factory
        self.registry = registry or get_registry()
        self.config = config or ControllerConfig()
        self.resource_types = resource_types or []
        self.running = False

        self.loops: Dict[str, ReconciliationLoop] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def _enabled_resource_types(self) -> List[str]:
        if not self.resource_types:
            return self.registry.list_resource_types()
        for kind in self.resource_types:
            if not self.registry.has_adapter(kind):
                available = ", ".join(self.registry.list_resource_types()) or "none"
                raise ValueError(
                    f"Unknown resource type: {kind}. "
                    f"Available resource types: {available}"
                )
        return list(self.resource_types)

    async def _build_loops(self) -> None:
        for kind in self._enabled_resource_types():
            executor = TransientRetryExecutor(
                retry_delay=self.config.retry_delay,
                recently_deleted_delay=self.config.recently_deleted_delay,
            )
            adapter = await self.registry.get_adapter(
                kind, self.config.adapter_configs.get(kind), executor
            )
            info = self.registry.get_adapter_info(kind)
            logger.info(
                f"Reconciling {kind} with adapter {info['name']} v{info['version']}"
            )
            self.loops[kind] = ReconciliationLoop(
                source=self.source_factory(kind),
                adapter=adapter,
                serializer=PerKeySerializer(
                    evict_settled=self.config.evict_settled_operations
                ),
                resync_error_delay=self.config.resync_error_delay,
            )
        logger.debug(f"Enabled resource types: {', '.join(self.loops.keys())}")

    async def start(self) -> None:
        """
        Start every reconciliation loop and wait for them.

        Raises:
            Exception: The first error that ends a loop, e.g. a failed
                initial listing
        """
        logger.info("Starting converge controller")
        self.running = True

        if not self.loops:
            await self._build_loops()

        for kind, loop in self.loops.items():
            self._tasks[kind] = asyncio.create_task(self._run_loop(loop))

        try:
            await asyncio.gather(*self._tasks.values())
        except Exception as e:
            logger.error(f"Controller error: {e}")
            raise

    async def _run_loop(self, loop: ReconciliationLoop) -> None:
        try:
            await loop.run()
        except Exception as e:
            logger.error(
                f"Error when monitoring resources of type {loop.kind}: {e}",
                exc_info=True,
            )
            raise

    async def stop(self) -> None:
        """Stop all loops and wait for in-flight operations to settle."""
        logger.info("Stopping converge controller")
        self.running = False

        for loop in self.loops.values():
            loop.stop()

        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()

        await self._drain()

        for kind, loop in self.loops.items():
            try:
                await loop.source.close()
            except Exception as e:
                logger.warning(f"Error closing watch source for {kind}: {e}")

    async def _drain(self) -> None:
        serializers = [loop.serializer for loop in self.loops.values()]
        if not any(s.pending_count() for s in serializers):
            return

        try:
            await asyncio.wait_for(
                asyncio.gather(*(s.join() for s in serializers)),
                timeout=self.config.shutdown_grace_period,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Operations still pending after "
                f"{self.config.shutdown_grace_period}s, cancelling"
            )
            for serializer in serializers:
                serializer.cancel_all()

    def status(self) -> Dict[str, Dict[str, Any]]:
        """Per-kind loop status."""
        return {kind: loop.status() for kind, loop in self.loops.items()}

    def is_healthy(self) -> bool:
        """True while running and no loop has ended with an error."""
        if not self.running:
            return False
        for task in self._tasks.values():
            if task.done() and (task.cancelled() or task.exception() is not None):
                return False
        return True
