"""Pytest configuration and fixtures."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from errors import ErrorKind, ProviderError
from plugins.adapters.base import ResourceAdapter
from plugins.base import ManagedResource, OperationResult, OperationType
from plugins.sources.base import ResourceList, WatchEvent, WatchSource
from retry import TransientRetryExecutor


def make_resource(
    name: str,
    spec: Optional[Dict[str, Any]] = None,
    resource_version: str = "1",
    kind: str = "queues",
) -> ManagedResource:
    """Build a managed resource the way the Kubernetes source would."""
    obj = {
        "metadata": {
            "name": name,
            "namespace": "default",
            "resourceVersion": resource_version,
        },
        "spec": spec or {},
    }
    return ManagedResource.from_object(kind, obj)


class NoWaitExecutor(TransientRetryExecutor):
    """Retry executor that records delays instead of sleeping."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.delays: List[float] = []

    async def _wait(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingAdapter(ResourceAdapter):
    """
    Adapter recording every raw provider call.

    Entries in `failures` are consumed in order per (operation, name) and
    raised instead of succeeding. Names in `gates` block until the event is
    set.
    """

    kind_name = "queues"

    def __init__(self, executor=None):
        super().__init__(executor or NoWaitExecutor())
        self.calls: List[tuple] = []
        self.events: List[tuple] = []
        self.failures: Dict[tuple, List[Exception]] = {}
        self.gates: Dict[str, asyncio.Event] = {}

    @property
    def name(self) -> str:
        return "recording"

    @property
    def kind(self) -> str:
        return self.kind_name

    def fail(self, operation: str, name: str, *errors: Exception) -> None:
        self.failures.setdefault((operation, name), []).extend(errors)

    async def _record(self, operation: str, resource: ManagedResource):
        self.calls.append((operation, resource.name, resource.resource_version))
        self.events.append(("start", operation, resource.name))
        gate = self.gates.get(resource.name)
        if gate is not None:
            await gate.wait()
        self.events.append(("end", operation, resource.name))
        pending = self.failures.get((operation, resource.name))
        if pending:
            raise pending.pop(0)

    async def _create(self, resource: ManagedResource) -> OperationResult:
        await self._record("create", resource)
        return self.result(resource, OperationType.CREATE, {"spec": resource.spec})

    async def _update(self, resource: ManagedResource) -> OperationResult:
        await self._record("update", resource)
        return self.result(resource, OperationType.UPDATE, {"spec": resource.spec})

    async def _delete(self, resource: ManagedResource) -> OperationResult:
        await self._record("delete", resource)
        return self.result(resource, OperationType.DELETE)


class FakeWatchSource(WatchSource):
    """
    Watch source replaying scripted listings and watch streams.

    Once the scripted streams are used up, watch() blocks until cancelled and
    `exhausted` is set.
    """

    def __init__(self, listings: List[Any], streams: List[List[Any]], kind: str = "queues"):
        self._kind = kind
        self.listings = list(listings)
        self.streams = list(streams)
        self.list_calls = 0
        self.watch_cursors: List[str] = []
        self.exhausted = asyncio.Event()
        self.closed = False

    @property
    def kind(self) -> str:
        return self._kind

    async def close(self) -> None:
        self.closed = True

    async def list(self) -> ResourceList:
        self.list_calls += 1
        listing = self.listings.pop(0) if len(self.listings) > 1 else self.listings[0]
        if isinstance(listing, Exception):
            raise listing
        return listing

    async def watch(self, cursor: str):
        self.watch_cursors.append(cursor)
        if not self.streams:
            self.exhausted.set()
            await asyncio.Event().wait()
        for event in self.streams.pop(0):
            if isinstance(event, Exception):
                raise event
            yield event


def event(event_type: str, name: str, resource_version: str, spec=None) -> WatchEvent:
    return WatchEvent(
        type=event_type, resource=make_resource(name, spec, resource_version)
    )


def already_exists() -> ProviderError:
    return ProviderError(ErrorKind.ALREADY_EXISTS, "exists", code="AlreadyOwnedByYou", status=409)


def not_found() -> ProviderError:
    return ProviderError(ErrorKind.NOT_FOUND, "not found", status=404)


@pytest.fixture
def executor():
    """Retry executor that never sleeps."""
    return NoWaitExecutor(retry_delay=30, recently_deleted_delay=10)


@pytest.fixture
def adapter(executor):
    """Adapter recording provider calls."""
    return RecordingAdapter(executor)
