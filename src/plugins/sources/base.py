"""
Watch Source Base - Abstract interface for declared resource streams.

A watch source supplies the desired state for one resource kind in two
steps: a full listing with a cursor, then a stream of change events starting
at that cursor. The stream ending (cleanly or with an error) means the
consumer has to list again.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

from plugins.base import ManagedResource

# Watch event types
ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
ERROR = "ERROR"


class SourceError(Exception):
    """Raised when the watch source cannot list or watch resources."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)


@dataclass
class ResourceList:
    """A full listing of one kind at a point in time."""

    cursor: str
    items: List[ManagedResource] = field(default_factory=list)


@dataclass
class WatchEvent:
    """
    One event from the watch stream.

    ERROR events carry no resource, only the status message and code.
    """

    type: str
    resource: Optional[ManagedResource] = None
    message: Optional[str] = None
    code: Optional[int] = None

    @property
    def resource_version(self) -> Optional[str]:
        if self.resource is None:
            return None
        return self.resource.resource_version


class WatchSource(ABC):
    """Abstract base class for watch sources."""

    @property
    @abstractmethod
    def kind(self) -> str:
        """The resource kind this source lists and watches."""
        pass

    async def start(self) -> None:
        """Open connections; called once before the first list()."""
        pass

    async def close(self) -> None:
        """Close any open connections."""
        pass

    @abstractmethod
    async def list(self) -> ResourceList:
        """
        List every declared resource of the kind.

        Raises:
            SourceError: If the listing fails
        """
        pass

    @abstractmethod
    def watch(self, cursor: str) -> AsyncIterator[WatchEvent]:
        """
        Stream change events that happened after the cursor.

        Iteration ending means the stream has ended.
        """
        pass
