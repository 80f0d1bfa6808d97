"""Watch sources supplying declared resources to the reconciliation loop."""

from plugins.sources.base import (
    ResourceList,
    SourceError,
    WatchEvent,
    WatchSource,
)

__all__ = ["ResourceList", "SourceError", "WatchEvent", "WatchSource"]
