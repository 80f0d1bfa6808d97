"""HTTP adapter plugin - provider resources exposed as REST collections."""

from plugins.adapters.http.adapter import HTTPResourceAdapter
from plugins.adapters.http.kinds import (
    BUILTIN_ADAPTERS,
    BucketAdapter,
    QueueAdapter,
    RoleAdapter,
)

__all__ = [
    "HTTPResourceAdapter",
    "QueueAdapter",
    "RoleAdapter",
    "BucketAdapter",
    "BUILTIN_ADAPTERS",
]
