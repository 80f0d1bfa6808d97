"""
Core plugin types and dataclasses.

This module contains shared types used by watch sources, adapters and the
reconciliation loop.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class OperationType(Enum):
    """State-changing operations an adapter can perform."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ManagedResource:
    """
    A declared resource, as seen in one snapshot from the watch source.

    Identity is (kind, namespace, name). The spec is opaque to the engine and
    only interpreted by the adapter for the kind.
    """

    kind: str
    name: str
    namespace: Optional[str] = None
    spec: Dict[str, Any] = field(default_factory=dict)
    resource_version: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def key(self) -> str:
        """Serialization key: the resource name within its kind."""
        return self.name

    @classmethod
    def from_object(cls, kind: str, obj: Dict[str, Any]) -> "ManagedResource":
        """
        Build a resource from a Kubernetes-style object.

        Args:
            kind: The resource kind (plural name, e.g. 'queues')
            obj: Object with 'metadata' and optional 'spec'

        Raises:
            ValueError: If the object has no metadata.name
        """
        metadata = obj.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise ValueError(f"Object of kind {kind} has no metadata.name")

        return cls(
            kind=kind,
            name=name,
            namespace=metadata.get("namespace"),
            spec=copy.deepcopy(obj.get("spec") or {}),
            resource_version=metadata.get("resourceVersion"),
            raw=obj,
        )


@dataclass
class OperationResult:
    """Standard result of an adapter operation."""

    kind: str
    name: str
    operation: OperationType
    changed: bool = True
    response: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "operation": self.operation.value,
            "changed": self.changed,
            "response": self.response,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)
