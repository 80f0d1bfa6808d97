"""
Plugin system for the converge operator.

This package provides the plugin architecture for watch sources and resource
adapters.
"""

from plugins.base import ManagedResource, OperationResult, OperationType
from plugins.adapters.base import ResourceAdapter
from plugins.registry import PluginRegistry, get_registry

__all__ = [
    "ManagedResource",
    "OperationResult",
    "OperationType",
    "ResourceAdapter",
    "PluginRegistry",
    "get_registry",
]
