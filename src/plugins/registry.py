"""
Plugin Registry - Discovery and registration of resource adapters.

This module provides the central registry for adapters, handling discovery,
registration, and instantiation. Each adapter claims exactly one resource
kind.
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, List, Optional, Type

from plugins.adapters.base import ResourceAdapter
from retry import TransientRetryExecutor
from validation import validate_schema

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "converge.adapters"


class PluginRegistry:
    """
    Central registry for resource adapters.

    Adapter classes are registered once; instances are created and
    initialized lazily, one per resource kind.
    """

    def __init__(self):
        # Registered adapter classes (not instantiated), keyed by kind
        self._adapters: Dict[str, Type[ResourceAdapter]] = {}

        # Cached adapter metadata to avoid repeated instantiation
        self._adapter_info: Dict[str, Dict[str, str]] = {}

        # Instantiated and initialized adapter instances
        self._adapter_instances: Dict[str, ResourceAdapter] = {}

        # Adapter configurations loaded from environment
        self._adapter_configs: Dict[str, Dict[str, Any]] = {}

    # Registration methods

    def register_adapter(self, adapter_class: Type[ResourceAdapter]) -> None:
        """
        Register an adapter class.

        Args:
            adapter_class: The ResourceAdapter subclass to register

        Raises:
            ValueError: If the kind is already claimed by a different adapter,
                or the adapter declares an invalid spec schema
        """
        if adapter_class.spec_schema is not None:
            is_valid, error = validate_schema(adapter_class.spec_schema)
            if not is_valid:
                raise ValueError(f"{adapter_class.__name__}: {error}")

        # Create temporary instance to get name/kind (only once at registration)
        temp_instance = adapter_class()
        name = temp_instance.name
        kind = temp_instance.kind
        version = temp_instance.version

        existing = self._adapter_info.get(kind)
        if existing and existing["name"] != name:
            raise ValueError(
                f"Resource type '{kind}' is already claimed by "
                f"adapter '{existing['name']}'. Cannot register '{name}'."
            )
        if existing:
            logger.warning(f"Overwriting existing adapter: {name}")

        self._adapters[kind] = adapter_class
        self._adapter_info[kind] = {"name": name, "kind": kind, "version": version}
        # Load adapter config from environment
        self._adapter_configs[kind] = adapter_class.load_config_from_env()
        logger.info(f"Registered adapter: {name} v{version} (resource type: {kind})")

    # Instantiation methods

    async def get_adapter(
        self,
        kind: str,
        config: Optional[Dict[str, Any]] = None,
        executor: Optional[TransientRetryExecutor] = None,
    ) -> ResourceAdapter:
        """
        Get an initialized adapter instance for a resource kind.

        Args:
            kind: The resource kind to retrieve the adapter for
            config: Optional configuration overrides merged over the
                environment configuration
            executor: Retry executor the adapter should use

        Returns:
            An initialized ResourceAdapter instance

        Raises:
            ValueError: If no adapter is registered for the kind
        """
        if kind not in self._adapters:
            available = ", ".join(self._adapters.keys()) or "none"
            raise ValueError(
                f"Unknown resource type: {kind}. Available resource types: {available}"
            )

        if kind not in self._adapter_instances:
            adapter = self._adapters[kind](executor)
            merged = {**self._adapter_configs.get(kind, {}), **(config or {})}
            await adapter.initialize(merged)
            self._adapter_instances[kind] = adapter
            logger.info(f"Initialized adapter for {kind}")

        return self._adapter_instances[kind]

    async def close(self) -> None:
        """Close every instantiated adapter."""
        for kind, adapter in list(self._adapter_instances.items()):
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Error closing adapter for {kind}: {e}")
        self._adapter_instances.clear()

    # Discovery methods

    def list_resource_types(self) -> List[str]:
        """List all resource kinds with a registered adapter."""
        return list(self._adapters.keys())

    def has_adapter(self, kind: str) -> bool:
        """Check if an adapter is registered for the kind."""
        return kind in self._adapters

    def get_adapter_info(self, kind: str) -> Optional[Dict[str, str]]:
        """
        Get information about a registered adapter.

        Args:
            kind: The resource kind

        Returns:
            Dictionary with 'name', 'kind' and 'version', or None if not found
        """
        return self._adapter_info.get(kind)


# Global registry instance
_registry: Optional[PluginRegistry] = None


def get_registry() -> PluginRegistry:
    """Get the global plugin registry singleton."""
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_plugins() -> None:
    """
    Register the built-in adapters and discover adapter plugins via entry
    points.

    This function is called during application startup.
    """
    registry = get_registry()

    from plugins.adapters.http import BUILTIN_ADAPTERS

    for adapter_class in BUILTIN_ADAPTERS:
        registry.register_adapter(adapter_class)

    # Discover and register third-party adapters via entry points
    discovered = entry_points(group=ENTRY_POINT_GROUP)
    for ep in discovered:
        try:
            adapter_class = ep.load()
            registry.register_adapter(adapter_class)
        except Exception as e:
            logger.warning(f"Could not load adapter plugin {ep.name}: {e}")
