"""
Resource Adapter Base - Abstract interface for provider adapters.

An adapter owns the provider side of exactly one resource kind. Subclasses
implement the raw provider operations (_create, _update, _delete); the base
class layers the convergence fallback on top, so that create and update are
idempotent against duplicate or reordered declarations:

- create of a resource that already exists (and is ours) becomes an update
- update of a resource that does not exist becomes a create

Every provider call made by a subclass must go through self.executor, which
is the only place transient failures are retried.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple

from errors import ErrorKind, ImmutableFieldError, ProviderError, ValidationError
from plugins.base import ManagedResource, OperationResult, OperationType
from retry import TransientRetryExecutor
from validation import validate_spec_against_schema

logger = logging.getLogger(__name__)

# (dotted field path, default value when the field is not set)
ImmutableField = Tuple[str, Any]


def get_path(data: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Look up a dotted path ('a.b.c') in nested dicts."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


class ResourceAdapter(ABC):
    """
    Abstract base class for resource adapters.

    Adapters are registered per kind (e.g. 'queues', 'roles', 'buckets') and
    discovered via the 'converge.adapters' entry point group.
    """

    # Fields that are fixed when the provider resource is created
    immutable_fields: Sequence[ImmutableField] = ()

    # JSON schema for ManagedResource.spec; None disables validation
    spec_schema: Optional[Dict[str, Any]] = None

    def __init__(self, executor: Optional[TransientRetryExecutor] = None):
        self.executor = executor or TransientRetryExecutor()

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this adapter."""
        pass

    @property
    @abstractmethod
    def kind(self) -> str:
        """Resource kind (plural, as used by the watch source) handled here."""
        pass

    @property
    def version(self) -> str:
        """Adapter version string."""
        return "1.0.0"

    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the adapter with configuration.

        Called once when the adapter is loaded.

        Args:
            config: Adapter-specific configuration dictionary
        """
        pass

    async def close(self) -> None:
        """Release any connections held by the adapter."""
        pass

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """
        Load adapter-specific configuration from environment variables.

        Override this method in subclasses to define how the adapter loads
        its configuration from the environment.
        """
        return {}

    # Public operations (used by the reconciliation loop)

    async def create(self, resource: ManagedResource) -> OperationResult:
        """
        Create the provider resource, or update it if it is already ours.
        """
        self.validate(resource)
        try:
            return await self._create(resource)
        except ProviderError as e:
            if e.kind is not ErrorKind.ALREADY_EXISTS:
                raise
            logger.info(
                f"[{resource.kind}/{resource.name}]: Resource exists already and "
                f"is owned by us, applying update instead"
            )
            return await self._update(resource)

    async def update(self, resource: ManagedResource) -> OperationResult:
        """
        Update the provider resource, or create it if it does not exist.

        An update of a resource that is fully up to date is a no-op and
        returns a result with changed=False.
        """
        self.validate(resource)
        try:
            return await self._update(resource)
        except ProviderError as e:
            if e.kind is not ErrorKind.NOT_FOUND:
                raise
            # The watch source saw an update, but the resource was never
            # created or has been deleted in the meantime
            logger.info(
                f"[{resource.kind}/{resource.name}]: Resource does not/no longer "
                f"exist, re-creating it"
            )
            return await self._create(resource)

    async def delete(self, resource: ManagedResource) -> OperationResult:
        """Delete the provider resource."""
        return await self._delete(resource)

    # Helpers for subclasses

    def validate(self, resource: ManagedResource) -> None:
        """
        Validate the desired spec against spec_schema.

        Raises:
            ValidationError: If the spec does not match the schema
        """
        if self.spec_schema is None:
            return
        is_valid, error = validate_spec_against_schema(resource.spec, self.spec_schema)
        if not is_valid:
            raise ValidationError(f"Invalid spec for {resource.name}: {error}")

    def immutable_value_matches(self, path: str, current: Any, desired: Any) -> bool:
        """
        Compare an immutable field's current and desired values.

        Override for fields where distinct values are still compatible.
        """
        return current == desired

    def check_immutable(
        self, current_spec: Dict[str, Any], desired_spec: Dict[str, Any]
    ) -> None:
        """
        Verify that no immutable field is being changed.

        Raises:
            ImmutableFieldError: On the first immutable field that differs
        """
        for path, default in self.immutable_fields:
            current = get_path(current_spec, path, default)
            desired = get_path(desired_spec, path, default)
            if not self.immutable_value_matches(path, current, desired):
                raise ImmutableFieldError(path, current, desired)

    def result(
        self,
        resource: ManagedResource,
        operation: OperationType,
        response: Optional[Dict[str, Any]] = None,
        changed: bool = True,
    ) -> OperationResult:
        return OperationResult(
            kind=self.kind,
            name=resource.name,
            operation=operation,
            changed=changed,
            response=response or {},
        )

    # Raw provider operations

    @abstractmethod
    async def _create(self, resource: ManagedResource) -> OperationResult:
        """
        Create the resource at the provider.

        Raises:
            ProviderError: kind ALREADY_EXISTS when the resource exists and
                is owned by this controller
        """
        pass

    @abstractmethod
    async def _update(self, resource: ManagedResource) -> OperationResult:
        """
        Bring the provider resource in line with the desired spec.

        Raises:
            ProviderError: kind NOT_FOUND when the resource does not exist
            ImmutableFieldError: When an immutable field would change
        """
        pass

    @abstractmethod
    async def _delete(self, resource: ManagedResource) -> OperationResult:
        """Delete the resource at the provider."""
        pass
