"""
HTTP Resource Adapter - Implements ResourceAdapter over a provider REST API.

Each resource kind is a collection on the provider endpoint:

    POST   {endpoint}/{kind}          create
    GET    {endpoint}/{kind}/{name}   read
    PUT    {endpoint}/{kind}/{name}   update
    DELETE {endpoint}/{kind}/{name}   delete

Error responses carry a JSON body with 'code' and 'message'. Every request
is made through the retry executor, so connection failures are retried there
and never inside this module.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

import aiohttp

from errors import ErrorKind, ProviderError
from plugins.adapters.base import ResourceAdapter
from plugins.base import ManagedResource, OperationResult, OperationType

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT_URL = "http://localhost:4566"

# Provider error codes returned with 409 Conflict
CODE_ALREADY_OWNED = "AlreadyOwnedByYou"
CODE_DELETED_RECENTLY = "DeletedRecently"


def error_for_response(status: int, body: Dict[str, Any]) -> ProviderError:
    """
    Translate a non-2xx provider response into a ProviderError.

    Args:
        status: HTTP status code
        body: Parsed error body (may be empty)

    Returns:
        A ProviderError with the matching ErrorKind
    """
    code = body.get("code")
    message = body.get("message") or f"Provider returned HTTP {status}"

    if status == 404:
        kind = ErrorKind.NOT_FOUND
    elif status == 409 and code == CODE_ALREADY_OWNED:
        kind = ErrorKind.ALREADY_EXISTS
    elif status == 409 and code == CODE_DELETED_RECENTLY:
        kind = ErrorKind.RECENTLY_DELETED
    elif status == 409:
        kind = ErrorKind.CONFLICT
    elif status in (400, 422):
        kind = ErrorKind.VALIDATION
    else:
        kind = ErrorKind.PROVIDER

    return ProviderError(kind, message, code=code, status=status)


class HTTPResourceAdapter(ResourceAdapter):
    """
    Adapter for provider resources exposed as REST collections.

    Subclasses set resource_kind (and optionally default_region,
    immutable_fields and spec_schema) to describe one kind.
    """

    resource_kind: str = ""
    default_region: Optional[str] = None

    def __init__(self, executor=None):
        super().__init__(executor)
        self.endpoint_url: str = DEFAULT_ENDPOINT_URL
        self.region: Optional[str] = self.default_region
        self.token: Optional[str] = None
        self.request_timeout: int = 30

    @property
    def name(self) -> str:
        return self.resource_kind

    @property
    def kind(self) -> str:
        return self.resource_kind

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """
        Load endpoint and region for this kind from environment variables.

        {KIND}_ENDPOINT_URL_OVERRIDE and {KIND}_REGION take precedence over the
        provider-wide PROVIDER_ENDPOINT_URL and PROVIDER_REGION.
        """
        prefix = cls.resource_kind.upper()
        return {
            "endpoint_url": os.getenv(f"{prefix}_ENDPOINT_URL_OVERRIDE")
            or os.getenv("PROVIDER_ENDPOINT_URL", DEFAULT_ENDPOINT_URL),
            "region": os.getenv(f"{prefix}_REGION")
            or os.getenv("PROVIDER_REGION")
            or cls.default_region,
            "token": os.getenv("PROVIDER_TOKEN", ""),
            "request_timeout": int(os.getenv("PROVIDER_REQUEST_TIMEOUT", "30")),
        }

    async def initialize(self, config: Dict[str, Any]) -> None:
        """Initialize the adapter with configuration."""
        self.endpoint_url = config.get("endpoint_url") or self.endpoint_url
        self.region = config.get("region") or self.region
        self.token = config.get("token") or None
        self.request_timeout = config.get("request_timeout", self.request_timeout)

        logger.debug(
            f"HTTP adapter for {self.kind} initialized: "
            f"endpoint_url={self.endpoint_url}, region={self.region}"
        )

    # Raw provider operations

    async def _create(self, resource: ManagedResource) -> OperationResult:
        payload = {
            "name": resource.name,
            "namespace": resource.namespace,
            "region": self.region,
            "spec": resource.spec,
        }
        response = await self._call(resource, "Create", "POST", self._url(), payload)
        return self.result(resource, OperationType.CREATE, response)

    async def _update(self, resource: ManagedResource) -> OperationResult:
        current = await self._call(
            resource, "Get", "GET", self._url(resource.name)
        )
        current_spec = current.get("spec") or {}

        self.check_immutable(current_spec, resource.spec)

        if not self.should_apply(resource, current_spec):
            logger.debug(f"[{self.kind}/{resource.name}]: Already up to date")
            return self.result(resource, OperationType.UPDATE, current, changed=False)

        payload = {"region": self.region, "spec": resource.spec}
        response = await self._call(
            resource, "Update", "PUT", self._url(resource.name), payload
        )
        return self.result(resource, OperationType.UPDATE, response)

    async def _delete(self, resource: ManagedResource) -> OperationResult:
        try:
            response = await self._call(
                resource, "Delete", "DELETE", self._url(resource.name)
            )
        except ProviderError as e:
            if e.kind is not ErrorKind.NOT_FOUND:
                raise
            logger.info(f"[{self.kind}/{resource.name}]: Already deleted")
            return self.result(resource, OperationType.DELETE, changed=False)
        return self.result(resource, OperationType.DELETE, response)

    def should_apply(self, resource: ManagedResource, current_spec: Dict[str, Any]) -> bool:
        """Decide whether the current provider spec needs to be replaced."""
        return current_spec != resource.spec

    # Private helper methods

    def _url(self, name: Optional[str] = None) -> str:
        url = f"{self.endpoint_url.rstrip('/')}/{self.kind}"
        if name is not None:
            url = f"{url}/{name}"
        return url

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _call(
        self,
        resource: ManagedResource,
        action: str,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make one provider request through the retry executor."""
        label = f"{resource.name} - {self.kind}::{action}"
        return await self.executor.execute(
            label, lambda: self._request(method, url, payload)
        )

    async def _request(
        self, method: str, url: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Perform a single HTTP request against the provider.

        Returns:
            The parsed JSON body ({} for empty bodies)

        Raises:
            ProviderError: For any non-2xx response
            aiohttp.ClientError: For connection-level failures
        """
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(
                method, url, headers=self._get_headers(), json=payload
            ) as response:
                body = _parse_body(await response.text())
                if 200 <= response.status < 300:
                    return body
                raise error_for_response(response.status, body)


def _parse_body(text: str) -> Dict[str, Any]:
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {"message": text}
    return data if isinstance(data, dict) else {"items": data}
