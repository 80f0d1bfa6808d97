"""
Kubernetes Watch Source - lists and watches namespaced custom resources.

Listing:  GET /apis/{group}/{version}/namespaces/{namespace}/{plural}
Watching: the same path with ?watch=true&resourceVersion={cursor}, answered
with newline-delimited JSON events until the server closes the stream.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from plugins.base import ManagedResource
from plugins.sources.base import (
    ERROR,
    ResourceList,
    SourceError,
    WatchEvent,
    WatchSource,
)
from plugins.sources.kubernetes.connection import ConnectionSettings

logger = logging.getLogger(__name__)


def parse_event(kind: str, raw: Dict[str, Any]) -> WatchEvent:
    """Turn one decoded watch line into a WatchEvent."""
    event_type = raw.get("type", "")
    obj = raw.get("object") or {}

    if event_type == ERROR:
        return WatchEvent(type=event_type, message=obj.get("message"), code=obj.get("code"))

    resource = None
    if (obj.get("metadata") or {}).get("name"):
        resource = ManagedResource.from_object(kind, obj)
    return WatchEvent(type=event_type, resource=resource)


class KubernetesWatchSource(WatchSource):
    """Watch source backed by the Kubernetes API server."""

    def __init__(
        self,
        settings: ConnectionSettings,
        plural: str,
        namespace: str,
        group: str,
        version: str = "v1",
    ):
        self.settings = settings
        self.plural = plural
        self.namespace = namespace
        self.group = group
        self.api_version = version
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def kind(self) -> str:
        return self.plural

    @property
    def collection_url(self) -> str:
        return (
            f"{self.settings.url.rstrip('/')}/apis/{self.group}/{self.api_version}"
            f"/namespaces/{self.namespace}/{self.plural}"
        )

    async def start(self) -> None:
        if self._session is not None:
            return
        connector = aiohttp.TCPConnector(ssl=self.settings.ssl_context())
        self._session = aiohttp.ClientSession(
            headers=self.settings.headers(),
            auth=self.settings.basic_auth(),
            connector=connector,
        )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def list(self) -> ResourceList:
        await self.start()
        async with self._session.get(self.collection_url) as response:
            if response.status != 200:
                text = await response.text()
                raise SourceError(
                    f"Cannot list {self.plural} in {self.namespace}: "
                    f"HTTP {response.status} {text}",
                    status=response.status,
                )
            data = await response.json()

        cursor = (data.get("metadata") or {}).get("resourceVersion", "")
        items = [
            ManagedResource.from_object(self.plural, obj)
            for obj in data.get("items") or []
        ]
        logger.debug(f"Listed {len(items)} {self.plural} at {cursor}")
        return ResourceList(cursor=cursor, items=items)

    async def watch(self, cursor: str) -> AsyncIterator[WatchEvent]:
        await self.start()
        params = {"watch": "true", "resourceVersion": cursor}
        # The stream stays open until the server ends it
        timeout = aiohttp.ClientTimeout(total=None, sock_read=None)

        async with self._session.get(
            self.collection_url, params=params, timeout=timeout
        ) as response:
            if response.status != 200:
                text = await response.text()
                raise SourceError(
                    f"Cannot watch {self.plural} in {self.namespace}: "
                    f"HTTP {response.status} {text}",
                    status=response.status,
                )

            buffer = b""
            async for chunk in response.content.iter_any():
                buffer += chunk
                while b"\n" in buffer:
                    line, buffer = buffer.split(b"\n", 1)
                    event = self._decode(line)
                    if event is not None:
                        yield event

            event = self._decode(buffer)
            if event is not None:
                yield event

    def _decode(self, line: bytes) -> Optional[WatchEvent]:
        line = line.strip()
        if not line:
            return None
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping undecodable watch line for {self.plural}: {e}")
            return None
        return parse_event(self.plural, raw)
