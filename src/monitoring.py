"""
Monitoring server - Prometheus metrics and health endpoints.

Runs a small FastAPI app under uvicorn next to the controller:

- GET /metrics: Prometheus text exposition
- GET /healthz: 200 while every reconciliation loop is running, 503 otherwise
"""

import logging
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Response body of the health endpoint."""

    status: str
    service: str
    version: str
    resource_types: Dict[str, Dict[str, Any]]


def create_app(
    health_check: Callable[[], bool],
    status: Callable[[], Dict[str, Dict[str, Any]]],
    version: str = "1.0.0",
) -> FastAPI:
    """
    Create the monitoring app.

    Args:
        health_check: Returns True while the controller is healthy
        status: Returns per-kind loop status
        version: Version reported by the health endpoint
    """
    app = FastAPI(
        title="converge-operator",
        description="Metrics and health endpoints of the converge operator",
        version=version,
    )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz():
        """Health check endpoint."""
        healthy = health_check()
        body = HealthResponse(
            status="ok" if healthy else "unavailable",
            service="converge-operator",
            version=version,
            resource_types=status(),
        )
        return JSONResponse(
            status_code=200 if healthy else 503, content=body.model_dump()
        )

    return app


class MonitoringServer:
    """Serves the monitoring app with uvicorn."""

    def __init__(self, app: FastAPI, host: str = "0.0.0.0", port: int = 8080):
        self.app = app
        self.host = host
        self.port = port
        self.server: Optional[uvicorn.Server] = None

    async def start(self) -> None:
        """Start the HTTP server."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
        )
        self.server = uvicorn.Server(config)

        logger.info(f"Starting monitoring server on {self.host}:{self.port}")
        await self.server.serve()

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        logger.info("Stopping monitoring server")
        if self.server:
            self.server.should_exit = True
