"""
Main entry point for the converge operator.

Parses the command line, wires the Kubernetes watch sources to the resource
adapters and runs the controller next to the metrics/health server.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional, Tuple

import click

from config import Config, get_config
from controller import Controller, ControllerConfig
from monitoring import MonitoringServer, create_app
from plugins.registry import get_registry, register_builtin_plugins
from plugins.sources.kubernetes import (
    KubernetesWatchSource,
    create_connection_settings,
)

__version__ = "1.0.0"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


class Application:
    """Main application that orchestrates the controller and monitoring server."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.controller: Optional[Controller] = None
        self.monitoring: Optional[MonitoringServer] = None
        self.running = False
        self._stop_task: Optional[asyncio.Task] = None

    async def initialize(self):
        """Initialize all components."""
        logger.info(f"Initializing converge-operator {__version__}")

        k8s_config = self.config.kubernetes
        if not k8s_config.namespace:
            raise ValueError("A namespace to watch must be set")

        settings = create_connection_settings(k8s_config)

        # Register built-in adapters and discover installed ones
        register_builtin_plugins()
        registry = get_registry()

        def source_factory(kind: str) -> KubernetesWatchSource:
            return KubernetesWatchSource(
                settings,
                plural=kind,
                namespace=k8s_config.namespace,
                group=k8s_config.resource_group,
                version=k8s_config.resource_version,
            )

        ctrl_config = self.config.controller
        controller_config = ControllerConfig(
            retry_delay=ctrl_config.retry_delay,
            recently_deleted_delay=ctrl_config.recently_deleted_delay,
            resync_error_delay=ctrl_config.resync_error_delay,
            evict_settled_operations=ctrl_config.evict_settled_operations,
            shutdown_grace_period=ctrl_config.shutdown_grace_period,
            adapter_configs=self.config.plugins.adapter_configs,
        )

        self.controller = Controller(
            source_factory=source_factory,
            registry=registry,
            config=controller_config,
            resource_types=self.config.plugins.enabled_resource_types,
        )

        app = create_app(
            health_check=self.controller.is_healthy,
            status=self.controller.status,
            version=__version__,
        )
        self.monitoring = MonitoringServer(
            app, host=self.config.api.host, port=self.config.api.port
        )

        logger.info("All components initialized")

    async def start(self):
        """Start the application."""
        if not self.controller:
            await self.initialize()

        self.running = True
        monitoring_task = asyncio.create_task(self.monitoring.start())

        try:
            logger.info(
                f"converge-operator {__version__} ready on port {self.config.api.port}"
            )
            await self.controller.start()
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")
        finally:
            await self.monitoring.stop()
            await asyncio.gather(monitoring_task, return_exceptions=True)

    async def stop(self):
        """
        Stop the application gracefully.

        Concurrent and repeated calls all wait for the same shutdown.
        """
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self._shutdown())
        await self._stop_task

    async def _shutdown(self):
        logger.info("Stopping converge-operator")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if self.monitoring:
            await self.monitoring.stop()

        await get_registry().close()

        logger.info("converge-operator stopped")


async def main(config: Optional[Config] = None) -> int:
    """
    Main entry point.

    Returns:
        The process exit status: 1 if the controller could not start or a
        reconciliation loop failed, 0 after a clean shutdown
    """
    app = Application(config)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except Exception as e:
        logger.error(f"Uncaught error, aborting: {e}")
        return 1
    finally:
        await app.stop()
    return 0


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def apply_cli_options(config: Config, **options) -> Config:
    """Override environment configuration with command line options."""
    k8s = config.kubernetes
    for name in (
        "server",
        "certificate_authority",
        "client_certificate",
        "client_key",
        "token",
        "username",
        "password",
        "namespace",
    ):
        value = options.get(name)
        if value:
            setattr(k8s, name, value)
    if options.get("insecure_skip_tls_verify"):
        k8s.insecure_skip_tls_verify = True

    resource_types: Tuple[str, ...] = options.get("resource_type") or ()
    if resource_types:
        config.plugins.enabled_resource_types = list(resource_types)
    if options.get("port") is not None:
        config.api.port = options["port"]
    if options.get("log_level"):
        config.api.log_level = options["log_level"]
    return config


@click.command()
@click.option("--server", "-s", help="The address and port of the Kubernetes API server")
@click.option(
    "--certificate-authority",
    "--cacert",
    "certificate_authority",
    type=click.Path(),
    help="Path to a cert. file for the certificate authority",
)
@click.option(
    "--client-certificate",
    "--cert",
    "client_certificate",
    type=click.Path(),
    help="Path to a client certificate file for TLS",
)
@click.option(
    "--client-key",
    "--key",
    "client_key",
    type=click.Path(),
    help="Path to a client key file for TLS",
)
@click.option(
    "--insecure-skip-tls-verify",
    is_flag=True,
    help="If set, the server's certificate will not be checked for validity. "
    "This will make your HTTPS connections insecure",
)
@click.option("--token", help="Bearer token for authentication to the API server")
@click.option("--username", help="Username for basic authentication to the API server")
@click.option("--password", help="Password for basic authentication to the API server")
@click.option(
    "--namespace",
    envvar="WATCH_NAMESPACE",
    required=True,
    help="The namespace to watch",
)
@click.option(
    "--resource-type",
    multiple=True,
    help="Enabled resource types (empty to enable all, can use multiple times)",
)
@click.option("--port", envvar="PORT", type=int, default=8080, show_default=True)
@click.option(
    "--log-level",
    envvar="LOG_LEVEL",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    show_default=True,
)
def cli(**options):
    """converge-operator - drive provider resources to match declared resources"""
    config = apply_cli_options(get_config(), **options)
    configure_logging(config.api.log_level)
    sys.exit(asyncio.run(main(config)))


if __name__ == "__main__":
    cli()
