"""
Configuration module for the converge operator.

Loads configuration from environment variables. Command line options are
applied on top by main.py.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_list(name: str) -> List[str]:
    value = os.getenv(name, "")
    return [p.strip() for p in value.split(",") if p.strip()] if value else []


@dataclass
class KubernetesConfig:
    """Kubernetes API server and watched resources configuration."""

    server: Optional[str] = None
    certificate_authority: Optional[str] = None
    client_certificate: Optional[str] = None
    client_key: Optional[str] = None
    insecure_skip_tls_verify: bool = False
    token: Optional[str] = field(default=None, repr=False)  # Never log token
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    namespace: Optional[str] = None
    resource_group: str = "converge.k8s.io"
    resource_version: str = "v1"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            server=os.getenv("KUBERNETES_SERVER") or None,
            certificate_authority=os.getenv("KUBERNETES_CERTIFICATE_AUTHORITY") or None,
            client_certificate=os.getenv("KUBERNETES_CLIENT_CERTIFICATE") or None,
            client_key=os.getenv("KUBERNETES_CLIENT_KEY") or None,
            insecure_skip_tls_verify=_env_bool(
                "KUBERNETES_INSECURE_SKIP_TLS_VERIFY", "false"
            ),
            token=os.getenv("KUBERNETES_TOKEN") or None,
            username=os.getenv("KUBERNETES_USERNAME") or None,
            password=os.getenv("KUBERNETES_PASSWORD") or None,
            namespace=os.getenv("WATCH_NAMESPACE") or None,
            resource_group=os.getenv("RESOURCE_GROUP", "converge.k8s.io"),
            resource_version=os.getenv("RESOURCE_VERSION", "v1"),
        )


@dataclass
class ControllerConfig:
    """Reconciliation loop configuration."""

    # Delay before retrying a transient network failure, in seconds
    retry_delay: float = 30
    # Delay before retrying a create that raced a recent deletion
    recently_deleted_delay: float = 10
    # Delay before re-listing after a failed resync
    resync_error_delay: float = 5
    # Drop per-resource chains once their last operation has settled
    evict_settled_operations: bool = True
    # Time to wait for in-flight operations on shutdown
    shutdown_grace_period: float = 30

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            retry_delay=float(os.getenv("TRANSIENT_RETRY_DELAY", "30")),
            recently_deleted_delay=float(
                os.getenv("RECENTLY_DELETED_RETRY_DELAY", "10")
            ),
            resync_error_delay=float(os.getenv("RESYNC_ERROR_DELAY", "5")),
            evict_settled_operations=_env_bool("EVICT_SETTLED_OPERATIONS", "true"),
            shutdown_grace_period=float(os.getenv("SHUTDOWN_GRACE_PERIOD", "30")),
        )


@dataclass
class APIConfig:
    """Metrics and health server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class PluginConfig:
    """Adapter plugin configuration."""

    # Enabled resource types (empty = all registered adapters)
    enabled_resource_types: List[str] = field(default_factory=list)

    # Adapter-specific configuration overrides keyed by resource type
    adapter_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        adapter_configs = {}
        if os.getenv("ADAPTER_CONFIGS"):
            try:
                adapter_configs = json.loads(os.getenv("ADAPTER_CONFIGS"))
            except json.JSONDecodeError as e:
                logger.warning(f"Ignoring invalid ADAPTER_CONFIGS: {e}")

        return cls(
            enabled_resource_types=_env_list("ENABLED_RESOURCE_TYPES"),
            adapter_configs=adapter_configs,
        )


@dataclass
class Config:
    """Main configuration object."""

    kubernetes: KubernetesConfig
    controller: ControllerConfig
    api: APIConfig
    plugins: PluginConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            kubernetes=KubernetesConfig.from_env(),
            controller=ControllerConfig.from_env(),
            api=APIConfig.from_env(),
            plugins=PluginConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            kubernetes=KubernetesConfig(),
            controller=ControllerConfig(),
            api=APIConfig(),
            plugins=PluginConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
