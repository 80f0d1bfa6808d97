"""Kubernetes watch source plugin."""

from plugins.sources.kubernetes.connection import (
    ConnectionSettings,
    KubernetesConfigError,
    create_connection_settings,
)
from plugins.sources.kubernetes.source import KubernetesWatchSource, parse_event

__all__ = [
    "ConnectionSettings",
    "KubernetesConfigError",
    "KubernetesWatchSource",
    "create_connection_settings",
    "parse_event",
]
