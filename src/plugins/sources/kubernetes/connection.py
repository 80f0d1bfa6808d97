"""
Kubernetes API server connection settings.

The server is taken from explicit settings when given (local development),
otherwise from the in-cluster service account.
"""

import logging
import os
import ssl
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Union

import aiohttp

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_PATH = "/var/run/secrets/kubernetes.io/serviceaccount"


class KubernetesConfigError(Exception):
    """Raised when no usable API server configuration can be found."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass
class ConnectionSettings:
    """How to reach and authenticate against the API server."""

    url: str
    token: Optional[str] = field(default=None, repr=False)
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    ca_file: Optional[str] = None
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    insecure_skip_tls_verify: bool = False

    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def basic_auth(self) -> Optional[aiohttp.BasicAuth]:
        if self.token or not (self.username and self.password):
            return None
        return aiohttp.BasicAuth(self.username, self.password)

    def ssl_context(self) -> Union[ssl.SSLContext, bool]:
        """
        Build the TLS setting for aiohttp.

        Returns:
            True for plain HTTP (no TLS), False to skip verification, or
            an SSLContext
        """
        if not self.url.startswith("https://"):
            return True
        if self.insecure_skip_tls_verify:
            return False
        context = ssl.create_default_context(cafile=self.ca_file)
        if self.cert_file and self.key_file:
            context.load_cert_chain(self.cert_file, self.key_file)
        return context


def _read_file(path: str) -> str:
    with open(path, "r") as f:
        return f.read().strip()


def settings_from_options(config) -> ConnectionSettings:
    """
    Build settings from explicit options.

    Authentication is picked in order: token, username/password, client
    certificate.
    """
    settings = ConnectionSettings(
        url=config.server,
        ca_file=config.certificate_authority or None,
        insecure_skip_tls_verify=config.insecure_skip_tls_verify,
    )
    if config.token:
        settings.token = config.token
    elif config.username and config.password:
        settings.username = config.username
        settings.password = config.password
    elif config.client_certificate and config.client_key:
        settings.cert_file = config.client_certificate
        settings.key_file = config.client_key
    return settings


def settings_from_service_account(
    environ: Mapping[str, str], credentials_path: str = SERVICE_ACCOUNT_PATH
) -> ConnectionSettings:
    """Build settings for a controller running inside the cluster."""
    host = environ["KUBERNETES_SERVICE_HOST"]
    port = environ.get("KUBERNETES_SERVICE_PORT", "443")
    return ConnectionSettings(
        url=f"https://{host}:{port}",
        token=_read_file(os.path.join(credentials_path, "token")),
        ca_file=os.path.join(credentials_path, "ca.crt"),
    )


def create_connection_settings(
    config, environ: Optional[Mapping[str, str]] = None
) -> ConnectionSettings:
    """
    Resolve the API server connection.

    Args:
        config: KubernetesConfig with the explicit options
        environ: Environment to inspect (defaults to os.environ)

    Raises:
        KubernetesConfigError: If neither a server nor an in-cluster
            environment is available
    """
    env = os.environ if environ is None else environ
    if config.server:
        logger.debug(f"Using Kubernetes API server {config.server}")
        return settings_from_options(config)
    if env.get("KUBERNETES_SERVICE_HOST"):
        logger.debug("Using in-cluster Kubernetes service account")
        return settings_from_service_account(env)
    raise KubernetesConfigError("Unknown Kubernetes API server")
