"""
Error taxonomy for provider calls.

Every failure coming back from a provider is classified into an ErrorKind.
The retry executor and the convergence fallback only ever branch on the
kind, never on raw status codes or error strings.
"""

import errno
import re
from enum import Enum
from typing import Optional, Set

import aiohttp

# Low-level reasons that make a networking failure worth retrying
TRANSIENT_ERRNOS = frozenset({errno.EHOSTUNREACH, errno.ECONNREFUSED})
NETWORKING_ERROR_CODE = "NetworkingError"

# Errnos embedded in a combined "Multiple exceptions: ..." connect error
_ERRNO_PATTERN = re.compile(r"\[Errno (\d+)\]")


class ErrorKind(Enum):
    """Classification of a provider error."""

    TRANSIENT_NETWORK = "transient_network"
    RECENTLY_DELETED = "recently_deleted"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    PROVIDER = "provider"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        code: Optional[str] = None,
        os_errno: Optional[int] = None,
        status: Optional[int] = None,
    ):
        self.kind = kind
        self.message = message
        self.code = code
        self.errno = os_errno
        self.status = status
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} ({self.code})"
        return self.message


class ValidationError(ProviderError):
    """Raised when a desired spec is rejected before reaching the provider."""

    def __init__(self, message: str, code: str = "InvalidSpec"):
        super().__init__(ErrorKind.VALIDATION, message, code=code)


class ImmutableFieldError(ValidationError):
    """Raised when an update attempts to change a field fixed at creation."""

    def __init__(self, field_path: str, current, desired):
        self.field_path = field_path
        self.current = current
        self.desired = desired
        super().__init__(
            f"'{field_path}' cannot be modified (current: {current!r}, "
            f"requested: {desired!r})",
            code="ImmutableField",
        )


def is_transient_network_error(exc: BaseException) -> bool:
    """
    Determine whether the given error is a (likely) transient network error.

    Only connection failures with a host-unreachable or connection-refused
    reason qualify. Timeouts, resets and DNS failures do not.
    """
    if isinstance(exc, ProviderError):
        return exc.code == NETWORKING_ERROR_CODE and exc.errno in TRANSIENT_ERRNOS
    if isinstance(exc, aiohttp.ClientConnectorError):
        errnos = _os_errnos(exc.os_error)
        return bool(errnos) and errnos <= TRANSIENT_ERRNOS
    return False


def _os_errnos(error: Optional[OSError]) -> Set[int]:
    """
    Collect the errnos behind a connect failure.

    When every address of a dual-stack host fails, the resolver reports one
    OSError without an errno whose message lists each attempt.
    """
    if error is None:
        return set()
    if error.errno is not None:
        return {error.errno}
    return {int(n) for n in _ERRNO_PATTERN.findall(str(error))}


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised by a provider call to an ErrorKind."""
    if is_transient_network_error(exc):
        return ErrorKind.TRANSIENT_NETWORK
    if isinstance(exc, ProviderError):
        return exc.kind
    return ErrorKind.UNKNOWN


def is_retryable(kind: ErrorKind) -> bool:
    """Check whether errors of this kind are retried by the executor."""
    return kind in (ErrorKind.TRANSIENT_NETWORK, ErrorKind.RECENTLY_DELETED)
