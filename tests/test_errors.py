"""Unit tests for errors.py - Provider error classification."""

import errno
from unittest.mock import MagicMock

import aiohttp

from errors import (
    ErrorKind,
    ImmutableFieldError,
    ProviderError,
    ValidationError,
    classify_error,
    is_retryable,
    is_transient_network_error,
)


def connector_error(os_errno: int) -> aiohttp.ClientConnectorError:
    return aiohttp.ClientConnectorError(MagicMock(), OSError(os_errno, "failed"))


class TestTransientNetworkError:
    """Tests for is_transient_network_error."""

    def test_connection_refused(self):
        assert is_transient_network_error(connector_error(errno.ECONNREFUSED))

    def test_host_unreachable(self):
        assert is_transient_network_error(connector_error(errno.EHOSTUNREACH))

    def test_other_connection_errors_are_not_transient(self):
        assert not is_transient_network_error(connector_error(errno.ECONNRESET))
        assert not is_transient_network_error(connector_error(errno.ETIMEDOUT))

    def test_every_address_refused(self):
        os_error = OSError(
            "Multiple exceptions: "
            "[Errno 111] Connect call failed ('::1', 4566, 0, 0), "
            "[Errno 111] Connect call failed ('127.0.0.1', 4566)"
        )
        error = aiohttp.ClientConnectorError(MagicMock(), os_error)
        assert is_transient_network_error(error)

    def test_mixed_address_failures_are_not_transient(self):
        os_error = OSError(
            "Multiple exceptions: "
            "[Errno 111] Connect call failed ('::1', 4566, 0, 0), "
            "[Errno 110] Connect call failed ('127.0.0.1', 4566)"
        )
        error = aiohttp.ClientConnectorError(MagicMock(), os_error)
        assert not is_transient_network_error(error)

    def test_provider_networking_error(self):
        error = ProviderError(
            ErrorKind.PROVIDER,
            "connect failed",
            code="NetworkingError",
            os_errno=errno.ECONNREFUSED,
        )
        assert is_transient_network_error(error)

    def test_networking_error_without_reason_is_not_transient(self):
        error = ProviderError(ErrorKind.PROVIDER, "failed", code="NetworkingError")
        assert not is_transient_network_error(error)

    def test_plain_exception(self):
        assert not is_transient_network_error(RuntimeError("boom"))


class TestClassifyError:
    """Tests for classify_error."""

    def test_transient_takes_precedence(self):
        error = ProviderError(
            ErrorKind.CONFLICT,
            "failed",
            code="NetworkingError",
            os_errno=errno.EHOSTUNREACH,
        )
        assert classify_error(error) is ErrorKind.TRANSIENT_NETWORK

    def test_provider_error_kind(self):
        error = ProviderError(ErrorKind.NOT_FOUND, "gone", status=404)
        assert classify_error(error) is ErrorKind.NOT_FOUND

    def test_validation_errors(self):
        assert classify_error(ValidationError("bad")) is ErrorKind.VALIDATION
        assert (
            classify_error(ImmutableFieldError("path", "/", "/x/"))
            is ErrorKind.VALIDATION
        )

    def test_unknown(self):
        assert classify_error(ValueError("nope")) is ErrorKind.UNKNOWN

    def test_retryable_kinds(self):
        assert is_retryable(ErrorKind.TRANSIENT_NETWORK)
        assert is_retryable(ErrorKind.RECENTLY_DELETED)
        assert not is_retryable(ErrorKind.ALREADY_EXISTS)
        assert not is_retryable(ErrorKind.UNKNOWN)


class TestProviderError:
    """Tests for the exception classes."""

    def test_str_includes_code(self):
        error = ProviderError(ErrorKind.CONFLICT, "in use", code="Conflict")
        assert str(error) == "in use (Conflict)"
        assert error.message == "in use"

    def test_immutable_field_error(self):
        error = ImmutableFieldError("path", "/", "/admin/")
        assert error.field_path == "path"
        assert error.code == "ImmutableField"
        assert "'path' cannot be modified" in error.message
