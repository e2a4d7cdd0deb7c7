"""Exceptions for the HomeWizard local API library."""

from __future__ import annotations

import asyncio
import errno
import socket
from enum import IntEnum

import aiohttp


class HomeWizardError(Exception):
    """Base exception for HomeWizard local API errors."""


class ErrorKind(IntEnum):
    """Kind of a failed request.

    Custom kinds use the 9xx range, transport kinds the 1xxx range and the
    HTTP kinds are valued by their status code.
    """

    OTHER = 900
    INVALID_URL = 901
    ENCODING = 902
    DECODING = 903
    NOT_READY = 904
    UNEXPECTED_RESPONSE = 907

    TIMEOUT = 1001
    UNKNOWN_HOST = 1003
    UNREACHABLE = 1004
    CONNECTION_LOST = 1005
    NO_NETWORK = 1009
    SSL_ERROR = 1200
    INVALID_CERTIFICATE = 1202

    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    CONFLICT = 409
    PRECONDITION_FAILED = 412
    UNSUPPORTED_MEDIA_TYPE = 415
    VALIDATION = 422
    FAILED_DEPENDENCY = 424
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504

    @classmethod
    def from_status(cls, status: int) -> ErrorKind | None:
        """Return the kind for an HTTP status code, or None when unmapped."""
        if not 400 <= status < 600:
            return None
        try:
            return cls(status)
        except ValueError:
            return None


def transport_error_kind(err: BaseException | None) -> ErrorKind | None:
    """Map an aiohttp/asyncio transport exception to its ErrorKind."""
    if err is None:
        return None
    if isinstance(err, aiohttp.ClientConnectorCertificateError):
        return ErrorKind.INVALID_CERTIFICATE
    if isinstance(err, aiohttp.ClientSSLError):
        return ErrorKind.SSL_ERROR
    if isinstance(err, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(err, aiohttp.ClientConnectorError):
        os_error = err.os_error
        if isinstance(os_error, socket.gaierror):
            return ErrorKind.UNKNOWN_HOST
        if os_error.errno in (errno.ENETUNREACH, errno.ENETDOWN):
            return ErrorKind.NO_NETWORK
        return ErrorKind.UNREACHABLE
    if isinstance(
        err,
        (aiohttp.ServerDisconnectedError, aiohttp.ClientPayloadError, aiohttp.ClientOSError),
    ):
        return ErrorKind.CONNECTION_LOST
    return None


class RequestError(HomeWizardError):
    """A request to a device failed.

    When ``originated`` is a transport exception that can be mapped, its kind
    takes priority over the ``kind`` given by the caller.
    """

    def __init__(
        self,
        kind: ErrorKind,
        *,
        originated: BaseException | None = None,
        data: bytes | None = None,
        message: str | None = None,
    ) -> None:
        self.kind = transport_error_kind(originated) or kind
        self.originated = originated
        self.data = data
        self.message = message
        self.__cause__ = originated

        details = [self.kind.name]
        if message:
            details.append(message)
        if originated is not None:
            details.append(repr(originated))
        super().__init__(": ".join(details))


class InvalidAddressError(HomeWizardError):
    """The address of a device to load is not usable."""


class IPLookupFailedError(HomeWizardError):
    """The address of a discovered device could not be looked up."""


class LocalAPIDisabledError(HomeWizardError):
    """The local API of the device is disabled."""


class UnknownBaseURLError(HomeWizardError):
    """The base URL of the device is unknown (it was never loaded)."""


class DeviceOfflineError(HomeWizardError):
    """The device appears to be offline."""
