"""Generic HTTP request handling for HomeWizard devices."""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from enum import Enum
from typing import Any, TypeVar, overload

import aiohttp
from pydantic import BaseModel, ValidationError
from yarl import URL

from .exceptions import ErrorKind, RequestError

_LOGGER = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_SEQUENCE = itertools.count(1)
_SEQUENCE_LOCK = threading.Lock()


def next_sequence() -> int:
    """Return the next request sequence number, used to correlate log lines."""
    with _SEQUENCE_LOCK:
        return next(_SEQUENCE)


class RequestMethod(str, Enum):
    """HTTP methods used by the local API."""

    GET = "GET"
    PUT = "PUT"


class RequestManager:
    """Performs requests against a device and maps failures to RequestError.

    The body to send can be nothing, a JSON object or a pydantic model. The
    result to receive can be nothing (``receive=None``), a JSON object
    (``receive=dict``), the raw payload (``receive=bytes``) or a pydantic
    model class. Every call is a single attempt.
    """

    def __init__(
        self,
        base_url: str = "",
        websession: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the request manager.

        Args:
            base_url: Prefix for every request path, e.g. ``http://192.168.1.5``
            websession: Optional aiohttp ClientSession. If not provided, one will be created.
        """
        self.base_url = base_url
        self._websession = websession
        self._own_session = websession is None
        self._closed = False

    async def close(self) -> None:
        """Close the session if it is owned by this manager."""
        if self._own_session and self._websession:
            await self._websession.close()
            self._websession = None
        if self._own_session:
            self._closed = True

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure a websession exists."""
        if self._closed:
            raise RequestError(ErrorKind.NOT_READY, message="Request manager has been closed")
        if self._websession is None:
            self._websession = aiohttp.ClientSession()
            self._own_session = True
        if self._websession.closed:
            raise RequestError(ErrorKind.NOT_READY, message="Session is closed")
        return self._websession

    async def __aenter__(self) -> RequestManager:
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    @overload
    async def perform_request(
        self,
        path: str,
        method: RequestMethod = ...,
        *,
        body: dict[str, Any] | BaseModel | None = ...,
        receive: None = ...,
    ) -> None: ...

    @overload
    async def perform_request(
        self,
        path: str,
        method: RequestMethod = ...,
        *,
        body: dict[str, Any] | BaseModel | None = ...,
        receive: type[dict],
    ) -> dict[str, Any]: ...

    @overload
    async def perform_request(
        self,
        path: str,
        method: RequestMethod = ...,
        *,
        body: dict[str, Any] | BaseModel | None = ...,
        receive: type[bytes],
    ) -> bytes: ...

    @overload
    async def perform_request(
        self,
        path: str,
        method: RequestMethod = ...,
        *,
        body: dict[str, Any] | BaseModel | None = ...,
        receive: type[ModelT],
    ) -> ModelT: ...

    async def perform_request(
        self,
        path: str,
        method: RequestMethod = RequestMethod.GET,
        *,
        body: dict[str, Any] | BaseModel | None = None,
        receive: type | None = None,
    ) -> Any:
        """Perform a single request.

        Args:
            path: Path relative to the base URL, e.g. ``/api/v1/data``
            method: HTTP method
            body: Optional JSON object or pydantic model to send
            receive: What to return: None, dict, bytes or a pydantic model class

        Raises:
            RequestError: When the request fails in any way.
        """
        sequence = next_sequence()
        method = RequestMethod(method)
        url = f"{self.base_url}{path}"
        _LOGGER.debug("[%d] Starting request for %s %s", sequence, method.value, url)

        try:
            request_url = URL(url)
        except (TypeError, ValueError) as err:
            error = RequestError(ErrorKind.INVALID_URL, originated=err)
            self._log_finish(sequence, error=error)
            raise error from err
        if not request_url.is_absolute() or not request_url.host:
            error = RequestError(ErrorKind.INVALID_URL, message=f"Invalid URL '{url}'")
            self._log_finish(sequence, error=error)
            raise error

        try:
            payload = _encode_body(body)
        except RequestError as error:
            self._log_finish(sequence, error=error)
            raise

        headers = {"Content-Type": "application/json"} if payload is not None else None
        session = await self._ensure_session()

        start = time.monotonic()
        try:
            async with session.request(
                method.value, request_url, data=payload, headers=headers
            ) as response:
                status = response.status
                data = await response.read()
        except aiohttp.InvalidURL as err:
            error = RequestError(ErrorKind.INVALID_URL, originated=err)
            self._log_finish(sequence, error=error, start=start)
            raise error from err
        except (aiohttp.ClientError, TimeoutError, OSError) as err:
            error = RequestError(ErrorKind.OTHER, originated=err)
            self._log_finish(sequence, error=error, start=start)
            raise error from err

        if (kind := ErrorKind.from_status(status)) is not None:
            error = RequestError(kind, data=data or None)
            self._log_finish(sequence, status=status, data=data, error=error, start=start)
            raise error

        if not 200 <= status < 300:
            error = RequestError(
                ErrorKind.UNEXPECTED_RESPONSE,
                data=data or None,
                message=f"Unexpected status {status}",
            )
            self._log_finish(sequence, status=status, data=data, error=error, start=start)
            raise error

        if receive is None:
            self._log_finish(sequence, status=status, data=data, start=start)
            return None

        if not data:
            error = RequestError(ErrorKind.UNEXPECTED_RESPONSE, message="No data nor an error")
            self._log_finish(sequence, status=status, data=data, error=error, start=start)
            raise error

        if receive is bytes:
            self._log_finish(sequence, status=status, data=data, start=start)
            return data

        try:
            result = _decode(data, receive)
        except RequestError as error:
            self._log_finish(sequence, status=status, data=data, error=error, start=start)
            raise

        self._log_finish(sequence, status=status, data=data, start=start)
        return result

    @staticmethod
    def _log_finish(
        sequence: int,
        *,
        status: int | None = None,
        data: bytes | None = None,
        error: Exception | None = None,
        start: float | None = None,
    ) -> None:
        """Log the terminal outcome of a request."""
        http_code = f"{status}" if status is not None else ""
        size = f" {len(data)}b" if data is not None else ""
        msec = f" {(time.monotonic() - start) * 1000:.1f}ms" if start is not None else ""
        if error is not None:
            _LOGGER.info("[%d] FAILED %s %s", sequence, http_code, error)
        else:
            _LOGGER.debug("[%d] Success %s%s%s", sequence, http_code, size, msec)


def _encode_body(body: dict[str, Any] | BaseModel | None) -> bytes | None:
    """Encode the request body to JSON bytes."""
    if body is None:
        return None
    try:
        if isinstance(body, BaseModel):
            return body.model_dump_json(by_alias=True).encode()
        if not body:
            return None
        return json.dumps(body).encode()
    except (TypeError, ValueError) as err:
        raise RequestError(
            ErrorKind.ENCODING, originated=err, message="Failed JSON encoding"
        ) from err


def _decode(data: bytes, receive: type) -> Any:
    """Decode a response payload to a JSON object or a pydantic model."""
    try:
        if isinstance(receive, type) and issubclass(receive, BaseModel):
            return receive.model_validate_json(data)
        result = json.loads(data)
    except (ValidationError, ValueError) as err:
        raise RequestError(
            ErrorKind.DECODING, originated=err, message="Failed JSON decoding"
        ) from err
    if not isinstance(result, dict):
        raise RequestError(ErrorKind.DECODING, message="Unexpected JSON serialization outcome")
    return result
