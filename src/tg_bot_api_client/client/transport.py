"""Request model, wire encoding and transports.

A transport turns an ``ApiRequest`` into a ``TransportResponse`` or raises.
Bodies are JSON unless the method uploads a file, in which case they are
``multipart/form-data`` with files as file parts and every other non-string
value JSON-encoded.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

import requests

from tg_bot_api_client.compiler.schema import is_input_file
from tg_bot_api_client.errors import TransportError
from tg_bot_api_client.utils.bot import mask_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    method: str
    url: str
    params: dict = field(default_factory=dict)
    multipart: bool = False
    headers: dict = field(default_factory=dict)
    timeout: float | None = None


@dataclass(frozen=True)
class TransportResponse:
    status: int
    body: bytes = b""
    reason: str = ""
    headers: dict = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    def send(self, request: ApiRequest) -> TransportResponse: ...


# Encoding


def _file_part(name: str, value: Any) -> tuple:
    if isinstance(value, (bytes, bytearray)):
        return name, bytes(value)
    if isinstance(value, os.PathLike):
        path = Path(value)
        return path.name, path.read_bytes()
    filename = os.path.basename(str(getattr(value, "name", "") or name))
    return filename, value


def _form_value(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


def encode_request(request: ApiRequest) -> requests.PreparedRequest:
    """Serialize a request; raises TransportError if the params cannot be encoded."""
    params = {k: v for k, v in request.params.items() if v is not None}
    try:
        if not request.multipart:
            return requests.Request(
                "POST", request.url, json=params, headers=request.headers,
            ).prepare()

        data, files = {}, {}
        for name, value in params.items():
            if is_input_file(value):
                files[name] = _file_part(name, value)
            else:
                data[name] = _form_value(value)
        return requests.Request(
            "POST", request.url, data=data, files=files or None, headers=request.headers,
        ).prepare()
    except (TypeError, ValueError, OSError) as e:
        raise TransportError(f"Failed to encode '{request.method}' request: {e}") from e


# Transports


class RequestsTransport:
    """Sends requests over HTTP with a ``requests.Session``."""

    def __init__(self, session: requests.Session | None = None):
        self._owns_session = session is None
        self.session = session or requests.Session()

    def send(self, request: ApiRequest) -> TransportResponse:
        prepared = encode_request(request)
        logger.debug("POST %s", mask_url(request.url))
        try:
            response = self.session.send(prepared, timeout=request.timeout)
        except requests.RequestException as e:
            # the cause carries the raw url, token included
            raise TransportError(f"Request to '{request.method}' failed: {mask_url(str(e))}") from None
        return TransportResponse(
            status=response.status_code,
            body=response.content,
            reason=response.reason or "",
            headers=dict(response.headers),
        )

    def close(self) -> None:
        if self._owns_session:
            self.session.close()


CannedResponse = Mapping | TransportResponse | Callable[[ApiRequest], Any]


def envelope_response(envelope: Mapping) -> TransportResponse:
    """Wrap an envelope the way the Bot API would have sent it."""
    status = 200 if envelope.get("ok") is True else int(envelope.get("error_code") or 400)
    return TransportResponse(
        status=status,
        body=json.dumps(envelope).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )


class CannedTransport:
    """A test double answering from a map of method names to canned responses.

    ``responses`` is either such a map or a single callable of the request.
    A canned response is an envelope mapping, a ``TransportResponse``, or a
    callable of the request returning one of those. Requests are still
    encoded, so serialization failures surface as they would over HTTP.
    """

    def __init__(self, responses: Mapping[str, CannedResponse] | Callable[[ApiRequest], Any]):
        self.responses = responses
        self.sent: list[ApiRequest] = []

    def send(self, request: ApiRequest) -> TransportResponse:
        encode_request(request)
        self.sent.append(request)

        if callable(self.responses):
            canned = self.responses
        elif request.method in self.responses:
            canned = self.responses[request.method]
        else:
            raise TransportError(f"No canned response for '{request.method}'")

        if callable(canned):
            canned = canned(request)
        if isinstance(canned, TransportResponse):
            return canned
        return envelope_response(canned)
