"""Telegram Bot API client.

A call runs through ``validate -> rate limit -> send -> interpret`` and ends
in one of the three outcome callbacks (see ``client.response``).
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Mapping

from bs4 import BeautifulSoup
from pydantic import ValidationError

from tg_bot_api_client.client.pipeline import Err, Ok, Result, attempt, run_pipeline
from tg_bot_api_client.client.rate_limiter import (
    RateLimiterRegistry,
    check_policy,
    get_rate_limiter_registry,
)
from tg_bot_api_client.client.response import Callbacks, Error, classify, dispatch, parse_envelope
from tg_bot_api_client.client.transport import (
    ApiRequest,
    CannedTransport,
    RequestsTransport,
    Transport,
    TransportResponse,
    encode_request,
)
from tg_bot_api_client.compiler.schema import SchemaCompiler, get_schema_compiler
from tg_bot_api_client.compiler.spec import describe_type
from tg_bot_api_client.errors import (
    ClientConfigError,
    ParamsValidationError,
    RateLimitInterrupted,
    TransportError,
    UnknownMethodError,
)
from tg_bot_api_client.parser.base import ApiMethod, ApiSpec
from tg_bot_api_client.utils.bot import mask_bot_token, parse_bot_id

logger = logging.getLogger(__name__)

GLOBAL_SERVER_URL = "https://api.telegram.org/bot"

RequestHook = Callable[[ApiRequest], ApiRequest]


def to_camel_case(name: str) -> str:
    """``send_message`` -> ``sendMessage``; wire names pass through unchanged."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def normalize_keys(value):
    """Recursively replace ``-`` with ``_`` in mapping keys."""
    if isinstance(value, Mapping):
        return {
            (k.replace("-", "_") if isinstance(k, str) else k): normalize_keys(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [normalize_keys(v) for v in value]
    return value


def _plain_text(html: str) -> str:
    return re.sub(r"\s+", " ", BeautifulSoup(html, "html.parser").get_text()).strip()


def find_method(spec: ApiSpec, method: str) -> ApiMethod:
    """Look up a method by wire name (``sendMessage``) or snake case (``send_message``)."""
    api_method = spec.get_method(method) or spec.get_method(to_camel_case(method))
    if api_method is None:
        raise UnknownMethodError(f"Unknown Telegram Bot API method '{method}'")
    return api_method


def explore_spec(spec: ApiSpec, method: str | None = None) -> list[dict]:
    """List the available methods, or the params of one method."""
    if method is None:
        return [
            {"name": m.name, "description": _plain_text(m.description)}
            for m in spec.methods
        ]
    return [
        {
            "name": p.name,
            "type": describe_type(p.type, spec),
            "required": p.required,
            "description": _plain_text(p.description),
        }
        for p in find_method(spec, method).params
    ]


@dataclass(frozen=True)
class ImmediateResponse:
    """A reply to an inbound webhook delivery that performs a Bot API call."""

    status: int
    headers: dict
    body: Any


@dataclass(frozen=True)
class PendingCall:
    method: ApiMethod
    params: dict | None
    limiter_opts: Mapping | None = None


class Client:
    """A client of one bot.

    ``responses`` replaces the network with canned responses (see
    ``CannedTransport``); ``request_hooks`` may rewrite each outgoing request.
    """

    def __init__(self, bot_token: str, spec: ApiSpec, *,
                 server_url: str = GLOBAL_SERVER_URL,
                 limit_rate: bool = True,
                 limiter_opts: Mapping | None = None,
                 responses: Mapping | Callable | None = None,
                 transport: Transport | None = None,
                 request_hooks: Iterable[RequestHook] = (),
                 timeout: float | None = None,
                 registry: RateLimiterRegistry | None = None,
                 schemas: SchemaCompiler | None = None):
        if not isinstance(bot_token, str) or not bot_token:
            raise ClientConfigError("The bot token must be a non-empty string")
        if not isinstance(server_url, str) or not server_url:
            raise ClientConfigError("The server URL must be a non-empty string")
        if not isinstance(limit_rate, bool):
            raise ClientConfigError("The limit_rate flag must be a boolean")
        if responses is not None and transport is not None:
            raise ClientConfigError("Pass either canned responses or a transport, not both")
        if responses is not None and not (isinstance(responses, Mapping) or callable(responses)):
            raise ClientConfigError("Canned responses must be a mapping or a callable")

        self.bot_id = parse_bot_id(bot_token)
        self._bot_token = bot_token
        self.spec = spec
        self.schemas = schemas or get_schema_compiler(spec)
        self.server_url = server_url
        self.limit_rate = limit_rate
        self.limiter_opts = check_policy(limiter_opts)
        self.registry = registry or get_rate_limiter_registry()
        self.request_hooks = list(request_hooks)
        self.timeout = timeout

        self._owns_transport = transport is None and responses is None
        if responses is not None:
            self.transport = CannedTransport(responses)
        else:
            self.transport = transport or RequestsTransport()

    def __repr__(self) -> str:
        return f"Client(bot={mask_bot_token(self._bot_token)!r}, server_url={self.server_url!r})"

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_transport:
            self.transport.close()

    # Methods

    def get_method(self, method: str) -> ApiMethod:
        return find_method(self.spec, method)

    def explore(self, method: str | None = None) -> list[dict]:
        return explore_spec(self.spec, method)

    # Calls

    def call(self, method: str, params: Mapping | None = None, *,
             on_success=None, on_failure=None, on_error=None,
             limiter_opts: Mapping | None = None):
        """Call a Bot API method and return what the outcome callback returns.

        By default that is the call's result; failures and errors are logged
        and raised as ApiFailureError and ApiCallError respectively.
        """
        api_method = self.get_method(method)
        callbacks = Callbacks.of(on_success, on_failure, on_error)
        pending = PendingCall(
            method=api_method,
            params=normalize_keys(dict(params)) if params is not None else None,
            limiter_opts=check_policy(limiter_opts),
        )

        result = run_pipeline(pending, self._validate, self._rate_limit, self._send, self._interpret)
        outcome = result.value if isinstance(result, Ok) else Error(result.error)
        return dispatch(outcome, api_method.name, pending.params, callbacks)

    def _validate(self, pending: PendingCall) -> Result:
        try:
            params = self.schemas.validate_params(pending.method, pending.params)
        except ValidationError as e:
            return Err(ParamsValidationError(pending.method.name, e.errors(include_url=False)))
        return Ok(replace(pending, params=params))

    def _rate_limit(self, pending: PendingCall) -> Result:
        if not self.limit_rate:
            return Ok(pending)
        try:
            self.registry.acquire(
                self.bot_id,
                pending.method.name,
                chat_id=pending.params.get("chat_id"),
                policy=self.limiter_opts,
                override=pending.limiter_opts,
            )
        except RateLimitInterrupted as e:
            return Err(e)
        return Ok(pending)

    def _send(self, pending: PendingCall) -> Result:
        request = self._request(pending.method, pending.params)
        for hook in self.request_hooks:
            request = hook(request)
        logger.debug("Calling '%s'", request.method)
        return attempt(self.transport.send, request)

    def _interpret(self, response: TransportResponse) -> Result:
        try:
            envelope = parse_envelope(response)
        except TransportError as e:
            return Err(e)
        logger.debug("Telegram Bot API returned: %s", envelope)
        return Ok(classify(envelope))

    def _request(self, method: ApiMethod, params: dict) -> ApiRequest:
        return ApiRequest(
            method=method.name,
            url=f"{self.server_url}{self._bot_token}/{method.name}",
            params=params,
            multipart=method.uploads_file,
            timeout=self.timeout,
        )

    # Webhook replies

    def build_immediate_response(self, method: str, params: Mapping | None = None) -> ImmediateResponse:
        """Serialize a call as a webhook reply instead of sending it.

        The method name is injected into the body as the ``method`` field.
        Raises ParamsValidationError if the params are invalid.
        """
        api_method = self.get_method(method)
        raw = normalize_keys(dict(params)) if params is not None else None
        try:
            validated = self.schemas.validate_params(api_method, raw)
        except ValidationError as e:
            raise ParamsValidationError(api_method.name, e.errors(include_url=False)) from e

        request = self._request(api_method, {**validated, "method": api_method.name})
        prepared = encode_request(request)
        return ImmediateResponse(status=200, headers=dict(prepared.headers), body=prepared.body)
