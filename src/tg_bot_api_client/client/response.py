"""Response classification and outcome callbacks.

Every call ends in exactly one outcome:

- ``Success``: a well-formed envelope with ``ok=true``;
- ``Failure``: a well-formed envelope with ``ok=false``;
- ``Error``: the call raised before a well-formed envelope was obtained.

An envelope lacking the ``ok`` marker that no caught exception explains is
a ``MalformedResponseError`` and is always raised.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from tg_bot_api_client.client.transport import TransportResponse
from tg_bot_api_client.errors import (
    ApiCallError,
    ApiFailureError,
    ClientConfigError,
    MalformedResponseError,
    TransportError,
    UnexpectedResultError,
)

logger = logging.getLogger(__name__)

FAILURE_MSG = "Unsuccessful Telegram Bot API request"
ERROR_MSG = "Error while making a Telegram Bot API request"


# Envelopes


def is_valid_response(response) -> bool:
    return isinstance(response, Mapping) and "ok" in response


def is_successful_response(response) -> bool:
    return is_valid_response(response) and response["ok"] is True


def get_response_result(response):
    if is_successful_response(response):
        return response.get("result")
    return None


def get_response_result_chat_id(result):
    if not isinstance(result, Mapping):
        return None
    chat = result.get("chat")
    if isinstance(chat, Mapping) and "id" in chat:
        return chat["id"]
    return result.get("chat_id")


def get_response_error(response) -> dict | None:
    if is_successful_response(response):
        return None
    return {k: response[k] for k in ("error_code", "description") if k in response}


def get_response_parameters(response) -> dict:
    return response.get("parameters") or {}


def migrate_to_chat_id(response):
    """The new id of a group chat that was upgraded to a supergroup."""
    return get_response_parameters(response).get("migrate_to_chat_id")


def retry_after_seconds(response):
    """Seconds to wait before repeating a request that exceeded flood control."""
    return get_response_parameters(response).get("retry_after")


def parse_envelope(response: TransportResponse) -> dict:
    """Decode the envelope carried by a transport response.

    A non-2xx response with an empty body gets a synthesized failure envelope.
    Raises TransportError when the body cannot be decoded.
    """
    if not response.body.strip() and not response.is_success:
        return {"ok": False, "error_code": response.status, "description": response.reason}
    try:
        return json.loads(response.body)
    except ValueError as e:
        raise TransportError(
            f"Unparsable Telegram Bot API response (status {response.status}): {e}"
        ) from e


# Outcomes


@dataclass(frozen=True)
class Success:
    result: Any
    envelope: dict


@dataclass(frozen=True)
class Failure:
    envelope: dict


@dataclass(frozen=True)
class Error:
    exception: BaseException


def classify(envelope) -> Success | Failure:
    if not is_valid_response(envelope):
        raise MalformedResponseError(f"Malformed Telegram Bot API response: {envelope!r}")
    if envelope["ok"] is True:
        return Success(envelope.get("result"), envelope)
    return Failure(envelope)


# Callback helpers


def get_result(response, default=None):
    result = get_response_result(response)
    return default if result is None else result


def assert_result(expected, response):
    result = get_result(response)
    if result != expected:
        raise UnexpectedResultError(
            f"The Telegram Bot API method returned an unexpected result: "
            f"expected={expected!r}, actual={result!r}"
        )
    return result


def get_error(method: str, params, response) -> dict:
    return {**(get_response_error(response) or {}), "method": method, "params": params}


def _format_msg(message: str, method: str, params) -> str:
    return f"{message} (method='{method}' args={params})"


def log_failure_reason(method: str, params, response, message: str = FAILURE_MSG,
                       level: int = logging.ERROR) -> None:
    error = get_response_error(response) or {}
    details = ", ".join(f'{k}="{v}"' for k, v in error.items())
    if details:
        message = f"{message}: {details}"
    logger.log(level, _format_msg(message, method, params))


def raise_for_failure(method: str, params, response, message: str = FAILURE_MSG):
    raise ApiFailureError(message, method, params, response)


def log_failure_reason_and_raise(method: str, params, response, message: str = FAILURE_MSG):
    log_failure_reason(method, params, response, message)
    raise_for_failure(method, params, response, message)


def log_error(method: str, params, exc: BaseException, message: str = ERROR_MSG,
              level: int = logging.ERROR) -> None:
    logger.log(level, _format_msg(message, method, params), exc_info=exc)


def reraise_error(method: str, params, exc: BaseException):
    raise ApiCallError(ERROR_MSG, method, params) from exc


def log_error_and_reraise(method: str, params, exc: BaseException, message: str = ERROR_MSG):
    log_error(method, params, exc, message)
    reraise_error(method, params, exc)


# Callback slots


@dataclass(frozen=True)
class Call:
    fn: Callable


class Ignore:
    def __repr__(self) -> str:
        return "IGNORE"


class Default:
    def __repr__(self) -> str:
        return "DEFAULT"


IGNORE = Ignore()
DEFAULT = Default()

Slot = Call | Ignore | Default


def to_slot(value) -> Slot:
    """Normalize a callback argument: a callable, ``IGNORE``, or None for the default."""
    if value is None:
        return DEFAULT
    if isinstance(value, (Call, Ignore, Default)):
        return value
    if callable(value):
        return Call(value)
    raise ClientConfigError(f"A callback must be callable or IGNORE, got {value!r}")


@dataclass(frozen=True)
class Callbacks:
    on_success: Slot = DEFAULT
    on_failure: Slot = DEFAULT
    on_error: Slot = DEFAULT

    @classmethod
    def of(cls, on_success=None, on_failure=None, on_error=None) -> "Callbacks":
        return cls(to_slot(on_success), to_slot(on_failure), to_slot(on_error))


def dispatch(outcome: Success | Failure | Error, method: str, params,
             callbacks: Callbacks = Callbacks()):
    """Hand an outcome to its callback slot and return what the callback returns.

    on_success gets the result; on_failure gets ``(method, params, envelope)``;
    on_error gets ``(method, params, exception)``.
    """
    if isinstance(outcome, Success):
        slot = callbacks.on_success
        if isinstance(slot, Call):
            return slot.fn(outcome.result)
        return None if isinstance(slot, Ignore) else outcome.result

    if isinstance(outcome, Failure):
        slot, args, default = callbacks.on_failure, outcome.envelope, log_failure_reason_and_raise
    else:
        slot, args, default = callbacks.on_error, outcome.exception, log_error_and_reraise

    if isinstance(slot, Ignore):
        return None
    fn = slot.fn if isinstance(slot, Call) else default
    return fn(method, params, args)
