"""Exception hierarchy.

Compile-time errors and malformed responses are fatal and always raised.
Per-call errors travel through the pipeline as values and only surface as
exceptions from the default callbacks.
"""


class BotApiError(Exception):
    """Base class for all errors raised by this package."""


class CompileError(BotApiError):
    """The documentation or the compiled spec could not be turned into a catalog."""


class ClientConfigError(BotApiError, ValueError):
    """Invalid client construction options."""


class UnknownMethodError(BotApiError, KeyError):
    """The requested method is not present in the compiled spec."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown method"


class ParamsValidationError(BotApiError):
    """Call parameters failed schema coercion; the request is never sent."""

    def __init__(self, method: str, errors: list[dict]):
        self.method = method
        self.errors = errors
        details = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}"
            for e in errors
        )
        super().__init__(f"Invalid params for '{method}': {details}")


class TransportError(BotApiError):
    """Network failure, unparsable response body or request serialization failure."""


class MalformedResponseError(BotApiError):
    """An envelope without the 'ok' marker that no caught exception explains."""


class RateLimitInterrupted(BotApiError):
    """An interruptible rate limiter was interrupted while waiting for a permit."""


class ApiFailureError(BotApiError):
    """The server answered with a well-formed negative envelope."""

    def __init__(self, message: str, method: str, params: dict | None, response: dict):
        super().__init__(message)
        self.method = method
        self.params = params
        self.response = response

    @property
    def error_code(self) -> int | None:
        return self.response.get("error_code")

    @property
    def description(self) -> str | None:
        return self.response.get("description")

    @property
    def retry_after(self) -> int | None:
        return (self.response.get("parameters") or {}).get("retry_after")

    @property
    def migrate_to_chat_id(self) -> int | None:
        return (self.response.get("parameters") or {}).get("migrate_to_chat_id")


class UnexpectedResultError(BotApiError):
    """A successful call returned something other than the asserted result."""


class ApiCallError(BotApiError):
    """Wraps the exception behind an errored call, with the call's method and params."""

    def __init__(self, message: str, method: str, params: dict | None):
        super().__init__(message)
        self.method = method
        self.params = params
