"""Client settings, loaded from keyword arguments or the environment."""

import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tg_bot_api_client.client.core import GLOBAL_SERVER_URL, Client
from tg_bot_api_client.client.rate_limiter import load_limiter_opts
from tg_bot_api_client.compiler.spec import load_spec
from tg_bot_api_client.errors import ClientConfigError
from tg_bot_api_client.parser.base import ApiSpec

ENV_VARS = {
    "bot_token": "TG_BOT_TOKEN",
    "server_url": "TG_BOT_API_SERVER_URL",
    "limit_rate": "TG_BOT_API_LIMIT_RATE",
    "timeout": "TG_BOT_API_TIMEOUT",
    "limiter_opts_file": "TG_BOT_API_LIMITER_OPTS",
    "spec_file": "TG_BOT_API_SPEC",
}


class ClientSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    bot_token: str = Field(min_length=1, repr=False)
    server_url: str = GLOBAL_SERVER_URL
    limit_rate: bool = True
    timeout: float | None = Field(default=None, gt=0)
    limiter_opts_file: Path | None = None
    spec_file: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "ClientSettings":
        """Read settings from ``TG_BOT_*`` environment variables; keyword overrides win."""
        environ = os.environ if environ is None else environ
        values = {field: environ[var] for field, var in ENV_VARS.items() if environ.get(var)}
        values.update((k, v) for k, v in overrides.items() if v is not None)
        if "bot_token" not in values:
            raise ClientConfigError(f"No bot token: set {ENV_VARS['bot_token']}")
        try:
            return cls(**values)
        except ValidationError as e:
            raise ClientConfigError(f"Invalid client settings: {e}") from e

    def create_client(self, spec: ApiSpec | None = None, **kwargs) -> Client:
        """Build a client; the spec is loaded from ``spec_file`` unless given."""
        if spec is None:
            if self.spec_file is None:
                raise ClientConfigError(f"No spec: pass one or set {ENV_VARS['spec_file']}")
            spec = load_spec(self.spec_file)
        if self.limiter_opts_file is not None:
            kwargs.setdefault("limiter_opts", load_limiter_opts(self.limiter_opts_file))
        return Client(
            self.bot_token,
            spec,
            server_url=self.server_url,
            limit_rate=self.limit_rate,
            timeout=self.timeout,
            **kwargs,
        )
