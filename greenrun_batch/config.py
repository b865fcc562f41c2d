"""Configuration for the Greenrun API client."""

import os
from collections.abc import Mapping

from pydantic import BaseModel, SecretStr

from greenrun_batch.errors import ConfigurationError

DEFAULT_API_URL = "https://app.greenrun.dev"
TOKEN_ENV_VAR = "GREENRUN_API_TOKEN"
URL_ENV_VAR = "GREENRUN_API_URL"


class ApiConfig(BaseModel):
    """Connection settings for the Greenrun API."""

    token: SecretStr
    api_url: str = DEFAULT_API_URL
    # Total seconds allowed per request, the only bound on a stuck call
    timeout: float = 30.0

    @property
    def api_base_url(self) -> str:
        """Versioned API root, always ending with a slash."""
        return f"{self.api_url.rstrip('/')}/api/v1/"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ApiConfig":
        """Build configuration from ``GREENRUN_API_TOKEN`` and ``GREENRUN_API_URL``.

        Raises:
            ConfigurationError: If no token is set

        """
        env = os.environ if environ is None else environ
        token = env.get(TOKEN_ENV_VAR, "").strip()
        if not token:
            raise ConfigurationError(
                f"{TOKEN_ENV_VAR} environment variable is required"
            )
        return cls(
            token=SecretStr(token),
            api_url=env.get(URL_ENV_VAR) or DEFAULT_API_URL,
        )
