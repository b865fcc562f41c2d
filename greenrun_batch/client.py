"""Authenticated transport for the Greenrun REST API."""

import json
import logging
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from greenrun_batch.config import ApiConfig
from greenrun_batch.errors import (
    ApiError,
    AuthenticationError,
    ConnectionFailedError,
    NotFoundError,
)

log = logging.getLogger(__name__)

type QueryParams = Mapping[str, str] | Sequence[tuple[str, str]]

ERRORS_BY_STATUS: Mapping[int, type[ApiError]] = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
}


def extract_message(body: str) -> str:
    """Return the ``message`` field of a JSON error body, or the raw body."""
    try:
        data = json.loads(body)
    except ValueError:
        return body
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return body


def unwrap(data: Any) -> Any:
    """Strip a ``{"data": ...}`` resource envelope if the service sent one.

    Only a body whose sole key is ``data`` counts as an envelope, so entities
    that carry their own ``data`` field pass through untouched.
    """
    if (
        isinstance(data, dict)
        and data.keys() == {"data"}
        and isinstance(data["data"], (list, dict))
    ):
        return data["data"]
    return data


@dataclass(frozen=True, kw_only=True)
class ApiClient:
    """Thin request/response wrapper around a shared aiohttp session."""

    config: ApiConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(cls, config: ApiConfig) -> AsyncGenerator["ApiClient", None]:
        """Create client with managed session lifecycle."""
        headers = {
            "Authorization": f"Bearer {config.token.get_secret_value()}",
            "Accept": "application/json",
        }
        async with aiohttp.ClientSession(
            base_url=config.api_base_url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=config.timeout),
        ) as session:
            yield cls(config=config, session=session)

    async def request(
        self,
        method: str,
        path: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: QueryParams | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: API path such as ``/projects/abc``, relative to the API root
            payload: JSON body, if any
            params: Query parameters, repeated keys allowed as tuples

        Returns:
            Decoded JSON, or None for an empty body

        Raises:
            ApiError: On any non-2xx response (NotFoundError for 404,
                AuthenticationError for 401/403) or a body that is not JSON
            ConnectionFailedError: If the service could not be reached or the
                call timed out

        """
        log.debug("%s %s", method, path)

        try:
            async with self.session.request(
                method, path.lstrip("/"), json=payload, params=params
            ) as response:
                status = response.status
                text = await response.text()
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ConnectionFailedError(
                method=method,
                path=path,
                status=None,
                message=str(exc) or type(exc).__name__,
            ) from exc

        if not 200 <= status < 300:
            error_cls = ERRORS_BY_STATUS.get(status, ApiError)
            raise error_cls(
                method=method, path=path, status=status, message=extract_message(text)
            )

        if not text.strip():
            return None
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ApiError(
                method=method,
                path=path,
                status=status,
                message=f"Invalid JSON in response: {exc}",
            ) from exc
        return unwrap(data)
