"""HTTP client for the Qlik repository (QRS) and proxy (QPS) services."""

from __future__ import annotations

import json
import logging
import ssl
from collections.abc import Callable
from typing import Any, TypeVar

import aiohttp

from .config import QlikConfig
from .errors import (
    QlikConnectionError,
    QlikDecodeError,
    QlikNotFoundError,
    QlikResponseError,
    QlikTimeout,
)
from .headers import build_headers, make_xrf_key
from .models import About, ApplicationResult, Ticket
from .tls import build_ssl_context

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


class QlikHttpClient:
    """HTTP client wrapper for the repository and proxy endpoints."""

    def __init__(self, session: aiohttp.ClientSession, config: QlikConfig) -> None:
        self._session = session
        self._config = config
        self._ssl_context: ssl.SSLContext | None = None

    def _url(self, port: int, path: str) -> str:
        return f"https://{self._config.server}:{port}{path}"

    def _ssl(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = build_ssl_context(self._config)
        return self._ssl_context

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=None,
            sock_connect=self._config.connect_timeout,
            sock_read=self._config.read_write_timeout,
        )

    async def _call(
        self,
        method: str,
        port: int,
        path: str,
        *,
        query: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> str:
        """Perform one call and return its body text.

        Raises:
            QlikNotFoundError: HTTP 404.
            QlikResponseError: Any other status of 300 or above.
            QlikTimeout: Connect or read timed out.
            QlikConnectionError: The request failed at the transport level.
        """
        url = self._url(port, path)
        xrf_key = make_xrf_key()
        params = dict(query or {})
        params["xrfkey"] = xrf_key
        _LOGGER.debug("%s %s", method, url)
        try:
            async with self._session.request(
                method,
                url,
                params=params,
                headers=build_headers(self._config, xrf_key),
                json=body,
                ssl=self._ssl(),
                timeout=self._timeout(),
            ) as resp:
                text = await resp.text()
                if resp.status == 404:
                    raise QlikNotFoundError(reason=resp.reason or "")
                if resp.status >= 300:
                    raise QlikResponseError(
                        resp.status,
                        f"Error during request [{resp.status}]: {resp.reason}",
                        reason=resp.reason or "",
                    )
        except TimeoutError as err:
            raise QlikTimeout(f"{method} {path} timed out") from err
        except aiohttp.ClientError as err:
            raise QlikConnectionError(f"{method} {path} failed: {err}") from err

        return text

    async def _request(
        self,
        method: str,
        port: int,
        path: str,
        decode: Callable[[Any], _T],
        *,
        query: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> _T:
        """Perform one call and decode its JSON body with ``decode``.

        Raises:
            QlikDecodeError: The body is not JSON or does not fit ``decode``.
        """
        text = await self._call(method, port, path, query=query, body=body)
        try:
            return decode(json.loads(text))
        except ValueError as err:
            raise QlikDecodeError(f"Invalid JSON from {method} {path}: {err}") from err

    async def about(self) -> About:
        """Fetch server build information."""
        return await self._request(
            "GET", self._config.qrs_port, "/qrs/about", decode=About.from_dict
        )

    async def list_apps(self) -> list[ApplicationResult]:
        """List all apps visible to the configured user."""
        return await self._request(
            "GET",
            self._config.qrs_port,
            "/qrs/app",
            decode=ApplicationResult.list_from_json,
        )

    async def copy_app(self, app_id: str, name: str) -> ApplicationResult:
        """Copy an app under a new name."""
        return await self._request(
            "POST",
            self._config.qrs_port,
            f"/qrs/app/{app_id}/copy",
            query={"name": name},
            decode=ApplicationResult.from_dict,
        )

    async def publish_app(
        self, app_id: str, stream_id: str, name: str
    ) -> ApplicationResult:
        """Publish an app to a stream."""
        return await self._request(
            "PUT",
            self._config.qrs_port,
            f"/qrs/app/{app_id}/publish",
            query={"stream": stream_id, "name": name},
            decode=ApplicationResult.from_dict,
        )

    async def reload_app(self, app_id: str) -> None:
        """Trigger a server-side reload of an app."""
        await self._call("GET", self._config.qrs_port, f"/qrs/app/{app_id}/reload")

    async def get_ticket(self) -> Ticket:
        """Request an authentication ticket for the configured identity."""
        return await self._request(
            "POST",
            self._config.auth_port,
            "/qps/ticket",
            body={
                "UserDirectory": self._config.directory,
                "UserId": self._config.user,
            },
            decode=Ticket.from_dict,
        )
