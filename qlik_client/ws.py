"""WebSocket dial helper for the Qlik engine endpoint."""

from __future__ import annotations

import asyncio
import ssl

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
    WebSocketException,
)

from .errors import (
    QlikConnectionError,
    QlikHandshakeError,
    QlikTimeout,
)


def _describe_rejection(err: InvalidStatus) -> tuple[int, str]:
    response = err.response
    body = response.body.decode("utf-8", errors="replace") if response.body else ""
    return response.status_code, body


async def connect_websocket(
    url: str,
    *,
    ssl_context: ssl.SSLContext,
    headers: dict[str, str],
    origin: str | None = None,
    timeout: float = 30.0,
) -> ClientConnection:
    """Open a TLS WebSocket connection with the given upgrade headers.

    Keepalive pings are disabled; the engine session is strictly
    request/response and carries no background traffic.

    Args:
        url: ``wss://`` endpoint URL.
        ssl_context: Context from ``build_ssl_context``.
        headers: Extra headers sent with the upgrade request.
        origin: Optional Origin header value.
        timeout: Seconds allowed for the TLS dial and upgrade. This is the
            only limit; the library's own open timeout is disabled.

    Raises:
        QlikTimeout: The dial or upgrade did not complete in time.
        QlikHandshakeError: The server rejected the upgrade.
        QlikConnectionError: The TLS or TCP connection failed.
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ssl=ssl_context,
                additional_headers=headers,
                origin=origin,
                ping_interval=None,
                open_timeout=None,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise QlikTimeout(f"WebSocket connection to {url} timed out") from err
    except InvalidStatus as err:
        status, body = _describe_rejection(err)
        raise QlikHandshakeError(
            f"WebSocket upgrade to {url} rejected with HTTP {status}: {body}",
            status=status,
            body=body,
        ) from err
    except (InvalidHandshake, InvalidURI) as err:
        raise QlikHandshakeError(f"WebSocket handshake with {url} failed: {err}") from err
    except (OSError, WebSocketException) as err:
        raise QlikConnectionError(f"WebSocket connection to {url} failed: {err}") from err
