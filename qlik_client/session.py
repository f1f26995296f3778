"""Engine session: one WebSocket connection, one command at a time.

Usage:
    async with QlikEngineSession(config) as session:
        response = await session.execute(protocol.get_active_doc())
        doc_handle = response.result.return_.handle

Responses are matched to commands purely by arrival order, so ``execute``
must not be called again until the previous call has returned. The session
holds no lock and no queue; callers sharing a session across tasks must
serialize access themselves.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import QlikConfig
from .errors import QlikProtocolError, QlikTimeout
from .headers import build_headers
from .protocol import Command, Response, is_notification
from .tls import build_ssl_context
from .ws import connect_websocket

_LOGGER = logging.getLogger(__name__)


class QlikEngineSession:
    """Owns the single engine WebSocket and serializes command exchange."""

    def __init__(self, config: QlikConfig) -> None:
        self.config = config
        self._ws: ClientConnection | None = None
        self._in_flight = False

    @property
    def engine_url(self) -> str:
        return f"wss://{self.config.server}:{self.config.engine_port}/app"

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def __aenter__(self) -> QlikEngineSession:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._ws is not None:
            await self.close()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> None:
        """Dial the engine and perform the authenticated WebSocket upgrade.

        Raises:
            QlikProtocolError: If the session is already open.
            QlikConnectionError: If TLS, dial or upgrade fails.
        """
        if self._ws is not None:
            raise QlikProtocolError("Engine session is already open")

        url = self.engine_url
        _LOGGER.info(
            "Opening engine session to %s as %s\\%s",
            url,
            self.config.directory,
            self.config.user,
        )
        self._ws = await connect_websocket(
            url,
            ssl_context=build_ssl_context(self.config),
            headers=build_headers(self.config),
            origin=self.config.origin,
            timeout=self.config.connect_timeout,
        )
        _LOGGER.info("Engine session to %s open", url)

    async def close(self) -> None:
        """Close the engine connection.

        Raises:
            QlikProtocolError: If the session is not open.
        """
        if self._ws is None:
            raise QlikProtocolError("Engine session is not open")
        ws, self._ws = self._ws, None
        _LOGGER.info("Closing engine session to %s", self.engine_url)
        await ws.close()

    async def _discard(self) -> None:
        """Drop a connection that can no longer be trusted."""
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as err:
            _LOGGER.debug("Ignoring close failure on broken session: %s", err)

    # -------------------------------------------------------------------------
    # Command exchange
    # -------------------------------------------------------------------------

    async def execute(self, command: Command) -> Response:
        """Send one command and wait for the next response.

        Raises:
            QlikProtocolError: The session is not open, another command is in
                flight, or the write, read or decode failed. The session is
                closed in the latter cases.
            QlikTimeout: ``execute_timeout`` elapsed; the session is closed.
            asyncio.CancelledError: The caller cancelled the call; the
                session is closed.
            QlikServerError: The response carried an error. The decoded
                response is available on the exception and the session
                stays open.
        """
        if self._ws is None:
            raise QlikProtocolError("Engine session is not open")
        if self._in_flight:
            raise QlikProtocolError(
                f"Cannot send {command.method}: another command is in flight"
            )

        self._in_flight = True
        try:
            if self.config.execute_timeout is None:
                response = await self._exchange(self._ws, command)
            else:
                response = await asyncio.wait_for(
                    self._exchange(self._ws, command),
                    timeout=self.config.execute_timeout,
                )
        except TimeoutError as err:
            await self._discard()
            raise QlikTimeout(
                f"{command.method} did not complete within "
                f"{self.config.execute_timeout}s"
            ) from err
        except (QlikProtocolError, asyncio.CancelledError):
            # A cancelled command may still be answered; that late reply must
            # not be read as the response to the next command.
            await self._discard()
            raise
        finally:
            self._in_flight = False

        if response.id is not None and response.id != command.id:
            _LOGGER.debug(
                "Response id %s does not match %s request id %s",
                response.id,
                command.method,
                command.id,
            )
        if response.error is not None:
            raise response.error.to_exception(response)
        return response

    async def _exchange(self, ws: ClientConnection, command: Command) -> Response:
        _LOGGER.debug(
            "Sending %s (id=%s, handle=%s)", command.method, command.id, command.handle
        )
        try:
            await ws.send(command.to_json())
        except (ConnectionClosed, OSError) as err:
            raise QlikProtocolError(f"Failed to send {command.method}: {err}") from err

        while True:
            data = await self._receive(ws, command)
            if is_notification(data):
                _LOGGER.debug("Skipping engine notification %s", data.get("method"))
                continue
            return Response.from_dict(data)

    @staticmethod
    async def _receive(ws: ClientConnection, command: Command) -> dict[str, Any]:
        try:
            frame = await ws.recv()
        except (ConnectionClosed, OSError) as err:
            raise QlikProtocolError(
                f"Failed to read response to {command.method}: {err}"
            ) from err

        if not isinstance(frame, str):
            raise QlikProtocolError(
                f"Expected a text frame in response to {command.method}"
            )
        try:
            data = json.loads(frame)
        except ValueError as err:
            raise QlikProtocolError(
                f"Response to {command.method} is not valid JSON: {err}"
            ) from err
        if not isinstance(data, dict):
            raise QlikProtocolError(
                f"Response to {command.method} is not a JSON object"
            )
        return data
