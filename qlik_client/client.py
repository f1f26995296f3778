"""Combined client for the Qlik repository REST API and the engine API.

Usage:
    async with QlikClient(load_config("qlik.yaml")) as client:
        apps = await client.list_apps()
        await client.open_websocket()
        doc = await client.open_doc("Sales.qvf")
        script = await client.get_script(doc.result.return_.handle)
        await client.close_websocket()
"""

from __future__ import annotations

import aiohttp

from . import protocol
from .config import QlikConfig
from .http import QlikHttpClient
from .models import About, ApplicationResult, Ticket
from .protocol import Command, Response
from .session import QlikEngineSession


class QlikClient:
    """API client owning one engine session and one HTTP session.

    Engine calls require ``open_websocket()`` first and run one at a time.
    """

    def __init__(
        self,
        config: QlikConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config
        self.engine = QlikEngineSession(config)
        self._http_session = session
        self._owns_http_session = session is None
        self._http: QlikHttpClient | None = None

    async def __aenter__(self) -> QlikClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the engine session and any HTTP session this client created."""
        if self.engine.is_open:
            await self.engine.close()
        if self._owns_http_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._http = None

    @property
    def http(self) -> QlikHttpClient:
        if self._http is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._http = QlikHttpClient(self._http_session, self.config)
        return self._http

    # -------------------------------------------------------------------------
    # Repository API
    # -------------------------------------------------------------------------

    async def about(self) -> About:
        return await self.http.about()

    async def list_apps(self) -> list[ApplicationResult]:
        return await self.http.list_apps()

    async def copy_app(self, app_id: str, name: str) -> ApplicationResult:
        return await self.http.copy_app(app_id, name)

    async def publish_app(
        self, app_id: str, stream_id: str, name: str
    ) -> ApplicationResult:
        return await self.http.publish_app(app_id, stream_id, name)

    async def reload_app(self, app_id: str) -> None:
        await self.http.reload_app(app_id)

    async def get_ticket(self) -> Ticket:
        return await self.http.get_ticket()

    # -------------------------------------------------------------------------
    # Engine API
    # -------------------------------------------------------------------------

    async def open_websocket(self) -> None:
        await self.engine.open()

    async def close_websocket(self) -> None:
        await self.engine.close()

    async def execute(self, command: Command) -> Response:
        return await self.engine.execute(command)

    async def create_app(self, name: str) -> Response:
        return await self.execute(protocol.create_app(name))

    async def create_doc_ex(self, name: str) -> Response:
        return await self.execute(protocol.create_doc_ex(name))

    async def open_doc(
        self, name: str, directory: str | None = None, user: str | None = None
    ) -> Response:
        """Open a document, as the configured identity unless one is given."""
        return await self.execute(
            protocol.open_doc(
                name, directory or self.config.directory, user or self.config.user
            )
        )

    async def get_active_doc(self) -> Response:
        return await self.execute(protocol.get_active_doc())

    async def set_script(self, handle: int, script: str) -> Response:
        return await self.execute(protocol.set_script(handle, script))

    async def get_script(self, handle: int) -> Response:
        return await self.execute(protocol.get_script(handle))

    async def create_sheet(
        self,
        handle: int,
        title: str,
        description: str,
        thumbnail: str,
        id: str,  # noqa: A002 - sheet qId
        rows: int,
        columns: int,
        rank: int,
    ) -> Response:
        params = protocol.sheet_params(
            title, description, thumbnail, id, rows, columns, rank
        )
        return await self.execute(protocol.create_sheet(handle, params))

    async def list_streams(self) -> Response:
        return await self.execute(protocol.get_stream_list())

    async def do_reload(self, handle: int) -> Response:
        return await self.execute(protocol.do_reload(handle))
