"""Tests for QlikEngineSession command execution."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosed

from qlik_client import protocol
from qlik_client.config import QlikConfig
from qlik_client.errors import (
    QlikConnectionError,
    QlikProtocolError,
    QlikServerError,
    QlikTimeout,
)
from qlik_client.headers import USER_HEADER, XRF_HEADER
from qlik_client.session import QlikEngineSession

from .conftest import engine_frame

ACTIVE_DOC = '{"jsonrpc":"2.0","id":1,"result":{"qReturn":{"qType":"Doc","qHandle":1}}}'
INVALID_PARAM = (
    '{"jsonrpc":"2.0","id":1,"error":{"code":3,"message":"Invalid param","parameter":"qName"}}'
)


async def _open_session(config: QlikConfig, mock_ws: AsyncMock) -> QlikEngineSession:
    session = QlikEngineSession(config)
    with patch("qlik_client.session.connect_websocket", return_value=mock_ws):
        await session.open()
    return session


class TestOpenClose:
    """Tests for session lifecycle."""

    @pytest.mark.asyncio
    async def test_open_dials_engine_with_headers(self, config, mock_ws):
        """Test open() dials wss://host:port/app with identity headers."""
        session = QlikEngineSession(config)
        with patch(
            "qlik_client.session.connect_websocket", return_value=mock_ws
        ) as mock_connect:
            await session.open()

        args, kwargs = mock_connect.call_args
        assert args == ("wss://qlik.example.com:4747/app",)
        assert kwargs["headers"][USER_HEADER] == "UserDirectory=CORP; UserId=alice"
        assert len(kwargs["headers"][XRF_HEADER]) == 16
        assert kwargs["timeout"] == config.connect_timeout
        assert session.is_open

    @pytest.mark.asyncio
    async def test_fresh_xrf_key_per_open(self, config, mock_ws):
        """Test each upgrade carries a new anti-forgery key."""
        session = QlikEngineSession(config)
        with patch(
            "qlik_client.session.connect_websocket", return_value=mock_ws
        ) as mock_connect:
            await session.open()
            await session.close()
            await session.open()

        first, second = (c.kwargs["headers"][XRF_HEADER] for c in mock_connect.call_args_list)
        assert first != second

    @pytest.mark.asyncio
    async def test_open_failure_propagates(self, config):
        """Test dial errors reach the caller and leave the session closed."""
        session = QlikEngineSession(config)
        with patch(
            "qlik_client.session.connect_websocket",
            side_effect=QlikConnectionError("WebSocket connection failed"),
        ):
            with pytest.raises(QlikConnectionError):
                await session.open()
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_open_twice_raises(self, config, mock_ws):
        """Test an open session cannot be opened again."""
        session = await _open_session(config, mock_ws)
        with pytest.raises(QlikProtocolError, match="already open"):
            await session.open()
        assert session.is_open

    @pytest.mark.asyncio
    async def test_close(self, config, mock_ws):
        """Test close() closes the connection."""
        session = await _open_session(config, mock_ws)
        await session.close()

        mock_ws.close.assert_awaited_once()
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_second_close_raises(self, config, mock_ws):
        """Test closing twice fails."""
        session = await _open_session(config, mock_ws)
        await session.close()
        with pytest.raises(QlikProtocolError, match="not open"):
            await session.close()

    @pytest.mark.asyncio
    async def test_context_manager(self, config, mock_ws):
        """Test async with opens and closes the session."""
        with patch("qlik_client.session.connect_websocket", return_value=mock_ws):
            async with QlikEngineSession(config) as session:
                assert session.is_open
        mock_ws.close.assert_awaited_once()
        assert not session.is_open


class TestExecute:
    """Tests for QlikEngineSession.execute()."""

    @pytest.mark.asyncio
    async def test_get_active_doc(self, config, mock_ws):
        """Test a successful response is decoded and returned."""
        mock_ws.recv.return_value = ACTIVE_DOC
        session = await _open_session(config, mock_ws)

        response = await session.execute(protocol.get_active_doc())

        sent = json.loads(mock_ws.send.call_args.args[0])
        assert sent == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "GetActiveDoc",
            "handle": -1,
            "delta": False,
            "params": [],
        }
        assert response.error is None
        assert response.result.return_.handle == 1

    @pytest.mark.asyncio
    async def test_server_error_keeps_session_open(self, config, mock_ws):
        """Test an error response raises but the session remains usable."""
        mock_ws.recv.side_effect = [INVALID_PARAM, ACTIVE_DOC]
        session = await _open_session(config, mock_ws)

        with pytest.raises(QlikServerError) as exc_info:
            await session.execute(protocol.open_doc("missing", "CORP", "alice"))

        message = str(exc_info.value)
        assert "3" in message
        assert "Invalid param" in message
        assert "qName" in message
        assert exc_info.value.code == 3
        assert exc_info.value.response.error.parameter == "qName"
        assert session.is_open

        response = await session.execute(protocol.get_active_doc())
        assert response.result.return_.handle == 1

    @pytest.mark.asyncio
    async def test_server_error_keeps_result_fields(self, config, mock_ws):
        """Test result fields sent alongside an error stay accessible."""
        mock_ws.recv.return_value = engine_frame(
            id=3,
            result={"qSuccess": False},
            error={"code": 9001, "message": "Syntax error", "parameter": "qScript"},
        )
        session = await _open_session(config, mock_ws)

        with pytest.raises(QlikServerError) as exc_info:
            await session.execute(protocol.set_script(1, "LOAD"))

        assert exc_info.value.response.result is not None
        assert exc_info.value.response.result.payload == {"qSuccess": False}

    @pytest.mark.asyncio
    async def test_notifications_are_skipped(self, config, mock_ws):
        """Test engine push messages before the response are ignored."""
        mock_ws.recv.side_effect = [
            engine_frame(method="OnConnected", params={"qSessionState": "SESSION_CREATED"}),
            ACTIVE_DOC,
        ]
        session = await _open_session(config, mock_ws)

        response = await session.execute(protocol.get_active_doc())

        assert response.result.return_.handle == 1
        assert mock_ws.recv.await_count == 2

    @pytest.mark.asyncio
    async def test_mismatched_id_is_accepted(self, config, mock_ws):
        """Test responses are matched by arrival order, not id."""
        mock_ws.recv.return_value = engine_frame(id=42, result={"qScript": "LOAD 1;"})
        session = await _open_session(config, mock_ws)

        response = await session.execute(protocol.get_script(1))

        assert response.id == 42
        assert response.result.script == "LOAD 1;"

    @pytest.mark.asyncio
    async def test_not_open_raises(self, config):
        """Test executing on a closed session fails."""
        session = QlikEngineSession(config)
        with pytest.raises(QlikProtocolError, match="not open"):
            await session.execute(protocol.get_active_doc())

    @pytest.mark.asyncio
    async def test_send_failure_invalidates_session(self, config, mock_ws):
        """Test a write failure raises QlikProtocolError and drops the connection."""
        mock_ws.send.side_effect = ConnectionClosed(None, None)
        session = await _open_session(config, mock_ws)

        with pytest.raises(QlikProtocolError, match="Failed to send GetActiveDoc"):
            await session.execute(protocol.get_active_doc())

        assert not session.is_open
        mock_ws.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_read_failure_invalidates_session(self, config, mock_ws):
        """Test a read failure raises QlikProtocolError and drops the connection."""
        mock_ws.recv.side_effect = ConnectionClosed(None, None)
        session = await _open_session(config, mock_ws)

        with pytest.raises(QlikProtocolError, match="Failed to read"):
            await session.execute(protocol.get_active_doc())

        assert not session.is_open

    @pytest.mark.parametrize(
        ("frame", "match"),
        [
            ("not json {", "not valid JSON"),
            ("[1, 2]", "not a JSON object"),
            (b"\x00\x01", "text frame"),
            ('{"id": 1, "result": 5}', "result must be a JSON object"),
        ],
    )
    @pytest.mark.asyncio
    async def test_decode_failure_invalidates_session(self, config, mock_ws, frame, match):
        """Test undecodable frames raise QlikProtocolError."""
        mock_ws.recv.return_value = frame
        session = await _open_session(config, mock_ws)

        with pytest.raises(QlikProtocolError, match=match):
            await session.execute(protocol.get_active_doc())

        assert not session.is_open

    @pytest.mark.asyncio
    async def test_close_failure_on_broken_session_not_raised(self, config, mock_ws):
        """Test the original protocol error wins over a failing close."""
        mock_ws.recv.side_effect = ConnectionClosed(None, None)
        mock_ws.close.side_effect = OSError("socket gone")
        session = await _open_session(config, mock_ws)

        with pytest.raises(QlikProtocolError, match="Failed to read"):
            await session.execute(protocol.get_active_doc())

    @pytest.mark.asyncio
    async def test_concurrent_execute_rejected(self, config, mock_ws):
        """Test a second command while one is in flight is refused."""
        release = asyncio.Event()

        async def slow_recv():
            await release.wait()
            return ACTIVE_DOC

        mock_ws.recv.side_effect = slow_recv
        session = await _open_session(config, mock_ws)

        first = asyncio.create_task(session.execute(protocol.get_active_doc()))
        await asyncio.sleep(0)
        with pytest.raises(QlikProtocolError, match="in flight"):
            await session.execute(protocol.get_stream_list())

        release.set()
        response = await first
        assert response.result.return_.handle == 1
        assert session.is_open

    @pytest.mark.asyncio
    async def test_execute_timeout(self, mock_ws):
        """Test the optional execute timeout closes the session."""
        config = QlikConfig(
            server="qlik.example.com", directory="CORP", user="alice", execute_timeout=0.01
        )

        async def never():
            await asyncio.Event().wait()

        mock_ws.recv.side_effect = never
        session = await _open_session(config, mock_ws)

        with pytest.raises(QlikTimeout, match="GetActiveDoc did not complete"):
            await session.execute(protocol.get_active_doc())

        assert not session.is_open

    @pytest.mark.asyncio
    async def test_caller_timeout_drops_session(self, config, mock_ws):
        """Test a caller-side timeout closes the session so a late reply is never misread."""
        replies = [engine_frame(id=2, result={"qScript": "LOAD 1;"}), ACTIVE_DOC]
        reads = 0

        async def recv():
            nonlocal reads
            reads += 1
            if reads == 1:
                await asyncio.Event().wait()
            return replies[reads - 2]

        mock_ws.recv.side_effect = recv
        session = await _open_session(config, mock_ws)

        with pytest.raises(TimeoutError):
            async with asyncio.timeout(0.05):
                await session.execute(protocol.get_script(1))

        assert not session.is_open
        mock_ws.close.assert_awaited_once()
        with pytest.raises(QlikProtocolError, match="not open"):
            await session.execute(protocol.get_active_doc())
        assert reads == 1

    @pytest.mark.asyncio
    async def test_task_cancel_drops_session(self, config, mock_ws):
        """Test cancelling the task running execute() closes the session."""
        started = asyncio.Event()

        async def blocked_recv():
            started.set()
            await asyncio.Event().wait()

        mock_ws.recv.side_effect = blocked_recv
        session = await _open_session(config, mock_ws)

        task = asyncio.create_task(session.execute(protocol.get_active_doc()))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not session.is_open
        mock_ws.close.assert_awaited_once()
