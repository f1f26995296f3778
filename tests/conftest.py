"""Pytest configuration and fixtures for qlik_client tests."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from qlik_client.config import QlikConfig


@pytest.fixture
def config() -> QlikConfig:
    """Config without TLS material."""
    return QlikConfig(server="qlik.example.com", directory="CORP", user="alice")


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


@pytest.fixture
def mock_ws() -> AsyncMock:
    """Create a mock websockets ClientConnection."""
    return AsyncMock()


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    text_data: str | None = None,
    reason: str = "OK",
) -> AsyncMock:
    """Create a configured mock aiohttp response.

    Args:
        status: HTTP status code
        json_data: Data serialized as the body returned by text()
        text_data: Raw body returned by text(); overrides json_data
        reason: HTTP reason phrase

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status
    response.reason = reason

    if text_data is not None:
        response.text.return_value = text_data
    elif json_data is not None:
        response.text.return_value = json.dumps(json_data)
    else:
        response.text.return_value = ""

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


def engine_frame(**fields: Any) -> str:
    """Serialize an engine response frame."""
    return json.dumps({"jsonrpc": "2.0", **fields})
