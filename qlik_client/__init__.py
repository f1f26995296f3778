"""Async client for the Qlik Sense repository and engine APIs."""

__version__ = "0.1.0"

from .client import QlikClient
from .config import QlikConfig, TlsMaterial, default_config, load_config
from .errors import (
    QlikClientError,
    QlikConfigError,
    QlikConnectionError,
    QlikDecodeError,
    QlikHandshakeError,
    QlikNotFoundError,
    QlikProtocolError,
    QlikResponseError,
    QlikServerError,
    QlikTimeout,
)
from .headers import build_headers, make_user_header, make_xrf_key
from .http import QlikHttpClient
from .protocol import Command, ObjectParams, PositionalParams, Response, Result
from .session import QlikEngineSession
from .ws import connect_websocket

__all__ = [
    "Command",
    "ObjectParams",
    "PositionalParams",
    "QlikClient",
    "QlikClientError",
    "QlikConfig",
    "QlikConfigError",
    "QlikConnectionError",
    "QlikDecodeError",
    "QlikEngineSession",
    "QlikHandshakeError",
    "QlikHttpClient",
    "QlikNotFoundError",
    "QlikProtocolError",
    "QlikResponseError",
    "QlikServerError",
    "QlikTimeout",
    "Response",
    "Result",
    "TlsMaterial",
    "__version__",
    "build_headers",
    "connect_websocket",
    "default_config",
    "load_config",
    "make_user_header",
    "make_xrf_key",
]
