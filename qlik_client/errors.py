"""Client error types for Qlik Sense engine and repository interactions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .protocol import Response


class QlikClientError(Exception):
    """Base error for Qlik client failures."""


class QlikConfigError(QlikClientError):
    """Configuration or TLS material could not be loaded."""


class QlikConnectionError(QlikClientError):
    """Network connection to the server failed."""


class QlikHandshakeError(QlikConnectionError):
    """WebSocket upgrade was rejected by the server."""

    def __init__(
        self, message: str, *, status: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class QlikTimeout(QlikConnectionError):
    """Timeout while communicating with the server."""


class QlikProtocolError(QlikClientError):
    """Engine session failed or was used out of turn.

    Write, read and decode failures close the session, which must be
    re-opened. Calls made while the session is closed, already open or busy
    with another command leave its state unchanged.
    """


class QlikServerError(QlikClientError):
    """Engine response carried an error object.

    The decoded response is kept on ``response`` so result fields sent
    alongside the error remain inspectable. The session stays open.
    """

    def __init__(
        self,
        code: int,
        message: str,
        parameter: str,
        *,
        response: Response | None = None,
    ) -> None:
        super().__init__(f"Error [{code}]: {message} - {parameter}")
        self.code = code
        self.server_message = message
        self.parameter = parameter
        self.response = response


class QlikResponseError(QlikClientError):
    """HTTP response error from the repository service."""

    def __init__(self, status: int, message: str, *, reason: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class QlikNotFoundError(QlikResponseError):
    """Requested repository resource does not exist (HTTP 404)."""

    def __init__(self, message: str = "Does Not Exist", *, reason: str = "") -> None:
        super().__init__(404, message, reason=reason)


class QlikDecodeError(QlikClientError):
    """Response body could not be decoded into the expected shape."""
