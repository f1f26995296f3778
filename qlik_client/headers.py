"""Anti-forgery and identity headers attached to every Qlik call."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import QlikConfig

CONTENT_TYPE_HEADER = "Content-Type"
XRF_HEADER = "X-Qlik-Xrfkey"
USER_HEADER = "X-Qlik-User"
JSON_CONTENT_TYPE = "application/json"

XRF_KEY_LENGTH = 16


def make_xrf_key() -> str:
    """Return a fresh 16-character anti-forgery key.

    The key is the first 16 hex digits of a random UUID with its separators
    removed. Never reuse a key across requests.
    """
    return uuid.uuid4().hex[:XRF_KEY_LENGTH]


def make_user_header(directory: str, user: str) -> str:
    """Format the identity value used by X-Qlik-User and OpenDoc."""
    return f"UserDirectory={directory}; UserId={user}"


def build_headers(config: QlikConfig, xrf_key: str | None = None) -> dict[str, str]:
    """Build the header set for one request.

    Args:
        config: Supplies the user directory and user id.
        xrf_key: Key to send; generated when omitted. REST calls pass the key
            they also place in the ``xrfkey`` query parameter.
    """
    return {
        CONTENT_TYPE_HEADER: JSON_CONTENT_TYPE,
        XRF_HEADER: xrf_key or make_xrf_key(),
        USER_HEADER: make_user_header(config.directory, config.user),
    }
