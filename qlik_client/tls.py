"""TLS context construction for the engine and repository connections."""

from __future__ import annotations

import logging
import ssl
from typing import TYPE_CHECKING

from .errors import QlikConnectionError

if TYPE_CHECKING:
    from .config import QlikConfig

_LOGGER = logging.getLogger(__name__)


def _insecure_context() -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _fallback(config: QlikConfig, reason: str) -> ssl.SSLContext:
    if not config.allow_insecure_tls:
        raise QlikConnectionError(f"TLS material unavailable: {reason}")
    _LOGGER.warning("Using unverified TLS to %s: %s", config.server, reason)
    return _insecure_context()


def _unverified(
    config: QlikConfig, context: ssl.SSLContext, reason: str
) -> ssl.SSLContext:
    """Keep the client certificate but skip server verification."""
    if not config.allow_insecure_tls:
        raise QlikConnectionError(f"Server certificate cannot be verified: {reason}")
    _LOGGER.warning(
        "Server certificate of %s is not verified: %s", config.server, reason
    )
    return context


def build_ssl_context(config: QlikConfig) -> ssl.SSLContext:
    """Build the SSL context used for every connection to the server.

    With a loadable client certificate and key the certificate is presented
    to the server, and the server certificate is verified against the CA file
    when that loads too. Hostnames are not checked because servers are
    commonly addressed by IP. Without usable material the context falls back
    to no verification when ``allow_insecure_tls`` is set; the same flag
    governs a loaded client certificate whose CA cannot be used.

    Raises:
        QlikConnectionError: If the server cannot be verified and insecure TLS
            is disabled.
    """
    tls = config.tls
    if tls is None or not tls.cert_file or not tls.key_file:
        return _fallback(config, "no client certificate configured")

    context = _insecure_context()
    try:
        context.load_cert_chain(tls.cert_file, tls.key_file)
    except (OSError, ssl.SSLError) as err:
        return _fallback(config, f"client certificate not loaded: {err}")

    if not tls.ca_file:
        return _unverified(config, context, "no CA file configured")
    try:
        context.load_verify_locations(cafile=tls.ca_file)
    except (OSError, ssl.SSLError) as err:
        return _unverified(
            config, context, f"CA file {tls.ca_file} not loaded: {err}"
        )

    context.verify_mode = ssl.CERT_REQUIRED
    return context
