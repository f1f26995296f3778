"""Server address, identity and TLS configuration for a Qlik client."""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import QlikConfigError

_LOGGER = logging.getLogger(__name__)

DEFAULT_SERVER = "192.168.99.5"
DEFAULT_DIRECTORY = "WIN8-VBOX"
DEFAULT_USER = "atscale"
DEFAULT_QRS_PORT = 4242
DEFAULT_AUTH_PORT = 4243
DEFAULT_ENGINE_PORT = 4747
DEFAULT_TIMEOUT = 30.0

# Environment variables consulted by default_config()
ENV_CERT_FILE = "atscale_http_sslcert"
ENV_KEY_FILE = "atscale_http_sslkey"
ENV_CA_FILE = "atscale_ca_file"


@dataclass(frozen=True, slots=True)
class TlsMaterial:
    """Paths to the client certificate, client key and CA bundle."""

    cert_file: str
    key_file: str
    ca_file: str


@dataclass(frozen=True, slots=True)
class QlikConfig:
    """Immutable connection settings shared by the REST and engine APIs.

    Args:
        server: Server hostname or IP. A trailing slash is dropped.
        directory: User directory of the identity used on every call.
        user: User id of the identity used on every call.
        qrs_port: Repository (management) API port.
        auth_port: Proxy service port used for ticket requests.
        engine_port: Engine WebSocket port.
        tls: Client certificate material, or None for insecure TLS.
        connect_timeout: Seconds allowed to establish a connection.
        read_write_timeout: Seconds allowed per REST socket read.
        execute_timeout: Seconds allowed for one engine command; None waits
            indefinitely.
        allow_insecure_tls: Fall back to an unverified TLS context when
            certificate material is missing or unreadable.
        origin: Optional Origin header sent on the WebSocket upgrade.
    """

    server: str
    directory: str
    user: str
    qrs_port: int = DEFAULT_QRS_PORT
    auth_port: int = DEFAULT_AUTH_PORT
    engine_port: int = DEFAULT_ENGINE_PORT
    tls: TlsMaterial | None = None
    connect_timeout: float = DEFAULT_TIMEOUT
    read_write_timeout: float = DEFAULT_TIMEOUT
    execute_timeout: float | None = None
    allow_insecure_tls: bool = True
    origin: str | None = None

    def __post_init__(self) -> None:
        if self.server.endswith("/"):
            object.__setattr__(self, "server", self.server[:-1])

    def with_tls(self, cert_file: str, key_file: str, ca_file: str) -> QlikConfig:
        """Return a copy carrying TLS material after checking it is readable.

        Raises:
            QlikConfigError: If TLS is already set or a file cannot be read.
        """
        if self.tls is not None:
            raise QlikConfigError("TLS material is already configured")
        _check_readable(key_file, "client key")
        _check_readable(cert_file, "client cert")
        _check_readable(ca_file, "ca")
        return dataclasses.replace(
            self, tls=TlsMaterial(cert_file=cert_file, key_file=key_file, ca_file=ca_file)
        )


def _check_readable(path: str, label: str) -> None:
    try:
        Path(path).read_bytes()
    except OSError as err:
        raise QlikConfigError(
            f"error reading {label} bytes from [{path}]: {err}"
        ) from err


def default_config() -> QlikConfig:
    """Build the default configuration, taking TLS paths from the environment.

    TLS is attached only when all three files are readable; otherwise a
    warning is logged and the config carries no TLS material.
    """
    config = QlikConfig(
        server=DEFAULT_SERVER,
        directory=DEFAULT_DIRECTORY,
        user=DEFAULT_USER,
    )
    cert_file = os.environ.get(ENV_CERT_FILE) or "client.pem"
    key_file = os.environ.get(ENV_KEY_FILE) or "client_key.pem"
    ca_file = os.environ.get(ENV_CA_FILE) or "root.pem"
    try:
        return config.with_tls(cert_file, key_file, ca_file)
    except QlikConfigError as err:
        _LOGGER.warning("Default TLS material not loaded: %s", err)
        return config


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file with error handling."""
    if not path.exists():
        raise QlikConfigError(f"File not found: {path}")
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as err:
        raise QlikConfigError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise QlikConfigError(f"Expected a mapping in {path}")
    return data


def load_config(path: Path | str) -> QlikConfig:
    """Load a QlikConfig from a YAML file.

    Keys match the QlikConfig field names. TLS paths go under a nested
    ``tls`` mapping with ``cert_file``, ``key_file`` and ``ca_file``.

    Raises:
        QlikConfigError: If the file is missing, malformed, has unknown keys,
            or names unreadable TLS files.
    """
    data = dict(_load_yaml(Path(path)))

    tls_data = data.pop("tls", None)
    known = {f.name for f in dataclasses.fields(QlikConfig)} - {"tls"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise QlikConfigError(f"Unknown config keys: {', '.join(unknown)}")
    for required in ("server", "directory", "user"):
        if required not in data:
            raise QlikConfigError(f"Missing required config key: {required}")

    try:
        config = QlikConfig(**data)
    except (TypeError, AttributeError) as err:
        raise QlikConfigError(f"Invalid config in {path}: {err}") from err

    if tls_data is None:
        return config
    if not isinstance(tls_data, dict):
        raise QlikConfigError("tls must be a mapping")
    try:
        return config.with_tls(
            tls_data["cert_file"], tls_data["key_file"], tls_data["ca_file"]
        )
    except KeyError as err:
        raise QlikConfigError(f"Missing tls key: {err.args[0]}") from err
