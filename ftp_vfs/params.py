"""
Protocol-aware connection parameters.

One configuration surface serves SFTP, SCP, FTP(S) and WebDAV even though
their security models differ: SSH verifies a host key and authenticates with a
private key, while FTPS/WebDAV verify a TLS server certificate and may present
a TLS client certificate. SessionOptions keeps the protocol-specific fields in
a tagged variant (``security``) and ConnectParams exposes the logical names
(fingerprint, accept_any, private_key_path, secure) that dispatch to whichever
variant the selected protocol uses.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import unquote, urlsplit

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 15000

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")


class Protocol(str, Enum):
    SFTP = "sftp"
    SCP = "scp"
    FTP = "ftp"
    WEBDAV = "webdav"

    @property
    def is_ssh(self) -> bool:
        return self in (Protocol.SFTP, Protocol.SCP)


class FtpSecure(str, Enum):
    NONE = "none"
    IMPLICIT = "implicit"
    EXPLICIT = "explicit"


@dataclass
class SshSecurity:
    """Identity settings for SFTP and SCP."""

    host_key_fingerprint: str = ""
    accept_any_host_key: bool = False
    private_key_path: str = ""


@dataclass
class TlsSecurity:
    """Identity settings shared by the TLS based protocols."""

    certificate_fingerprint: str = ""
    accept_any_certificate: bool = False
    client_certificate_path: str = ""


@dataclass
class FtpSecurity(TlsSecurity):
    secure: FtpSecure = FtpSecure.NONE


@dataclass
class WebdavSecurity(TlsSecurity):
    secure: bool = False
    root: str = ""


Security = SshSecurity | FtpSecurity | WebdavSecurity


def _security_for(protocol: Protocol, current: Security | None) -> Security:
    """Return the variant for protocol, reusing current when it still applies."""
    if protocol.is_ssh:
        return current if isinstance(current, SshSecurity) else SshSecurity()

    variant = FtpSecurity if protocol is Protocol.FTP else WebdavSecurity
    if isinstance(current, variant):
        return current
    if isinstance(current, TlsSecurity):
        # FTP <-> WebDAV: the TLS identity still means the same thing
        return variant(
            certificate_fingerprint=current.certificate_fingerprint,
            accept_any_certificate=current.accept_any_certificate,
            client_certificate_path=current.client_certificate_path,
        )
    return variant()


def default_port(protocol: Protocol, security: Security) -> int:
    if protocol.is_ssh:
        return 22
    if isinstance(security, FtpSecurity):
        return 990 if security.secure is FtpSecure.IMPLICIT else 21
    if isinstance(security, WebdavSecurity) and security.secure:
        return 443
    return 80


class SessionOptions:
    """Fully resolved options handed to a remote connection backend."""

    def __init__(self, protocol: Protocol = Protocol.SFTP):
        self._protocol = protocol
        self.security: Security = _security_for(protocol, None)
        self.host_name = ""
        self.port_number = 0
        self.user_name = ""
        self.password = ""
        self.private_key_passphrase = ""
        self.timeout_ms = DEFAULT_TIMEOUT_MS
        self.raw_settings: dict[str, Any] = {}

    @property
    def protocol(self) -> Protocol:
        return self._protocol

    @protocol.setter
    def protocol(self, value: Protocol) -> None:
        self._protocol = value
        self.security = _security_for(value, self.security)

    @property
    def effective_port(self) -> int:
        """Configured port, or the protocol default when the port is 0."""
        return self.port_number or default_port(self._protocol, self.security)

    @property
    def timeout_seconds(self) -> float | None:
        """Socket timeout for the client libraries; None when disabled."""
        return self.timeout_ms / 1000 if self.timeout_ms > 0 else None

    def __repr__(self) -> str:
        return (
            f"SessionOptions(protocol={self._protocol.value!r}, host={self.host_name!r}, "
            f"port={self.effective_port}, user={self.user_name!r}, security={self.security!r})"
        )


# -- value parsing -------------------------------------------------------------


def parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid {name} value: '{value}' - must be a boolean")


def parse_int(name: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"Invalid {name} value: '{value}' - must be an integer")


def parse_protocol(value: Any) -> Protocol:
    if isinstance(value, Protocol):
        return value
    try:
        return Protocol(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(p.value for p in Protocol)
        raise ConfigurationError(f"Unknown protocol: '{value}' - expected one of {choices}")


def parse_secure(value: Any) -> FtpSecure:
    if isinstance(value, FtpSecure):
        return value
    try:
        return FtpSecure(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Invalid secure value: '{value}' - expected none, implicit or explicit"
        )


def normalize_key(key: str) -> str:
    return key.strip().lower().replace("-", "_")


# -- server URL ----------------------------------------------------------------

URL_SCHEMES: dict[str, tuple[Protocol, FtpSecure]] = {
    "sftp": (Protocol.SFTP, FtpSecure.IMPLICIT),
    "scp": (Protocol.SCP, FtpSecure.IMPLICIT),
    "ftp": (Protocol.FTP, FtpSecure.NONE),
    "ftps": (Protocol.FTP, FtpSecure.IMPLICIT),
    "ftpes": (Protocol.FTP, FtpSecure.EXPLICIT),
    "http": (Protocol.WEBDAV, FtpSecure.NONE),
    "dav": (Protocol.WEBDAV, FtpSecure.NONE),
    "https": (Protocol.WEBDAV, FtpSecure.IMPLICIT),
    "davs": (Protocol.WEBDAV, FtpSecure.IMPLICIT),
}


def parse_server_url(url: str) -> dict[str, Any]:
    """
    Split a session URL into connect fields.

    Format: ``scheme://[user[:password][;fingerprint=FP]@]host[:port][/path]``.
    User, password and fingerprint are percent-decoded. The path is only
    meaningful for WebDAV, where it becomes the root path.

    Raises:
        ConfigurationError: If the scheme is unknown or the host/port is invalid.
    """
    scheme, sep, rest = url.strip().partition("://")
    if not sep:
        raise ConfigurationError(f"Malformed server URL (missing scheme): '{url}'")
    scheme = scheme.lower()
    if scheme not in URL_SCHEMES:
        raise ConfigurationError(f"Unsupported server URL scheme '{scheme}' in '{url}'")
    protocol, secure = URL_SCHEMES[scheme]

    netloc, slash, path = rest.partition("/")
    userinfo, _, hostport = netloc.rpartition("@")

    try:
        parsed = urlsplit("//" + hostport)
        host = parsed.hostname
        port = parsed.port
    except ValueError as e:
        raise ConfigurationError(f"Malformed server URL '{url}': {e}") from e
    if not host:
        raise ConfigurationError(f"Malformed server URL (missing host): '{url}'")

    fields: dict[str, Any] = {
        "protocol": protocol,
        "host": host,
        "port": port or 0,
        "secure": secure,
    }

    if userinfo:
        credentials, *url_params = userinfo.split(";")
        user, has_password, password = credentials.partition(":")
        fields["username"] = unquote(user)
        if has_password:
            fields["password"] = unquote(password)
        for param in url_params:
            key, _, value = param.partition("=")
            if normalize_key(key) == "fingerprint":
                fields["fingerprint"] = unquote(value)
            else:
                raise ConfigurationError(f"Unknown server URL parameter '{key}' in '{url}'")

    if protocol is Protocol.WEBDAV and slash:
        fields["root_path"] = unquote("/" + path)

    return fields


# -- raw settings understood by the backends -------------------------------------

KNOWN_RAW_SETTINGS = {
    "passive_mode": parse_bool,
    "encoding": lambda name, value: str(value),
    "allow_agent": parse_bool,
    "look_for_keys": parse_bool,
    "scp_command": lambda name, value: str(value),
    "keepalive_seconds": parse_int,
}


class ConnectParams:
    """
    Connection parameters for an FTPFileSystem session.

    The identity accessors route by protocol: for SFTP/SCP ``fingerprint``,
    ``accept_any`` and ``private_key_path`` are the SSH host key fingerprint,
    the accept-any-host-key switch and the SSH private key; for FTP/WebDAV
    they are the TLS certificate fingerprint, the accept-any-certificate
    switch and the TLS client certificate. Changing ``protocol`` re-routes
    later accessor calls.
    """

    # Order matters: typed fields are applied in this order by from_config.
    CONFIG_FIELDS = (
        "host",
        "port",
        "username",
        "password",
        "fingerprint",
        "accept_any",
        "private_key_path",
        "private_key_passphrase",
        "timeout_ms",
        "secure",
        "root_path",
    )

    def __init__(self, protocol: Protocol | str = Protocol.SFTP, **fields: Any):
        self._options = SessionOptions(parse_protocol(protocol))
        for key, value in fields.items():
            if key not in self.CONFIG_FIELDS:
                raise TypeError(f"Unknown connect parameter: {key}")
            self.set_field(key, value)

    @classmethod
    def from_config(
        cls,
        attributes: Mapping[str, Any],
        raw_settings: Mapping[str, Any] | None = None,
    ) -> ConnectParams:
        """
        Build parameters from configuration attributes.

        Precedence, lowest to highest: fields parsed from ``server_url``, the
        explicit ``protocol`` attribute, the typed attributes, then
        ``raw_settings`` (which may override any typed field; other raw keys
        are forwarded to the backend verbatim).

        Raises:
            ConfigurationError: On a malformed URL or an unparseable value.
        """
        params = cls()
        attrs = {normalize_key(k): v for k, v in attributes.items()}

        server_url = attrs.pop("server_url", None)
        if server_url is not None and str(server_url).strip():
            params.apply_server_url(str(server_url))

        protocol = attrs.pop("protocol", None)
        if protocol is not None and str(protocol).strip():
            params.protocol = protocol

        for key in cls.CONFIG_FIELDS:
            value = attrs.pop(key, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            params.set_field(key, value)

        for key in attrs:
            logger.debug("Ignoring unknown session attribute: %s", key)

        if raw_settings:
            for key, value in raw_settings.items():
                params.add_raw_setting(key, value)

        return params

    @classmethod
    def from_url(cls, url: str) -> ConnectParams:
        params = cls()
        params.apply_server_url(url)
        return params

    def apply_server_url(self, url: str) -> None:
        fields = parse_server_url(url)
        self.protocol = fields.pop("protocol")
        for key, value in fields.items():
            self.set_field(key, value)

    def set_field(self, key: str, value: Any) -> None:
        """Set a typed field by its configuration name, converting strings."""
        if key in ("port", "timeout_ms"):
            value = parse_int(key, value)
        elif key == "accept_any":
            value = parse_bool(key, value)
        elif key == "secure":
            value = parse_secure(value)
        elif value is not None:
            value = str(value)
        setattr(self, key, value)

    def add_raw_setting(self, name: str, value: Any) -> None:
        key = normalize_key(name)
        if key in self.CONFIG_FIELDS:
            self.set_field(key, value)
        elif key in KNOWN_RAW_SETTINGS:
            self._options.raw_settings[key] = KNOWN_RAW_SETTINGS[key](key, value)
        else:
            self._options.raw_settings[name] = value

    # -- plain fields ------------------------------------------------------------

    @property
    def options(self) -> SessionOptions:
        return self._options

    @property
    def protocol(self) -> Protocol:
        return self._options.protocol

    @protocol.setter
    def protocol(self, value: Protocol | str) -> None:
        self._options.protocol = parse_protocol(value)

    @property
    def host(self) -> str:
        return self._options.host_name

    @host.setter
    def host(self, value: str) -> None:
        self._options.host_name = value or ""

    @property
    def port(self) -> int:
        return self._options.port_number

    @port.setter
    def port(self, value: int) -> None:
        self._options.port_number = value

    @property
    def username(self) -> str:
        return self._options.user_name

    @username.setter
    def username(self, value: str) -> None:
        self._options.user_name = value or ""

    @property
    def password(self) -> str:
        return self._options.password

    @password.setter
    def password(self, value: str) -> None:
        self._options.password = value or ""

    @property
    def private_key_passphrase(self) -> str:
        return self._options.private_key_passphrase

    @private_key_passphrase.setter
    def private_key_passphrase(self, value: str) -> None:
        self._options.private_key_passphrase = value or ""

    @property
    def timeout_ms(self) -> int:
        return self._options.timeout_ms

    @timeout_ms.setter
    def timeout_ms(self, value: int) -> None:
        self._options.timeout_ms = max(0, value)

    @property
    def raw_settings(self) -> dict[str, Any]:
        return self._options.raw_settings

    # -- protocol routed fields --------------------------------------------------

    @property
    def fingerprint(self) -> str:
        security = self._options.security
        if isinstance(security, SshSecurity):
            return security.host_key_fingerprint
        return security.certificate_fingerprint

    @fingerprint.setter
    def fingerprint(self, value: str) -> None:
        security = self._options.security
        if isinstance(security, SshSecurity):
            security.host_key_fingerprint = value or ""
        else:
            security.certificate_fingerprint = value or ""

    @property
    def accept_any(self) -> bool:
        security = self._options.security
        if isinstance(security, SshSecurity):
            return security.accept_any_host_key
        return security.accept_any_certificate

    @accept_any.setter
    def accept_any(self, value: bool) -> None:
        security = self._options.security
        if isinstance(security, SshSecurity):
            security.accept_any_host_key = value
        else:
            security.accept_any_certificate = value

    @property
    def private_key_path(self) -> str:
        security = self._options.security
        if isinstance(security, SshSecurity):
            return security.private_key_path
        return security.client_certificate_path

    @private_key_path.setter
    def private_key_path(self, value: str) -> None:
        security = self._options.security
        if isinstance(security, SshSecurity):
            security.private_key_path = value or ""
        else:
            security.client_certificate_path = value or ""

    @property
    def secure(self) -> FtpSecure:
        security = self._options.security
        if isinstance(security, SshSecurity):
            return FtpSecure.IMPLICIT
        if isinstance(security, WebdavSecurity):
            return FtpSecure.IMPLICIT if security.secure else FtpSecure.NONE
        return security.secure

    @secure.setter
    def secure(self, value: FtpSecure) -> None:
        # SSH transports are always encrypted; nothing to set.
        security = self._options.security
        if isinstance(security, WebdavSecurity):
            security.secure = value is not FtpSecure.NONE
        elif isinstance(security, FtpSecurity):
            security.secure = value

    @property
    def root_path(self) -> str:
        security = self._options.security
        return security.root if isinstance(security, WebdavSecurity) else ""

    @root_path.setter
    def root_path(self, value: str) -> None:
        security = self._options.security
        if isinstance(security, WebdavSecurity):
            security.root = value or ""

    def __repr__(self) -> str:
        return f"ConnectParams({self._options!r})"
