"""
SFTP backend using paramiko.

SSHConnection owns the SSH transport (host key verification, authentication,
keepalive) and is shared with the SCP backend; SFTPConnection layers the SFTP
subsystem on top of it.
"""

import base64
import hashlib
import logging
import os
import stat
from datetime import datetime

import paramiko

from .errors import (
    AuthenticationFailure,
    ConnectionFailure,
    RemoteFileNotFound,
    RemotePermissionDenied,
    TransferFailure,
)
from .params import SessionOptions
from .remote import (
    FilePermissions,
    RemoteConnection,
    RemoteFileInfo,
    TransferMode,
    TransferOptions,
    normalize_hex_fingerprint,
)

logger = logging.getLogger(__name__)


def host_key_fingerprints(key: paramiko.PKey) -> tuple[str, str]:
    """(SHA-256 base64 without padding, MD5 hex) of a host key."""
    blob = key.asbytes()
    sha256 = base64.b64encode(hashlib.sha256(blob).digest()).decode("ascii").rstrip("=")
    md5 = hashlib.md5(blob).hexdigest()
    return sha256, md5


class HostKeyFingerprintPolicy(paramiko.MissingHostKeyPolicy):
    """
    Host key policy pinned to a configured fingerprint.

    Accepts ``SHA256:<base64>`` (OpenSSH style, optionally prefixed with the
    key type and size as WinSCP prints it) or an MD5 hex fingerprint with or
    without colons. No known_hosts file is consulted.
    """

    def __init__(self, fingerprint: str, accept_any: bool = False):
        self.fingerprint = fingerprint.strip()
        self.accept_any = accept_any

    def missing_host_key(self, client, hostname, key):
        if self.accept_any:
            logger.warning("Accepting any host key for %s", hostname)
            return

        sha256, md5 = host_key_fingerprints(key)
        if self.matches(sha256, md5):
            logger.debug("Host key for %s matches configured fingerprint", hostname)
            return

        raise paramiko.SSHException(
            f"Host key for {hostname} does not match the configured fingerprint. "
            f"Server presented {key.get_name()} SHA256:{sha256}"
        )

    def matches(self, sha256: str, md5: str) -> bool:
        if not self.fingerprint:
            return False
        if sha256 in self.fingerprint:
            return True
        # MD5 form, possibly preceded by "ssh-rsa 2048 "
        return normalize_hex_fingerprint(self.fingerprint.split()[-1]) in (md5, "md5" + md5)


def translate_io_error(error: OSError, path: str) -> TransferFailure:
    """Translate SFTP IOError to the package's transfer errors."""
    errno = getattr(error, "errno", None)
    if errno == 2:  # ENOENT
        return RemoteFileNotFound(f"No such file or directory: {path}")
    elif errno == 13:  # EACCES
        return RemotePermissionDenied(f"Permission denied: {path}")
    elif errno == 39 or errno == 66:  # ENOTEMPTY
        return TransferFailure(f"Directory not empty: {path}")
    else:
        return TransferFailure(f"{path}: {error}")


class SSHConnection(RemoteConnection):
    """SSH transport shared by the SFTP and SCP backends."""

    def __init__(self, options: SessionOptions):
        super().__init__(options)
        self._ssh: paramiko.SSHClient | None = None

    @property
    def opened(self) -> bool:
        return self._ssh is not None

    def open(self) -> None:
        """
        Establish the SSH connection and start the file transfer channel.

        Raises:
            AuthenticationFailure: If the server rejects the credentials.
            ConnectionFailure: If the server is unreachable or its host key does not match.
        """
        options = self.options
        security = options.security
        host, port = options.host_name, options.effective_port

        try:
            self._ssh = paramiko.SSHClient()
            self._ssh.set_missing_host_key_policy(
                HostKeyFingerprintPolicy(
                    security.host_key_fingerprint, security.accept_any_host_key
                )
            )

            timeout = options.timeout_seconds
            connect_kwargs: dict = {
                "hostname": host,
                "port": port,
                "timeout": timeout,
                "banner_timeout": timeout,
                "auth_timeout": timeout,
            }

            if options.user_name:
                connect_kwargs["username"] = options.user_name

            # Auth priority: key file -> password -> agent/default keys
            if security.private_key_path:
                key_path = os.path.expanduser(security.private_key_path)
                connect_kwargs["key_filename"] = key_path
                if options.private_key_passphrase:
                    connect_kwargs["passphrase"] = options.private_key_passphrase
                if options.password:
                    connect_kwargs["password"] = options.password
                look_for_keys = True
                logger.debug("Connecting to SSH %s:%d with key file: %s", host, port, key_path)
            elif options.password:
                connect_kwargs["password"] = options.password
                look_for_keys = False
                logger.debug("Connecting to SSH %s:%d with password", host, port)
            else:
                look_for_keys = True
                logger.debug("Connecting to SSH %s:%d with agent/default keys", host, port)

            raw = options.raw_settings
            connect_kwargs["look_for_keys"] = raw.get("look_for_keys", look_for_keys)
            connect_kwargs["allow_agent"] = raw.get("allow_agent", look_for_keys)

            self._ssh.connect(**connect_kwargs)

            keepalive = raw.get("keepalive_seconds", 0)
            if keepalive:
                self._ssh.get_transport().set_keepalive(keepalive)

            self._start_channel()
            logger.info("Connected to SSH server %s:%d", host, port)

        except paramiko.AuthenticationException as e:
            self._cleanup_connections()
            logger.error("SSH authentication failed: %s", e)
            raise AuthenticationFailure(f"SSH authentication failed: {e}") from e
        except TimeoutError as e:
            self._cleanup_connections()
            logger.error("SSH connection timeout: %s", e)
            raise ConnectionFailure(f"SSH connection timeout: {e}") from e
        except ConnectionFailure:
            self._cleanup_connections()
            raise
        except OSError as e:
            self._cleanup_connections()
            logger.error("SSH connection failed: %s", e)
            raise ConnectionFailure(f"SSH connection to {host}:{port} failed: {e}") from e
        except paramiko.SSHException as e:
            self._cleanup_connections()
            logger.error("SSH error: %s", e)
            raise ConnectionFailure(f"SSH error: {e}") from e

    def _start_channel(self) -> None:
        """Open the protocol channel once the transport is authenticated."""

    def _cleanup_connections(self) -> None:
        if self._ssh:
            self._ssh.close()
            self._ssh = None

    def close(self) -> None:
        if self._ssh is None:
            return
        self._cleanup_connections()
        logger.debug("SSH connection closed")


class SFTPConnection(SSHConnection):
    """SFTP backend: every operation maps to one SFTP request."""

    def __init__(self, options: SessionOptions):
        super().__init__(options)
        self._sftp: paramiko.SFTPClient | None = None

    @property
    def opened(self) -> bool:
        return self._sftp is not None

    def _start_channel(self) -> None:
        self._sftp = self._ssh.open_sftp()
        self._home = self._sftp.normalize(".") or "/"

    def _cleanup_connections(self) -> None:
        if self._sftp:
            self._sftp.close()
            self._sftp = None
        super()._cleanup_connections()

    def _run(self, operation: str, path: str, func, *args):
        """Run an SFTP call, translating IOError and channel errors."""
        self._ensure_open()
        try:
            return func(*args)
        except TransferFailure:
            raise
        except OSError as e:
            logger.debug("%s failed: %s", operation, e)
            raise translate_io_error(e, path) from e
        except paramiko.SSHException as e:
            logger.error("%s failed: %s", operation, e)
            raise TransferFailure(f"{operation} failed: {e}") from e

    @staticmethod
    def _attr_to_info(full_name: str, attr: paramiko.SFTPAttributes) -> RemoteFileInfo:
        is_dir = stat.S_ISDIR(attr.st_mode) if attr.st_mode else False
        return RemoteFileInfo.for_path(
            full_name,
            length=attr.st_size if attr.st_size and not is_dir else 0,
            last_write_time=datetime.fromtimestamp(attr.st_mtime) if attr.st_mtime else None,
            is_directory=is_dir,
            permissions=FilePermissions.from_mode(attr.st_mode) if attr.st_mode else FilePermissions(),
        )

    def get_file_info(self, path: str) -> RemoteFileInfo:
        path = self.absolute_path(path)
        logger.debug("Getting file info: %s", path)
        attr = self._run(f"get_file_info({path})", path, lambda: self._sftp.stat(path))
        return self._attr_to_info(path, attr)

    def list_directory(self, path: str) -> list[RemoteFileInfo]:
        path = self.absolute_path(path)
        logger.debug("Listing directory: %s", path)
        attrs = self._run(f"list_directory({path})", path, lambda: self._sftp.listdir_attr(path))

        results = [
            self._attr_to_info(self.combine_paths(path, attr.filename), attr)
            for attr in attrs
            if attr.filename not in (".", "..")
        ]
        logger.debug("Listed %d entries in %s", len(results), path)
        return results

    def create_directory(self, path: str) -> None:
        path = self.absolute_path(path)
        logger.debug("Creating directory: %s", path)
        self._run(f"create_directory({path})", path, lambda: self._sftp.mkdir(path))

    def move_file(self, old_path: str, new_path: str) -> None:
        old_path = self.absolute_path(old_path)
        new_path = self.absolute_path(new_path)
        logger.debug("Renaming: %s -> %s", old_path, new_path)
        self._run(
            f"rename({old_path}, {new_path})", old_path, lambda: self._sftp.rename(old_path, new_path)
        )

    def _upload(self, local_path: str, remote_path: str, options: TransferOptions) -> None:
        if options.transfer_mode is TransferMode.ASCII:
            logger.debug("SFTP has no ASCII mode, uploading %s as binary", local_path)
        self._run(
            f"upload({remote_path})", remote_path, lambda: self._sftp.put(local_path, remote_path)
        )

    def _download(self, remote_path: str, local_path: str, options: TransferOptions) -> None:
        if options.transfer_mode is TransferMode.ASCII:
            logger.debug("SFTP has no ASCII mode, downloading %s as binary", remote_path)
        self._run(
            f"download({remote_path})", remote_path, lambda: self._sftp.get(remote_path, local_path)
        )

    def _remove(self, info: RemoteFileInfo) -> None:
        path = info.full_name
        if info.is_directory:
            logger.debug("Deleting directory: %s", path)
            self._run(f"delete_dir({path})", path, lambda: self._sftp.rmdir(path))
        else:
            logger.debug("Deleting file: %s", path)
            self._run(f"delete_file({path})", path, lambda: self._sftp.remove(path))
