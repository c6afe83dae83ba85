"""
Remote connection interface.

Defines the surface every protocol backend (FTP, SFTP, SCP, WebDAV) offers to
the session layer: structured RemoteFileInfo records, directory listing and
enumeration, and file transfers that report through result objects with a
check-or-raise contract.
"""

from __future__ import annotations

import hashlib
import logging
import os
import posixpath
import stat
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .errors import ConnectionFailure, RemoteFileNotFound, TransferFailure
from .params import Protocol, SessionOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilePermissions:
    """Permission bits of a remote entry.

    ``octal`` is None when the server does not report a Unix mode; in that
    case ``user_write`` reflects whatever write permission the server
    advertised (or True when it advertised nothing).
    """

    octal: int | None = None
    user_write: bool = True

    @classmethod
    def from_mode(cls, mode: int) -> FilePermissions:
        return cls(octal=stat.S_IMODE(mode), user_write=bool(mode & stat.S_IWUSR))

    @classmethod
    def from_text(cls, text: str) -> FilePermissions:
        """Parse an ``ls -l`` style string such as ``drwxr-xr-x``."""
        bits = text[1:10] if len(text) >= 10 else text
        if len(bits) != 9:
            return cls()
        mode = 0
        for index, char in enumerate(bits):
            if char not in "-STL":
                mode |= 1 << (8 - index)
        return cls(octal=mode, user_write=bits[1] == "w")


def leaf_name(path: str) -> str:
    """Last path component; empty for the root directory."""
    return posixpath.basename(path.rstrip("/")) if path.strip("/") else ""


@dataclass(frozen=True)
class RemoteFileInfo:
    """Metadata of one remote entry as reported by a backend."""

    full_name: str
    name: str
    length: int = 0
    last_write_time: datetime | None = None
    is_directory: bool = False
    permissions: FilePermissions = field(default_factory=FilePermissions)

    @property
    def is_this_directory(self) -> bool:
        return self.name == "."

    @property
    def is_parent_directory(self) -> bool:
        return self.name == ".."

    @classmethod
    def for_path(cls, full_name: str, **kwargs) -> RemoteFileInfo:
        return cls(full_name=full_name, name=leaf_name(full_name), **kwargs)


class TransferMode(str, Enum):
    BINARY = "binary"
    ASCII = "ascii"


@dataclass(frozen=True)
class TransferOptions:
    transfer_mode: TransferMode = TransferMode.BINARY
    overwrite: bool = True


@dataclass
class OperationResult:
    """Outcome of a remote operation; check() raises the first failure."""

    failures: list[TransferFailure] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return not self.failures

    def check(self) -> None:
        if self.failures:
            raise self.failures[0]


@dataclass
class TransferOperationResult(OperationResult):
    transfers: list[str] = field(default_factory=list)


@dataclass
class RemovalOperationResult(OperationResult):
    removals: list[str] = field(default_factory=list)


def normalize_hex_fingerprint(text: str) -> str:
    """Lower-case hex digest with separators and an algorithm prefix removed."""
    value = text.strip().lower()
    for prefix in ("sha256:", "sha-256:", "sha1:", "sha-1:"):
        if value.startswith(prefix):
            value = value[len(prefix) :]
    for separator in (":", "-", " "):
        value = value.replace(separator, "")
    return value


def certificate_matches(der_certificate: bytes, expected: str) -> bool:
    """True when expected is the SHA-256 or SHA-1 fingerprint of the certificate."""
    wanted = normalize_hex_fingerprint(expected)
    return wanted in (
        hashlib.sha256(der_certificate).hexdigest(),
        hashlib.sha1(der_certificate).hexdigest(),
    )


class RemoteConnection(ABC):
    """
    One live connection to a remote server.

    Subclasses implement the protocol primitives; this class turns them into
    the transfer operations with result objects, recursive enumeration and
    path handling. A connection is not safe for concurrent use.
    """

    def __init__(self, options: SessionOptions):
        self.options = options
        self._home = "/"

    @property
    @abstractmethod
    def opened(self) -> bool: ...

    @abstractmethod
    def open(self) -> None:
        """Connect and authenticate.

        Raises:
            AuthenticationFailure: If the server rejects the credentials.
            ConnectionFailure: If the server is unreachable or not trusted.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the connection. Safe to call more than once."""

    @abstractmethod
    def get_file_info(self, path: str) -> RemoteFileInfo:
        """
        Get metadata for a single file or directory.

        Raises:
            RemoteFileNotFound: If path does not exist.
        """

    @abstractmethod
    def list_directory(self, path: str) -> list[RemoteFileInfo]:
        """Direct children of a directory."""

    @abstractmethod
    def create_directory(self, path: str) -> None: ...

    @abstractmethod
    def move_file(self, old_path: str, new_path: str) -> None: ...

    @abstractmethod
    def _upload(self, local_path: str, remote_path: str, options: TransferOptions) -> None: ...

    @abstractmethod
    def _download(self, remote_path: str, local_path: str, options: TransferOptions) -> None: ...

    @abstractmethod
    def _remove(self, info: RemoteFileInfo) -> None:
        """Delete one file or one empty directory."""

    def _ensure_open(self) -> None:
        if not self.opened:
            raise ConnectionFailure(f"{type(self).__name__} is not open")

    @staticmethod
    def combine_paths(path1: str, path2: str) -> str:
        return posixpath.join(path1, path2)

    def absolute_path(self, path: str) -> str:
        """Resolve path against the home directory captured at open time."""
        path = path.replace("\\", "/")
        if not path.startswith("/"):
            path = posixpath.join(self._home, path)
        path = posixpath.normpath(path)
        if path.startswith("//"):
            path = "/" + path.lstrip("/")
        return path

    def enumerate_remote_files(self, path: str, recursive: bool = False) -> Iterator[RemoteFileInfo]:
        """
        Yield the entries below path, depth first when recursive.

        Each directory is listed when the iteration reaches it, so large trees
        are never materialized at once.
        """
        for info in self.list_directory(path):
            if info.is_this_directory or info.is_parent_directory:
                continue
            yield info
            if recursive and info.is_directory:
                yield from self.enumerate_remote_files(info.full_name, recursive=True)

    def _exists(self, remote_path: str) -> bool:
        try:
            self.get_file_info(remote_path)
            return True
        except RemoteFileNotFound:
            return False

    def put_files(
        self,
        local_path: str,
        remote_path: str,
        remove: bool = False,
        options: TransferOptions | None = None,
    ) -> TransferOperationResult:
        """Upload one local file; remove deletes the local file after success."""
        self._ensure_open()
        options = options or TransferOptions()
        remote_path = self.absolute_path(remote_path)
        result = TransferOperationResult()
        logger.debug("Uploading %s -> %s", local_path, remote_path)

        try:
            if not options.overwrite and self._exists(remote_path):
                raise TransferFailure(f"Remote file already exists: {remote_path}")
            self._upload(local_path, remote_path, options)
        except TransferFailure as e:
            logger.error("Upload of %s to %s failed: %s", local_path, remote_path, e)
            result.failures.append(e)
            return result
        except OSError as e:
            logger.error("Upload of %s failed: %s", local_path, e)
            failure = TransferFailure(f"Cannot upload {local_path}: {e}")
            failure.__cause__ = e
            result.failures.append(failure)
            return result

        result.transfers.append(remote_path)
        if remove:
            os.remove(local_path)
        logger.debug("Uploaded %s", remote_path)
        return result

    def get_files(
        self,
        remote_path: str,
        local_path: str,
        remove: bool = False,
        options: TransferOptions | None = None,
    ) -> TransferOperationResult:
        """Download one remote file; remove deletes the remote file after success."""
        self._ensure_open()
        options = options or TransferOptions()
        remote_path = self.absolute_path(remote_path)
        result = TransferOperationResult()
        logger.debug("Downloading %s -> %s", remote_path, local_path)

        try:
            if not options.overwrite and os.path.exists(local_path):
                raise TransferFailure(f"Local file already exists: {local_path}")
            self._download(remote_path, local_path, options)
            if remove:
                self._remove(self.get_file_info(remote_path))
        except TransferFailure as e:
            logger.error("Download of %s failed: %s", remote_path, e)
            result.failures.append(e)
            return result
        except OSError as e:
            logger.error("Download of %s to %s failed: %s", remote_path, local_path, e)
            failure = TransferFailure(f"Cannot download to {local_path}: {e}")
            failure.__cause__ = e
            result.failures.append(failure)
            return result

        result.transfers.append(local_path)
        logger.debug("Downloaded %s", remote_path)
        return result

    def remove_files(self, path: str) -> RemovalOperationResult:
        """Remove a file or an empty directory."""
        self._ensure_open()
        path = self.absolute_path(path)
        result = RemovalOperationResult()
        try:
            self._remove(self.get_file_info(path))
        except TransferFailure as e:
            logger.error("Removal of %s failed: %s", path, e)
            result.failures.append(e)
            return result
        result.removals.append(path)
        logger.debug("Removed %s", path)
        return result


def connection_class_for(protocol: Protocol) -> type[RemoteConnection]:
    """Backend class for a protocol."""
    if protocol is Protocol.SFTP:
        from .sftp_client import SFTPConnection

        return SFTPConnection
    if protocol is Protocol.SCP:
        from .scp_client import SCPConnection

        return SCPConnection
    if protocol is Protocol.FTP:
        from .ftp_client import FTPConnection

        return FTPConnection
    from .webdav_client import WebDAVConnection

    return WebDAVConnection


def open_connection(options: SessionOptions) -> RemoteConnection:
    """Create and open the backend for options.protocol."""
    connection = connection_class_for(options.protocol)(options)
    connection.open()
    return connection
