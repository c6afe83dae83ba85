"""
Session and handle types for the remote file system.

A session owns exactly one RemoteConnection. Its parameters are validated
when the session is constructed, before any network I/O; open() then
connects with the resolved options.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .errors import ConnectionFailure, ConnectionValidationError
from .params import ConnectParams
from .remote import FilePermissions, RemoteConnection, RemoteFileInfo, open_connection
from .vfs import FileSystemSession

if TYPE_CHECKING:
    from .filesystem import FTPFileSystem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteHandle:
    """Point-in-time snapshot of one remote entry. May be stale."""

    full_name: str
    name: str
    length: int = 0
    last_write_time: datetime | None = None
    permissions: FilePermissions = field(default_factory=FilePermissions)
    is_directory: bool = False

    @classmethod
    def from_file_info(cls, info: RemoteFileInfo) -> RemoteHandle:
        return cls(
            full_name=info.full_name,
            name=info.name,
            length=info.length,
            last_write_time=info.last_write_time,
            permissions=info.permissions,
            is_directory=info.is_directory,
        )


class FTPFileSystemSession(FileSystemSession[RemoteHandle]):
    """
    A session against one remote server.

    Not safe for concurrent use; open more sessions for parallel work.
    """

    def __init__(self, file_system: FTPFileSystem, connect_params: ConnectParams):
        super().__init__(file_system, connect_params)
        self._connection: RemoteConnection | None = None

    def validate_connect_params(self, connect_params: Any) -> None:
        """
        Check the parameters before anything is opened.

        Raises:
            ConnectionValidationError: If params are missing or not ConnectParams,
                or host, username, or a fingerprint/accept-any choice is missing.
        """
        super().validate_connect_params(connect_params)
        if connect_params is None:
            raise ConnectionValidationError("Connection parameters are required")
        if not isinstance(connect_params, ConnectParams):
            raise ConnectionValidationError(
                f"Expected ConnectParams, got {type(connect_params).__name__}"
            )
        if not connect_params.host:
            raise ConnectionValidationError("Host name is required")
        if not connect_params.username:
            raise ConnectionValidationError("User name is required")
        if not connect_params.accept_any and not connect_params.fingerprint:
            raise ConnectionValidationError(
                "A fingerprint is required unless accept_any is enabled"
            )

    @property
    def connection(self) -> RemoteConnection:
        """The open connection. Raises ConnectionFailure when not open."""
        if self._connection is None or not self._connection.opened:
            raise ConnectionFailure("Session is not open")
        return self._connection

    @property
    def is_open(self) -> bool:
        return self._connection is not None and self._connection.opened

    def open(self) -> None:
        """
        Open the underlying connection.

        Raises:
            ConnectionFailure: If the session was closed or the server is unreachable.
            AuthenticationFailure: If the credentials are rejected.
        """
        if self.closed:
            raise ConnectionFailure("Session is closed")
        if self._connection is not None:
            return
        options = self.connect_params.options
        logger.debug("Opening session: %r", options)
        self._connection = open_connection(options)

    def release(self) -> None:
        if self._connection is not None:
            logger.debug("Closing session to %s", self.connect_params.host)
            self._connection.close()
            self._connection = None

    # -- protocol operations -------------------------------------------------------

    def stat(self, path: str) -> RemoteHandle:
        return RemoteHandle.from_file_info(self.connection.get_file_info(path))

    def list(self, path: str, recursive: bool = False) -> Iterator[RemoteHandle]:
        """
        Entries below path without ``.`` and ``..``.

        With recursive=True every descendant file and directory is produced
        depth first; directories are listed only as iteration reaches them.
        """
        connection = self.connection
        return (
            RemoteHandle.from_file_info(info)
            for info in connection.enumerate_remote_files(path, recursive)
        )

    def create_directory(self, parent_path: str, name: str) -> RemoteHandle:
        path = self.combine_path(parent_path, name)
        self.connection.create_directory(path)
        return self.stat(path)

    def put_file(self, local_path: str, remote_path: str, remove_local_after: bool = False) -> RemoteHandle:
        """Upload a local file and return the handle of the uploaded entry."""
        self.connection.put_files(local_path, remote_path, remove=remove_local_after).check()
        return self.stat(remote_path)

    def get_file(self, remote_path: str, local_path: str) -> None:
        self.connection.get_files(remote_path, local_path).check()

    def remove(self, path: str) -> None:
        self.connection.remove_files(path).check()

    def move(self, old_path: str, new_path: str) -> None:
        self.connection.move_file(old_path, new_path)

    @staticmethod
    def combine_path(path1: str, path2: str) -> str:
        return RemoteConnection.combine_paths(path1, path2)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open" if self.is_open else "new"
        return f"FTPFileSystemSession({self.connect_params!r}, {state})"
