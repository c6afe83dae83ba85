"""
FTPFileSystem: the generic file system contract over a remote server.

Every item wraps a RemoteHandle snapshot; operations that change remote
state go through the item's FTPFileSystemSession and return items built
from a fresh stat.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from datetime import datetime

from .capabilities import FTP_CAPABILITIES
from .errors import NotSupportedOperation
from .params import ConnectParams
from .session import FTPFileSystemSession, RemoteHandle
from .stream import FTPFileSystemStream
from .vfs import (
    DisposeAction,
    FileSystem,
    FileSystemCapabilities,
    FileSystemDirectory,
    FileSystemFile,
    FileSystemSessionItem,
    FileSystemStream,
)

logger = logging.getLogger(__name__)

Item = FileSystemSessionItem[RemoteHandle]
Directory = FileSystemDirectory[RemoteHandle]
File = FileSystemFile[RemoteHandle]


class FTPFileSystem(FileSystem[RemoteHandle]):
    """
    File system backed by an SFTP, SCP, FTP(S) or WebDAV server.

    Args:
        name: Name of this file system instance.
        default_connect_params: Used by start_session() when no params are given.
        bypass_readonly: Report every item as writable regardless of permissions.
    """

    def __init__(
        self,
        name: str = "ftp",
        default_connect_params: ConnectParams | None = None,
        bypass_readonly: bool = False,
    ):
        super().__init__(name, default_connect_params)
        self.bypass_readonly = bypass_readonly

    @property
    def general_capabilities(self) -> FileSystemCapabilities:
        return FTP_CAPABILITIES

    @property
    def instance_capabilities(self) -> FileSystemCapabilities:
        return FTP_CAPABILITIES

    def start_session(self, params: ConnectParams | None = None) -> FTPFileSystemSession:
        """
        Validate params and open a session.

        Raises:
            ConnectionValidationError: If the params are incomplete.
            ConnectionFailure: If the connection cannot be opened.
        """
        session = FTPFileSystemSession(self, params or self.default_connect_params)
        try:
            session.open()
        except Exception:
            session.close()
            raise
        logger.info("Session started on %s for %s", self.name, session.connect_params.host)
        return session

    # -- item construction --------------------------------------------------------

    def _item_for(self, session: FTPFileSystemSession, handle: RemoteHandle) -> Item:
        name = handle.name
        parent_path = handle.full_name[: len(handle.full_name) - len(name)] if name else ""
        if handle.is_directory:
            return FileSystemDirectory(session, parent_path, name, handle)
        return FileSystemFile(session, parent_path, name, handle)

    def navigate(self, session: FTPFileSystemSession, path: str) -> Item:
        return self._item_for(session, session.stat(path))

    def _child_path(self, parent_path: str, name: str) -> str:
        if not name or any(c in name for c in "/\\"):
            raise ValueError(f"Not a plain file name: {name!r}")
        return self.combine_paths(parent_path, name)

    def create_directory(self, directory: Directory, name: str) -> Directory:
        session = directory.session
        self._child_path(directory.path, name)
        handle = session.create_directory(directory.path, name)
        return self._item_for(session, handle)

    def create_file(self, directory: Directory, name: str, size: int = 0) -> File:
        """Create a zero-filled file of size bytes by uploading a scratch copy."""
        session = directory.session
        remote_path = self._child_path(directory.path, name)

        fd, scratch_path = tempfile.mkstemp(prefix="ftp_vfs_", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                if size > 0:
                    f.truncate(size)
            handle = session.put_file(scratch_path, remote_path, remove_local_after=True)
        finally:
            if os.path.exists(scratch_path):
                os.remove(scratch_path)

        return self._item_for(session, handle)

    def create_file_from_local(
        self, directory: Directory, name: str, local_path: str, readonly: bool = False
    ) -> File:
        # readonly is not applied to the uploaded file
        session = directory.session
        remote_path = self._child_path(directory.path, name)
        handle = session.put_file(local_path, remote_path)
        return self._item_for(session, handle)

    def delete_item(self, item: Item) -> None:
        item.session.remove(item.path)

    def list_file_names(self, directory: Directory, recursive: bool = False) -> Iterator[str]:
        session = directory.session
        return (
            handle.name
            for handle in session.list(directory.path, recursive)
            if not handle.is_directory
        )

    def list_subdirectory_names(self, directory: Directory, recursive: bool = False) -> Iterator[str]:
        session = directory.session
        return (
            handle.name
            for handle in session.list(directory.path, recursive)
            if handle.is_directory and handle.name not in (".", "..")
        )

    def rename_item(self, item: Item, new_name: str) -> bool:
        new_path = self._child_path(item.parent_path, new_name)
        logger.debug("Renaming %s -> %s", item.path, new_path)
        item.session.move(item.path, new_path)
        return True

    # -- metadata -----------------------------------------------------------------

    def get_item_size(self, item: Item) -> int:
        return item.handle.length

    def get_modification_timestamp(self, item: Item) -> datetime | None:
        return item.handle.last_write_time

    def get_last_access_timestamp(self, item: Item) -> datetime | None:
        raise NotSupportedOperation("Last access timestamps are not supported")

    def get_creation_timestamp(self, item: Item) -> datetime | None:
        raise NotSupportedOperation("Creation timestamps are not supported")

    def set_modification_timestamp(self, item: Item, timestamp: datetime) -> None:
        raise NotSupportedOperation("Setting the modification timestamp is not supported")

    def set_last_access_timestamp(self, item: Item, timestamp: datetime) -> None:
        raise NotSupportedOperation("Setting the last access timestamp is not supported")

    def set_creation_timestamp(self, item: Item, timestamp: datetime) -> None:
        raise NotSupportedOperation("Setting the creation timestamp is not supported")

    def get_readonly(self, item: Item) -> bool:
        if self.bypass_readonly:
            return False
        return not item.handle.permissions.user_write

    def set_readonly(self, item: Item, readonly: bool) -> None:
        raise NotSupportedOperation("Changing the readonly flag is not supported")

    def get_metadata_stream(
        self, item: Item, dispose_action: DisposeAction | None = None
    ) -> FileSystemStream:
        raise NotSupportedOperation("Metadata streams are not supported")

    def get_permissions_stream(
        self, item: Item, dispose_action: DisposeAction | None = None
    ) -> FileSystemStream:
        raise NotSupportedOperation("Permissions streams are not supported")

    def open_stream(self, file: File, dispose_action: DisposeAction | None = None) -> FTPFileSystemStream:
        return FTPFileSystemStream(file, dispose_action)
