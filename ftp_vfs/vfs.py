"""
Generic virtual file system contract.

Defines the pieces a pluggable file system implements: a FileSystem that
starts sessions, the Session that owns a connection, Directory/File items that
wrap an opaque per-implementation handle, and the Stream used for content.

Items and streams only hold state; every operation is delegated to the owning
FileSystem so that an implementation overrides one class.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

HandleT = TypeVar("HandleT")

DisposeAction = Callable[[Any], None]


@dataclass(frozen=True)
class FileSystemCapabilities:
    """Static description of what a file system kind supports."""

    supports_versioning: bool
    supports_transactions: bool
    max_file_path_length: int
    max_file_name_length: int
    max_directory_name_length: int
    max_file_size: int
    path_separator_characters: tuple[str, ...]
    is_readonly: bool
    supports_security: bool
    supports_custom_metadata: bool
    supports_directory_renaming: bool
    supports_file_renaming: bool
    supports_stream_seek: bool
    supports_file_modification: bool
    supports_creation_timestamps: bool
    supports_modification_timestamps: bool
    supports_last_access_timestamps: bool
    supports_readonly_directories: bool
    supports_readonly_files: bool
    supports_creation_user_names: bool
    supports_modification_user_names: bool
    supports_last_access_user_names: bool
    supports_file_sizes: bool
    supports_directory_sizes: bool
    supports_asynchronous_api: bool


class FileSystem(ABC, Generic[HandleT]):
    """Base class for a pluggable file system implementation."""

    def __init__(self, name: str, default_connect_params: Any = None):
        self.name = name
        self.default_connect_params = default_connect_params

    @property
    @abstractmethod
    def general_capabilities(self) -> FileSystemCapabilities: ...

    @property
    @abstractmethod
    def instance_capabilities(self) -> FileSystemCapabilities: ...

    @abstractmethod
    def start_session(self, params: Any = None) -> FileSystemSession[HandleT]: ...

    def combine_paths(self, parent: str | None, name: str) -> str:
        """Join a parent path and a leaf name with the primary separator."""
        separator = self.instance_capabilities.path_separator_characters[0]
        if not parent:
            return name or separator
        if parent.endswith(separator):
            return parent + name
        return parent + separator + name

    # -- operations delegated to by items -----------------------------------

    @abstractmethod
    def navigate(
        self, session: FileSystemSession[HandleT], path: str
    ) -> FileSystemSessionItem[HandleT]: ...

    @abstractmethod
    def create_directory(
        self, directory: FileSystemDirectory[HandleT], name: str
    ) -> FileSystemDirectory[HandleT]: ...

    @abstractmethod
    def create_file(
        self, directory: FileSystemDirectory[HandleT], name: str, size: int = 0
    ) -> FileSystemFile[HandleT]: ...

    @abstractmethod
    def create_file_from_local(
        self,
        directory: FileSystemDirectory[HandleT],
        name: str,
        local_path: str,
        readonly: bool = False,
    ) -> FileSystemFile[HandleT]: ...

    @abstractmethod
    def delete_item(self, item: FileSystemSessionItem[HandleT]) -> None: ...

    @abstractmethod
    def list_file_names(
        self, directory: FileSystemDirectory[HandleT], recursive: bool = False
    ) -> Iterator[str]: ...

    @abstractmethod
    def list_subdirectory_names(
        self, directory: FileSystemDirectory[HandleT], recursive: bool = False
    ) -> Iterator[str]: ...

    @abstractmethod
    def rename_item(self, item: FileSystemSessionItem[HandleT], new_name: str) -> bool: ...

    @abstractmethod
    def get_item_size(self, item: FileSystemSessionItem[HandleT]) -> int: ...

    @abstractmethod
    def get_modification_timestamp(
        self, item: FileSystemSessionItem[HandleT]
    ) -> datetime | None: ...

    @abstractmethod
    def get_last_access_timestamp(
        self, item: FileSystemSessionItem[HandleT]
    ) -> datetime | None: ...

    @abstractmethod
    def get_creation_timestamp(self, item: FileSystemSessionItem[HandleT]) -> datetime | None: ...

    @abstractmethod
    def set_modification_timestamp(
        self, item: FileSystemSessionItem[HandleT], timestamp: datetime
    ) -> None: ...

    @abstractmethod
    def set_last_access_timestamp(
        self, item: FileSystemSessionItem[HandleT], timestamp: datetime
    ) -> None: ...

    @abstractmethod
    def set_creation_timestamp(
        self, item: FileSystemSessionItem[HandleT], timestamp: datetime
    ) -> None: ...

    @abstractmethod
    def get_readonly(self, item: FileSystemSessionItem[HandleT]) -> bool: ...

    @abstractmethod
    def set_readonly(self, item: FileSystemSessionItem[HandleT], readonly: bool) -> None: ...

    @abstractmethod
    def get_metadata_stream(
        self, item: FileSystemSessionItem[HandleT], dispose_action: DisposeAction | None = None
    ) -> FileSystemStream: ...

    @abstractmethod
    def get_permissions_stream(
        self, item: FileSystemSessionItem[HandleT], dispose_action: DisposeAction | None = None
    ) -> FileSystemStream: ...

    @abstractmethod
    def open_stream(
        self, file: FileSystemFile[HandleT], dispose_action: DisposeAction | None = None
    ) -> FileSystemStream: ...


class FileSystemSession(ABC, Generic[HandleT]):
    """One user session against a file system.

    Connect parameters are validated in the constructor, before any
    subclass gets a chance to acquire resources.
    """

    def __init__(self, file_system: FileSystem[HandleT], connect_params: Any):
        self.validate_connect_params(connect_params)
        self.file_system = file_system
        self.connect_params = connect_params
        self._closed = False

    def validate_connect_params(self, connect_params: Any) -> None:
        """Raise if connect_params cannot be used. Subclasses extend this."""

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.release()

    @abstractmethod
    def release(self) -> None:
        """Free resources held by the session. Called once by close()."""

    def __getitem__(self, path: str) -> FileSystemSessionItem[HandleT]:
        return self.file_system.navigate(self, path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class FileSystemSessionItem(Generic[HandleT]):
    """A named entry reached through a session, wrapping an opaque handle."""

    def __init__(
        self,
        session: FileSystemSession[HandleT],
        parent_path: str | None,
        name: str,
        handle: HandleT,
    ):
        self.session = session
        self.parent_path = parent_path or ""
        self.name = name
        self._handle = handle

    @property
    def file_system(self) -> FileSystem[HandleT]:
        return self.session.file_system

    @property
    def handle(self) -> HandleT:
        return self._handle

    def replace_handle(self, handle: HandleT) -> None:
        """Swap in a newer snapshot after a state-changing operation."""
        self._handle = handle

    @property
    def path(self) -> str:
        return self.file_system.combine_paths(self.parent_path, self.name)

    def delete(self) -> None:
        self.file_system.delete_item(self)

    def rename(self, new_name: str) -> bool:
        renamed = self.file_system.rename_item(self, new_name)
        if renamed:
            self.name = new_name
        return renamed

    @property
    def size(self) -> int:
        return self.file_system.get_item_size(self)

    @property
    def modification_timestamp(self) -> datetime | None:
        return self.file_system.get_modification_timestamp(self)

    @property
    def last_access_timestamp(self) -> datetime | None:
        return self.file_system.get_last_access_timestamp(self)

    @property
    def creation_timestamp(self) -> datetime | None:
        return self.file_system.get_creation_timestamp(self)

    def set_modification_timestamp(self, timestamp: datetime) -> None:
        self.file_system.set_modification_timestamp(self, timestamp)

    def set_last_access_timestamp(self, timestamp: datetime) -> None:
        self.file_system.set_last_access_timestamp(self, timestamp)

    def set_creation_timestamp(self, timestamp: datetime) -> None:
        self.file_system.set_creation_timestamp(self, timestamp)

    @property
    def readonly(self) -> bool:
        return self.file_system.get_readonly(self)

    @readonly.setter
    def readonly(self, value: bool) -> None:
        self.file_system.set_readonly(self, value)

    def metadata_stream(self) -> FileSystemStream:
        return self.file_system.get_metadata_stream(self)

    def permissions_stream(self) -> FileSystemStream:
        return self.file_system.get_permissions_stream(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"


class FileSystemDirectory(FileSystemSessionItem[HandleT]):
    """A directory entry."""

    @property
    def file_names(self) -> Iterator[str]:
        return self.file_system.list_file_names(self, False)

    @property
    def sub_directory_names(self) -> Iterator[str]:
        return self.file_system.list_subdirectory_names(self, False)

    def get_file_names(self, recursive: bool = False) -> Iterator[str]:
        return self.file_system.list_file_names(self, recursive)

    def get_sub_directory_names(self, recursive: bool = False) -> Iterator[str]:
        return self.file_system.list_subdirectory_names(self, recursive)

    def create_directory(self, name: str) -> FileSystemDirectory[HandleT]:
        return self.file_system.create_directory(self, name)

    def create_file(self, name: str, size: int = 0) -> FileSystemFile[HandleT]:
        return self.file_system.create_file(self, name, size)

    def create_file_from_local(
        self, name: str, local_path: str, readonly: bool = False
    ) -> FileSystemFile[HandleT]:
        return self.file_system.create_file_from_local(self, name, local_path, readonly)

    def get_file(self, name: str) -> FileSystemFile[HandleT]:
        item = self.session[self.file_system.combine_paths(self.path, name)]
        if not isinstance(item, FileSystemFile):
            raise IsADirectoryError(f"Not a file: {item.path}")
        return item

    def get_sub_directory(self, name: str) -> FileSystemDirectory[HandleT]:
        item = self.session[self.file_system.combine_paths(self.path, name)]
        if not isinstance(item, FileSystemDirectory):
            raise NotADirectoryError(f"Not a directory: {item.path}")
        return item


class FileSystemFile(FileSystemSessionItem[HandleT]):
    """A file entry with whole-content helpers built on file_stream()."""

    def file_stream(self) -> FileSystemStream:
        return self.file_system.open_stream(self)

    def read_all_bytes(self) -> bytes:
        with self.file_stream() as stream:
            return stream.read()

    def read_all_text(self, encoding: str = "utf-8") -> str:
        return self.read_all_bytes().decode(encoding)

    def write_all_bytes(self, data: bytes) -> None:
        with self.file_stream() as stream:
            stream.truncate(0)
            stream.write(data)
            stream.flush()

    def write_all_text(self, text: str, encoding: str = "utf-8") -> None:
        self.write_all_bytes(text.encode(encoding))


class FileSystemStream(ABC):
    """Byte stream over an item's content.

    Closing never flushes; callers flush when they need the content
    persisted. The optional dispose_action is called once after close.
    """

    def __init__(self, item: FileSystemSessionItem[Any], dispose_action: DisposeAction | None = None):
        self.item = item
        self._dispose_action = dispose_action
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed stream")

    def read(self, size: int = -1) -> bytes:
        self._check_open()
        return self.do_read(size)

    def write(self, data: bytes) -> int:
        self._check_open()
        return self.do_write(data)

    def seek(self, offset: int, whence: int = 0) -> int:
        self._check_open()
        return self.do_seek(offset, whence)

    def tell(self) -> int:
        self._check_open()
        return self.do_get_position()

    @property
    def position(self) -> int:
        return self.tell()

    @position.setter
    def position(self, value: int) -> None:
        self._check_open()
        self.do_set_position(value)

    @property
    def length(self) -> int:
        self._check_open()
        return self.do_get_length()

    def truncate(self, size: int) -> None:
        self._check_open()
        self.do_set_length(size)

    def flush(self) -> None:
        self._check_open()
        self.do_flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.do_close()
        finally:
            if self._dispose_action is not None:
                self._dispose_action(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @abstractmethod
    def do_read(self, size: int) -> bytes: ...

    @abstractmethod
    def do_write(self, data: bytes) -> int: ...

    @abstractmethod
    def do_seek(self, offset: int, whence: int) -> int: ...

    @abstractmethod
    def do_get_position(self) -> int: ...

    @abstractmethod
    def do_set_position(self, position: int) -> None: ...

    @abstractmethod
    def do_get_length(self) -> int: ...

    @abstractmethod
    def do_set_length(self, length: int) -> None: ...

    @abstractmethod
    def do_flush(self) -> None: ...

    @abstractmethod
    def do_close(self) -> None: ...
