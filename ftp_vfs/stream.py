"""
Stream over a remote file, staged through a local scratch file.

Opening downloads the whole remote file; reads, writes, seeks and truncation
work on the local copy; flush() uploads the local copy over the remote file.
The scratch file is removed when the stream closes, when opening fails, or
when an unclosed stream is garbage collected.
"""

from __future__ import annotations

import logging
import os
import tempfile
import weakref
from typing import IO, TYPE_CHECKING

from .vfs import DisposeAction, FileSystemStream

if TYPE_CHECKING:
    from .session import RemoteHandle
    from .vfs import FileSystemFile

logger = logging.getLogger(__name__)


def _remove_scratch(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def _release_scratch(file: IO[bytes], path: str) -> None:
    try:
        file.close()
    finally:
        _remove_scratch(path)
        logger.debug("Removed scratch file %s", path)


class FTPFileSystemStream(FileSystemStream):
    """Read/write stream over one remote file."""

    def __init__(
        self, item: FileSystemFile[RemoteHandle], dispose_action: DisposeAction | None = None
    ):
        super().__init__(item, dispose_action)
        fd, self._scratch_path = tempfile.mkstemp(prefix="ftp_vfs_", suffix=".tmp")
        os.close(fd)

        try:
            logger.debug("Staging %s into %s", item.path, self._scratch_path)
            item.session.get_file(item.path, self._scratch_path)
            self._file = open(self._scratch_path, "r+b")
        except Exception:
            _remove_scratch(self._scratch_path)
            raise

        self._finalizer = weakref.finalize(self, _release_scratch, self._file, self._scratch_path)

    @property
    def scratch_path(self) -> str:
        return self._scratch_path

    def do_read(self, size: int) -> bytes:
        return self._file.read(size)

    def do_write(self, data: bytes) -> int:
        return self._file.write(data)

    def do_seek(self, offset: int, whence: int) -> int:
        return self._file.seek(offset, whence)

    def do_get_position(self) -> int:
        return self._file.tell()

    def do_set_position(self, position: int) -> None:
        self._file.seek(position)

    def do_get_length(self) -> int:
        self._file.flush()
        return os.fstat(self._file.fileno()).st_size

    def do_set_length(self, length: int) -> None:
        self._file.truncate(length)

    def do_flush(self) -> None:
        """Upload the scratch copy; on failure it stays intact for another flush."""
        self._file.flush()
        logger.debug("Uploading %s to %s", self._scratch_path, self.item.path)
        handle = self.item.session.put_file(self._scratch_path, self.item.path)
        self.item.replace_handle(handle)

    def do_close(self) -> None:
        # Runs _release_scratch exactly once
        self._finalizer()
