"""
Unit tests for ftp_vfs.stream module.

Tests cover:
- Opening a stream stages the remote content into a scratch file
- Reads, writes, seeks, length and truncation on the staged copy
- flush() uploads and refreshes the item's handle
- close() never uploads and always removes the scratch file
- A failed flush keeps the scratch copy until close
- dispose_action is called once on close
- Operations on a closed stream raise ValueError
- Scratch cleanup when opening fails or an open stream is garbage collected
"""

import gc
import io
import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ftp_vfs.errors import RemoteFileNotFound, TransferFailure
from ftp_vfs.session import FTPFileSystemSession
from ftp_vfs.stream import FTPFileSystemStream


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Point tempfile at an empty directory so leftover scratch files are visible."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    with patch.object(tempfile, "tempdir", str(scratch)):
        yield scratch


class TestStreamOpen:
    """Tests for staging on open."""

    def test_open_downloads_content(self, session: FTPFileSystemSession, scratch_dir: Path):
        """Test that the scratch file holds the remote content."""
        stream = session["/notes.txt"].file_stream()

        assert isinstance(stream, FTPFileSystemStream)
        assert Path(stream.scratch_path).parent == scratch_dir
        assert Path(stream.scratch_path).read_bytes() == b"Hello World"
        stream.close()

    def test_open_missing_remote_file_cleans_up(
        self, session: FTPFileSystemSession, remote_root: Path, scratch_dir: Path
    ):
        """Test that a failed download leaves no scratch file behind."""
        item = session["/notes.txt"]
        (remote_root / "notes.txt").unlink()

        with pytest.raises(RemoteFileNotFound):
            item.file_stream()

        assert list(scratch_dir.iterdir()) == []


class TestStreamIO:
    """Tests for I/O on the staged copy."""

    def test_read(self, session: FTPFileSystemSession):
        """Test full and partial reads."""
        with session["/notes.txt"].file_stream() as stream:
            assert stream.read(5) == b"Hello"
            assert stream.read() == b" World"
            assert stream.read() == b""

    def test_seek_and_position(self, session: FTPFileSystemSession):
        """Test seek, tell and the position property."""
        with session["/notes.txt"].file_stream() as stream:
            assert stream.seek(6) == 6
            assert stream.tell() == 6
            assert stream.read() == b"World"

            stream.position = 0
            assert stream.position == 0

            assert stream.seek(-5, io.SEEK_END) == 6

    def test_length_and_truncate(self, session: FTPFileSystemSession):
        """Test length reporting including unflushed writes."""
        with session["/notes.txt"].file_stream() as stream:
            assert stream.length == 11

            stream.seek(0, io.SEEK_END)
            stream.write(b"!!")
            assert stream.length == 13

            stream.truncate(5)
            assert stream.length == 5

    def test_flush_uploads_and_refreshes_handle(self, session: FTPFileSystemSession, remote_root: Path):
        """Test that flush writes the scratch copy over the remote file."""
        item = session["/notes.txt"]

        with item.file_stream() as stream:
            stream.truncate(0)
            stream.write(b"Replaced")
            stream.flush()

            assert (remote_root / "notes.txt").read_bytes() == b"Replaced"

        assert item.size == 8

    def test_close_does_not_upload(self, session: FTPFileSystemSession, remote_root: Path):
        """Test that unflushed writes are discarded on close."""
        with session["/notes.txt"].file_stream() as stream:
            stream.write(b"Goodbye")

        assert (remote_root / "notes.txt").read_bytes() == b"Hello World"

    def test_write_all_bytes(self, session: FTPFileSystemSession, remote_root: Path):
        """Test that write_all_bytes replaces the whole content."""
        session["/docs/guide.md"].write_all_bytes(b"# New")

        assert (remote_root / "docs" / "guide.md").read_bytes() == b"# New"

    def test_read_all_text(self, session: FTPFileSystemSession):
        """Test read_all_text decoding."""
        assert session["/docs/archive/old.txt"].read_all_text() == "old"


class TestStreamClose:
    """Tests for close, dispose and scratch cleanup."""

    def test_close_removes_scratch(self, session: FTPFileSystemSession, scratch_dir: Path):
        """Test that closing deletes the scratch file."""
        stream = session["/notes.txt"].file_stream()
        scratch = Path(stream.scratch_path)

        stream.close()

        assert stream.closed is True
        assert not scratch.exists()
        assert list(scratch_dir.iterdir()) == []

    def test_close_twice(self, session: FTPFileSystemSession):
        """Test that close is idempotent."""
        stream = session["/notes.txt"].file_stream()

        stream.close()
        stream.close()

        assert stream.closed is True

    def test_dispose_action_called_once(self, session: FTPFileSystemSession):
        """Test that dispose_action receives the stream once."""
        item = session["/notes.txt"]
        dispose = MagicMock()
        stream = item.file_system.open_stream(item, dispose)

        stream.close()
        stream.close()

        dispose.assert_called_once_with(stream)

    @pytest.mark.parametrize(
        "operation",
        [
            lambda s: s.read(),
            lambda s: s.write(b"x"),
            lambda s: s.seek(0),
            lambda s: s.tell(),
            lambda s: s.length,
            lambda s: s.truncate(0),
            lambda s: s.flush(),
            lambda s: setattr(s, "position", 0),
        ],
    )
    def test_operations_on_closed_stream(self, session: FTPFileSystemSession, operation):
        """Test that every operation on a closed stream raises ValueError."""
        stream = session["/notes.txt"].file_stream()
        stream.close()

        with pytest.raises(ValueError, match="closed"):
            operation(stream)

    def test_failed_flush_keeps_scratch_until_close(
        self, session: FTPFileSystemSession, local_connections, remote_root: Path, scratch_dir: Path
    ):
        """Test that a failed upload leaves the staged data for a retry."""
        item = session["/notes.txt"]
        stream = item.file_stream()
        stream.truncate(0)
        stream.write(b"Pending")

        local_connections[0].fail_uploads = True
        with pytest.raises(TransferFailure):
            stream.flush()

        assert Path(stream.scratch_path).read_bytes() == b"Pending"
        assert (remote_root / "notes.txt").read_bytes() == b"Hello World"
        assert item.size == 11

        local_connections[0].fail_uploads = False
        stream.flush()
        assert (remote_root / "notes.txt").read_bytes() == b"Pending"

        stream.close()
        assert list(scratch_dir.iterdir()) == []

    def test_close_after_failed_flush_removes_scratch(
        self, session: FTPFileSystemSession, local_connections, scratch_dir: Path
    ):
        """Test that closing after a failed flush still cleans up."""
        stream = session["/notes.txt"].file_stream()
        local_connections[0].fail_uploads = True
        with pytest.raises(TransferFailure):
            stream.flush()

        stream.close()

        assert list(scratch_dir.iterdir()) == []

    def test_garbage_collected_stream_removes_scratch(
        self, session: FTPFileSystemSession, scratch_dir: Path
    ):
        """Test that an unclosed stream cleans up when collected."""
        stream = session["/notes.txt"].file_stream()
        scratch = stream.scratch_path

        del stream
        gc.collect()

        assert not os.path.exists(scratch)
        assert list(scratch_dir.iterdir()) == []
