"""
Shared pytest fixtures for ftp-vfs tests.
"""

import ftplib
import os
import posixpath
import shutil
from collections.abc import Generator
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ftp_vfs.errors import RemoteFileNotFound, TransferFailure
from ftp_vfs.filesystem import FTPFileSystem
from ftp_vfs.ftp_client import FTPConnection
from ftp_vfs.params import ConnectParams, SessionOptions
from ftp_vfs.remote import FilePermissions, RemoteConnection, RemoteFileInfo, TransferOptions
from ftp_vfs.session import FTPFileSystemSession


class LocalDiskConnection(RemoteConnection):
    """
    RemoteConnection backed by a local directory.

    Remote path "/a/b" maps to <root>/a/b. Set fail_uploads to make every
    upload fail with TransferFailure.
    """

    def __init__(self, options: SessionOptions, root: Path):
        super().__init__(options)
        self.root = root
        self.fail_uploads = False
        self._open = False

    @property
    def opened(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True
        self._home = "/"

    def close(self) -> None:
        self._open = False

    def _local(self, path: str) -> Path:
        return self.root / self.absolute_path(path).lstrip("/")

    def get_file_info(self, path: str) -> RemoteFileInfo:
        path = self.absolute_path(path)
        local = self._local(path)
        if not local.exists():
            raise RemoteFileNotFound(f"File not found: {path}")
        st = local.stat()
        return RemoteFileInfo.for_path(
            path,
            length=0 if local.is_dir() else st.st_size,
            last_write_time=datetime.fromtimestamp(st.st_mtime),
            is_directory=local.is_dir(),
            permissions=FilePermissions.from_mode(st.st_mode),
        )

    def list_directory(self, path: str) -> list[RemoteFileInfo]:
        path = self.absolute_path(path)
        local = self._local(path)
        if not local.is_dir():
            raise RemoteFileNotFound(f"Directory not found: {path}")
        return [
            self.get_file_info(posixpath.join(path, child.name))
            for child in sorted(local.iterdir())
        ]

    def create_directory(self, path: str) -> None:
        try:
            self._local(path).mkdir()
        except FileExistsError as e:
            raise TransferFailure(f"Already exists: {path}") from e
        except FileNotFoundError as e:
            raise RemoteFileNotFound(f"Parent not found: {path}") from e

    def move_file(self, old_path: str, new_path: str) -> None:
        if not self._local(old_path).exists():
            raise RemoteFileNotFound(f"File not found: {old_path}")
        os.rename(self._local(old_path), self._local(new_path))

    def _upload(self, local_path: str, remote_path: str, options: TransferOptions) -> None:
        if self.fail_uploads:
            raise TransferFailure(f"Upload rejected: {remote_path}")
        shutil.copyfile(local_path, self._local(remote_path))

    def _download(self, remote_path: str, local_path: str, options: TransferOptions) -> None:
        source = self._local(remote_path)
        if not source.is_file():
            raise RemoteFileNotFound(f"File not found: {remote_path}")
        shutil.copyfile(source, local_path)

    def _remove(self, info: RemoteFileInfo) -> None:
        local = self._local(info.full_name)
        try:
            if info.is_directory:
                local.rmdir()
            else:
                local.unlink()
        except OSError as e:
            raise TransferFailure(f"Cannot remove {info.full_name}: {e}") from e


@pytest.fixture
def remote_root(tmp_path: Path) -> Path:
    """
    Create the directory tree served by LocalDiskConnection.

    Structure:
        /
        +-- notes.txt               (contains "Hello World")
        +-- docs/
        |   +-- guide.md            (contains "# Guide")
        |   +-- archive/
        |       +-- old.txt         (contains "old")
        +-- empty/
    """
    root = tmp_path / "remote"
    root.mkdir()
    (root / "notes.txt").write_text("Hello World", encoding="utf-8")
    (root / "docs").mkdir()
    (root / "docs" / "guide.md").write_text("# Guide", encoding="utf-8")
    (root / "docs" / "archive").mkdir()
    (root / "docs" / "archive" / "old.txt").write_text("old", encoding="utf-8")
    (root / "empty").mkdir()
    return root


@pytest.fixture
def local_connections(remote_root: Path) -> Generator[list[LocalDiskConnection], None, None]:
    """
    Route session connections to LocalDiskConnection instances.

    Returns:
        List that receives every connection opened while the fixture is active.
    """
    connections: list[LocalDiskConnection] = []

    def _open(options: SessionOptions) -> LocalDiskConnection:
        connection = LocalDiskConnection(options, remote_root)
        connection.open()
        connections.append(connection)
        return connection

    with patch("ftp_vfs.session.open_connection", side_effect=_open):
        yield connections


@pytest.fixture
def local_connection(remote_root: Path, sftp_params: ConnectParams) -> LocalDiskConnection:
    """Creates an open LocalDiskConnection over remote_root."""
    connection = LocalDiskConnection(sftp_params.options, remote_root)
    connection.open()
    return connection


@pytest.fixture
def sftp_params() -> ConnectParams:
    """Creates standard SFTP ConnectParams for testing."""
    return ConnectParams(
        "sftp",
        host="files.example.com",
        username="deploy",
        password="secret",
        fingerprint="SHA256:q1w2e3r4t5y6u7i8o9p0",
    )


@pytest.fixture
def ftp_params() -> ConnectParams:
    """Creates standard FTP ConnectParams for testing."""
    return ConnectParams(
        "ftp",
        host="test.ftp.local",
        port=2121,
        username="testuser",
        password="testpass",
        accept_any=True,
    )


@pytest.fixture
def file_system(sftp_params: ConnectParams) -> FTPFileSystem:
    """Creates an FTPFileSystem with SFTP defaults."""
    return FTPFileSystem("test", default_connect_params=sftp_params)


@pytest.fixture
def session(
    file_system: FTPFileSystem, local_connections: list[LocalDiskConnection]
) -> Generator[FTPFileSystemSession, None, None]:
    """
    Opens a session whose connection is a LocalDiskConnection.

    Returns:
        Open FTPFileSystemSession, closed after the test.
    """
    with file_system.start_session() as s:
        yield s


@pytest.fixture
def tmp_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a temporary INI configuration file for config tests.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[session]
protocol = ftp
host = testserver.local
port = 2121
username = testuser
password = testpass
fingerprint = ab:cd:ef:01
timeout_ms = 45000
secure = explicit

[raw_settings]
passive_mode = false
encoding = latin-1
CustomSetting = Keep Case

[filesystem]
name = build-server
bypass_readonly = true

[logging]
level = DEBUG
file = test.log
console = false
"""
    config_path = tmp_path / "test_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def minimal_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a minimal INI configuration file with only a server URL.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[session]
server_url = sftp://deploy@minimal.server.com
"""
    config_path = tmp_path / "minimal_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def mock_ftp() -> Generator[MagicMock, None, None]:
    """
    Creates a mocked ftplib.FTP instance.

    Returns:
        Mocked FTP object with common methods stubbed.
    """
    mock = MagicMock(spec=ftplib.FTP)
    mock.encoding = "utf-8"

    # Default responses
    mock.sendcmd.return_value = "200 OK"
    mock.voidcmd.return_value = None
    mock.login.return_value = "230 Login successful"
    mock.cwd.return_value = "250 OK"
    mock.pwd.return_value = "/"
    mock.quit.return_value = "221 Goodbye"

    yield mock


@pytest.fixture
def ftp_connection(
    ftp_params: ConnectParams, mock_ftp: MagicMock
) -> Generator[FTPConnection, None, None]:
    """
    Creates an FTPConnection with a mocked FTP connection.

    Returns:
        FTPConnection instance with mocked underlying FTP, MLSD and MLST enabled.
    """
    connection = FTPConnection(ftp_params.options)
    connection._ftp = mock_ftp
    connection._supports_mlsd = True
    connection._supports_mlst = True
    yield connection
