"""
SCP backend.

File contents move over the classic rcp/scp wire protocol (the remote side
runs ``scp -t`` to receive or ``scp -f`` to send); listings, renames and
removals run as shell commands over the same SSH connection and their
``ls -la`` output is parsed like an FTP LIST response.

Wire messages used here::

    C<mode> <size> <name>\\n   file header, followed by <size> bytes of data
    \\0                         ok
    \\1<message>\\n             soft error
    \\2<message>\\n             hard error
"""

import dataclasses
import logging
import os
import posixpath
import shlex
import stat
from contextlib import contextmanager

import paramiko

from .errors import RemoteFileNotFound, RemotePermissionDenied, TransferFailure
from .listing import parse_list_line
from .remote import RemoteFileInfo, TransferMode, TransferOptions, leaf_name
from .sftp_client import SSHConnection

logger = logging.getLogger(__name__)

CHUNK_SIZE = 32768

OK = b"\x00"
SOFT_ERROR = b"\x01"
HARD_ERROR = b"\x02"


def translate_shell_error(message: str, path: str) -> TransferFailure:
    """Map the stderr of a failed remote command to a transfer error."""
    text = message.strip() or f"Remote command failed for {path}"
    lowered = text.lower()
    if "no such file" in lowered or "not found" in lowered:
        return RemoteFileNotFound(text)
    if "permission denied" in lowered or "not permitted" in lowered:
        return RemotePermissionDenied(text)
    return TransferFailure(text)


class SCPConnection(SSHConnection):
    """SCP backend over a paramiko SSH connection."""

    @property
    def _encoding(self) -> str:
        return self.options.raw_settings.get("encoding", "utf-8")

    @property
    def _scp_command(self) -> str:
        return self.options.raw_settings.get("scp_command", "scp")

    def _start_channel(self) -> None:
        self._home = self._exec("pwd", "/").strip() or "/"

    def _exec(self, command: str, path: str) -> str:
        """Run a shell command in the C locale and return its stdout."""
        self._ensure_open()
        logger.debug("Executing: %s", command)
        try:
            _, stdout, stderr = self._ssh.exec_command(
                f"LC_ALL=C {command}", timeout=self.options.timeout_seconds
            )
            output = stdout.read()
            errors = stderr.read()
            status = stdout.channel.recv_exit_status()
        except (OSError, paramiko.SSHException) as e:
            raise TransferFailure(f"Remote command '{command}' failed: {e}") from e

        if status != 0:
            logger.debug("Command exited with %d: %s", status, errors)
            raise translate_shell_error(errors.decode(self._encoding, errors="replace"), path)
        return output.decode(self._encoding, errors="replace")

    def _ls_entry(self, path: str, follow_links: bool) -> RemoteFileInfo:
        flags = "-ldL" if follow_links else "-ld"
        output = self._exec(f"ls {flags} -- {shlex.quote(path)}", path)

        for line in output.splitlines():
            info = parse_list_line(line, posixpath.dirname(path))
            if info is not None:
                return dataclasses.replace(info, full_name=path, name=leaf_name(path))

        raise RemoteFileNotFound(f"File not found: {path}")

    def get_file_info(self, path: str) -> RemoteFileInfo:
        """
        Metadata of path; symbolic links describe their target.

        A dangling link is reported as the link itself so it can still be removed.
        """
        path = self.absolute_path(path)
        logger.debug("Getting file info: %s", path)
        try:
            return self._ls_entry(path, follow_links=True)
        except RemoteFileNotFound:
            return self._ls_entry(path, follow_links=False)

    def _resolve_link(self, info: RemoteFileInfo) -> RemoteFileInfo:
        try:
            return self._ls_entry(info.full_name, follow_links=True)
        except TransferFailure as e:
            logger.debug("Keeping unresolved link %s: %s", info.full_name, e)
            return info

    def list_directory(self, path: str) -> list[RemoteFileInfo]:
        path = self.absolute_path(path)
        logger.debug("Listing directory: %s", path)
        output = self._exec(f"ls -la -- {shlex.quote(path)}", path)

        results = []
        for line in output.splitlines():
            if line.startswith("total "):
                continue
            info = parse_list_line(line, path)
            if info and info.name not in (".", ".."):
                if line.startswith("l"):
                    info = self._resolve_link(info)
                results.append(info)

        logger.debug("Listed %d entries in %s", len(results), path)
        return results

    def create_directory(self, path: str) -> None:
        path = self.absolute_path(path)
        logger.debug("Creating directory: %s", path)
        self._exec(f"mkdir -- {shlex.quote(path)}", path)

    def move_file(self, old_path: str, new_path: str) -> None:
        old_path = self.absolute_path(old_path)
        new_path = self.absolute_path(new_path)
        logger.debug("Renaming: %s -> %s", old_path, new_path)
        self._exec(f"mv -- {shlex.quote(old_path)} {shlex.quote(new_path)}", old_path)

    def _remove(self, info: RemoteFileInfo) -> None:
        path = info.full_name
        if info.is_directory:
            logger.debug("Deleting directory: %s", path)
            self._exec(f"rmdir -- {shlex.quote(path)}", path)
        else:
            logger.debug("Deleting file: %s", path)
            self._exec(f"rm -f -- {shlex.quote(path)}", path)

    # -- scp wire protocol -------------------------------------------------------

    @contextmanager
    def _scp_channel(self, command: str):
        self._ensure_open()
        logger.debug("Starting: %s", command)
        channel = self._ssh.get_transport().open_session(timeout=self.options.timeout_seconds)
        try:
            channel.settimeout(self.options.timeout_seconds)
            channel.exec_command(command)
            yield channel
        finally:
            channel.close()

    def _read_line(self, channel: paramiko.Channel) -> bytes:
        line = b""
        while not line.endswith(b"\n"):
            byte = channel.recv(1)
            if not byte:
                break
            line += byte
        return line.rstrip(b"\n")

    def _read_response(self, channel: paramiko.Channel, path: str) -> None:
        code = channel.recv(1)
        if code == OK:
            return
        if code in (SOFT_ERROR, HARD_ERROR):
            message = self._read_line(channel).decode(self._encoding, errors="replace")
            raise translate_shell_error(message, path)
        if not code:
            raise TransferFailure(f"SCP connection closed unexpectedly for {path}")
        rest = self._read_line(channel)
        raise TransferFailure(f"Unexpected SCP response for {path}: {code + rest!r}")

    def _upload(self, local_path: str, remote_path: str, options: TransferOptions) -> None:
        if options.transfer_mode is TransferMode.ASCII:
            logger.debug("SCP has no ASCII mode, uploading %s as binary", local_path)

        local_stat = os.stat(local_path)
        mode = stat.S_IMODE(local_stat.st_mode)
        command = f"{self._scp_command} -t -- {shlex.quote(remote_path)}"
        header = f"C{mode:04o} {local_stat.st_size} {posixpath.basename(remote_path)}\n"

        try:
            with self._scp_channel(command) as channel, open(local_path, "rb") as f:
                self._read_response(channel, remote_path)
                channel.sendall(header.encode(self._encoding))
                self._read_response(channel, remote_path)
                while True:
                    chunk = f.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    channel.sendall(chunk)
                channel.sendall(OK)
                self._read_response(channel, remote_path)
                channel.shutdown_write()
        except (TimeoutError, paramiko.SSHException) as e:
            raise TransferFailure(f"SCP upload of {remote_path} failed: {e}") from e

        logger.debug("SCP uploaded %d bytes to %s", local_stat.st_size, remote_path)

    def _download(self, remote_path: str, local_path: str, options: TransferOptions) -> None:
        if options.transfer_mode is TransferMode.ASCII:
            logger.debug("SCP has no ASCII mode, downloading %s as binary", remote_path)

        command = f"{self._scp_command} -f -- {shlex.quote(remote_path)}"
        try:
            with self._scp_channel(command) as channel:
                channel.sendall(OK)
                header = self._read_line(channel)
                if header[:1] in (SOFT_ERROR, HARD_ERROR):
                    message = header[1:].decode(self._encoding, errors="replace")
                    raise translate_shell_error(message, remote_path)
                if not header.startswith(b"C"):
                    raise TransferFailure(f"Unexpected SCP message for {remote_path}: {header!r}")

                _, size_text, _ = header[1:].decode(self._encoding).split(" ", 2)
                remaining = int(size_text)
                channel.sendall(OK)

                with open(local_path, "wb") as f:
                    while remaining > 0:
                        chunk = channel.recv(min(CHUNK_SIZE, remaining))
                        if not chunk:
                            raise TransferFailure(f"SCP download of {remote_path} was truncated")
                        f.write(chunk)
                        remaining -= len(chunk)

                self._read_response(channel, remote_path)
                channel.sendall(OK)
        except (TimeoutError, paramiko.SSHException) as e:
            raise TransferFailure(f"SCP download of {remote_path} failed: {e}") from e
        except ValueError as e:
            raise TransferFailure(f"Malformed SCP header for {remote_path}: {e}") from e

        logger.debug("SCP downloaded %s", remote_path)
