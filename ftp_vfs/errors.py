"""
Exception hierarchy for ftp-vfs.

Every error raised by the package derives from FileSystemError and from the
closest builtin exception, so callers can catch either (a missing remote file
is both a TransferFailure and a FileNotFoundError).
"""


class FileSystemError(Exception):
    """Base class for all ftp-vfs errors."""


class ConfigurationError(FileSystemError, ValueError):
    """Malformed server URL or an unparseable configuration value."""


class ConnectionValidationError(FileSystemError, ValueError):
    """Connection parameters are incomplete; no connection was attempted."""


class ConnectionFailure(FileSystemError, ConnectionError):
    """The connection could not be opened, or the session is not open."""


class AuthenticationFailure(ConnectionFailure, PermissionError):
    """The server rejected the supplied credentials."""


class TransferFailure(FileSystemError, OSError):
    """A remote operation (list, get, put, remove, move, mkdir) failed."""


class RemoteFileNotFound(TransferFailure, FileNotFoundError):
    """The remote path does not exist."""


class RemotePermissionDenied(TransferFailure, PermissionError):
    """The remote server refused the operation."""


class NotSupportedOperation(FileSystemError, NotImplementedError):
    """The remote store does not expose this capability."""
