__version__ = "0.1.0"

# Public API exports
from .capabilities import FTP_CAPABILITIES
from .config import AppConfig, FileSystemConfig, LogConfig, load_config
from .errors import (
    AuthenticationFailure,
    ConfigurationError,
    ConnectionFailure,
    ConnectionValidationError,
    FileSystemError,
    NotSupportedOperation,
    RemoteFileNotFound,
    RemotePermissionDenied,
    TransferFailure,
)
from .filesystem import FTPFileSystem
from .params import (
    ConnectParams,
    FtpSecure,
    FtpSecurity,
    Protocol,
    SessionOptions,
    SshSecurity,
    WebdavSecurity,
    parse_server_url,
)
from .remote import (
    FilePermissions,
    RemoteConnection,
    RemoteFileInfo,
    TransferMode,
    TransferOptions,
    open_connection,
)
from .session import FTPFileSystemSession, RemoteHandle
from .stream import FTPFileSystemStream
from .vfs import (
    FileSystem,
    FileSystemCapabilities,
    FileSystemDirectory,
    FileSystemFile,
    FileSystemSession,
    FileSystemStream,
)

__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "FileSystemConfig",
    "LogConfig",
    "load_config",
    # Connection parameters
    "ConnectParams",
    "SessionOptions",
    "Protocol",
    "FtpSecure",
    "SshSecurity",
    "FtpSecurity",
    "WebdavSecurity",
    "parse_server_url",
    # Errors
    "FileSystemError",
    "ConfigurationError",
    "ConnectionValidationError",
    "ConnectionFailure",
    "AuthenticationFailure",
    "TransferFailure",
    "RemoteFileNotFound",
    "RemotePermissionDenied",
    "NotSupportedOperation",
    # Remote connections
    "RemoteConnection",
    "RemoteFileInfo",
    "FilePermissions",
    "TransferMode",
    "TransferOptions",
    "open_connection",
    # File system
    "FTP_CAPABILITIES",
    "FTPFileSystem",
    "FTPFileSystemSession",
    "FTPFileSystemStream",
    "RemoteHandle",
    "FileSystem",
    "FileSystemCapabilities",
    "FileSystemSession",
    "FileSystemDirectory",
    "FileSystemFile",
    "FileSystemStream",
]
