"""
Capabilities of the remote file system kind.

One immutable instance is shared by every FTPFileSystem; the remote protocols
expose sizes and modification times but no creation/access times, ACLs or
custom metadata.
"""

from .vfs import FileSystemCapabilities

PATH_SEPARATORS = ("/",)

FTP_CAPABILITIES = FileSystemCapabilities(
    supports_versioning=False,
    supports_transactions=False,
    max_file_path_length=255,
    max_file_name_length=255,
    max_directory_name_length=255,
    max_file_size=2 * 2**30,
    path_separator_characters=PATH_SEPARATORS,
    is_readonly=False,
    supports_security=False,
    supports_custom_metadata=False,
    supports_directory_renaming=True,
    supports_file_renaming=True,
    supports_stream_seek=True,
    supports_file_modification=True,
    supports_creation_timestamps=False,
    supports_modification_timestamps=True,
    supports_last_access_timestamps=False,
    supports_readonly_directories=False,
    supports_readonly_files=False,
    supports_creation_user_names=False,
    supports_modification_user_names=False,
    supports_last_access_user_names=False,
    supports_file_sizes=True,
    supports_directory_sizes=False,
    supports_asynchronous_api=False,
)
