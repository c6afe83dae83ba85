import ftplib
import logging
import posixpath
import ssl

from .errors import (
    AuthenticationFailure,
    ConnectionFailure,
    RemoteFileNotFound,
    RemotePermissionDenied,
    TransferFailure,
)
from .listing import info_from_facts, is_pseudo_entry, parse_list_line, parse_mlsx_facts
from .params import FtpSecure, SessionOptions
from .remote import (
    RemoteConnection,
    RemoteFileInfo,
    TransferMode,
    TransferOptions,
    certificate_matches,
)

logger = logging.getLogger(__name__)


class ImplicitFTP_TLS(ftplib.FTP_TLS):
    """FTP_TLS variant that negotiates TLS as soon as the socket connects (port 990)."""

    def __init__(self, *args, **kwargs):
        self._sock = None
        super().__init__(*args, **kwargs)

    @property
    def sock(self):
        return self._sock

    @sock.setter
    def sock(self, value):
        if value is not None and not isinstance(value, ssl.SSLSocket):
            value = self.context.wrap_socket(value, server_hostname=self.host)
        self._sock = value


def translate_ftp_error(error: ftplib.Error) -> TransferFailure:
    """Translate FTP permanent errors to the package's transfer errors."""
    error_str = str(error).lower()
    error_code = str(error)[:3] if len(str(error)) >= 3 else ""

    if error_code == "550":
        if "not found" in error_str or "no such" in error_str or "doesn't exist" in error_str:
            return RemoteFileNotFound(str(error))
        elif "permission" in error_str or "denied" in error_str or "privilege" in error_str:
            return RemotePermissionDenied(str(error))
        elif "not empty" in error_str or "exists" in error_str:
            return TransferFailure(str(error))
        else:
            return RemoteFileNotFound(str(error))
    elif error_code == "553":
        return RemotePermissionDenied(str(error))
    elif error_code == "530":
        return RemotePermissionDenied(f"Authentication required: {error}")
    else:
        return TransferFailure(str(error))


class FTPConnection(RemoteConnection):
    """
    FTP and FTPS backend built on ftplib.

    Plain FTP, explicit FTPS (AUTH TLS on the control port) and implicit FTPS
    (TLS from the first byte) are selected by ``security.secure``. Listings use
    MLSD/MLST when the server advertises them and fall back to LIST parsing.
    """

    def __init__(self, options: SessionOptions):
        super().__init__(options)
        self._ftp: ftplib.FTP | None = None
        # Track server capabilities
        self._supports_mlsd = False
        self._supports_mlst = False

    @property
    def opened(self) -> bool:
        return self._ftp is not None

    @property
    def _secure(self) -> FtpSecure:
        return self.options.security.secure

    def open(self) -> None:
        """
        Establish the control connection, negotiate TLS and log in.

        Raises:
            AuthenticationFailure: If the login is rejected.
            ConnectionFailure: If the server is unreachable or its certificate is not trusted.
        """
        options = self.options
        host, port = options.host_name, options.effective_port

        try:
            if self._secure is FtpSecure.IMPLICIT:
                self._ftp = ImplicitFTP_TLS(context=self._ssl_context())
            elif self._secure is FtpSecure.EXPLICIT:
                self._ftp = ftplib.FTP_TLS(context=self._ssl_context())
            else:
                self._ftp = ftplib.FTP()
            self._ftp.encoding = options.raw_settings.get("encoding", "utf-8")

            logger.debug("Connecting to FTP server %s:%d (%s)", host, port, self._secure.value)
            self._ftp.connect(host=host, port=port, timeout=options.timeout_seconds)

            if self._secure is FtpSecure.EXPLICIT:
                self._ftp.auth()
            if self._secure is not FtpSecure.NONE:
                self._verify_certificate()

            # Login - anonymous if no credentials
            if options.user_name:
                logger.debug("Logging in as user: %s", options.user_name)
                self._ftp.login(user=options.user_name, passwd=options.password)
            else:
                logger.debug("Logging in anonymously")
                self._ftp.login()

            if self._secure is not FtpSecure.NONE:
                self._ftp.prot_p()

            passive = options.raw_settings.get("passive_mode", True)
            self._ftp.set_pasv(passive)
            logger.debug("Passive mode: %s", passive)

            self._home = self._ftp.pwd() or "/"
            logger.info("Connected to FTP server %s:%d", host, port)

            self._detect_capabilities()

        except ConnectionFailure:
            self.close()
            raise
        except (ftplib.error_perm, ftplib.error_temp) as e:
            self.close()
            logger.error("FTP login failed: %s", e)
            raise AuthenticationFailure(f"FTP login failed: {e}") from e
        except TimeoutError as e:
            self.close()
            logger.error("Connection timeout: %s", e)
            raise ConnectionFailure(f"Connection timeout: {e}") from e
        except (OSError, EOFError, ftplib.Error) as e:
            self.close()
            logger.error("Connection failed: %s", e)
            raise ConnectionFailure(f"Connection to {host}:{port} failed: {e}") from e

    def _ssl_context(self) -> ssl.SSLContext:
        security = self.options.security
        context = ssl.create_default_context()
        if security.accept_any_certificate or security.certificate_fingerprint:
            # Trust is decided by the fingerprint check after the handshake
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        if security.client_certificate_path:
            context.load_cert_chain(
                security.client_certificate_path,
                password=self.options.private_key_passphrase or None,
            )
        return context

    def _verify_certificate(self) -> None:
        security = self.options.security
        if security.accept_any_certificate:
            logger.warning("Accepting any TLS certificate from %s", self.options.host_name)
            return
        if not security.certificate_fingerprint:
            return

        der = self._ftp.sock.getpeercert(binary_form=True)
        if not der or not certificate_matches(der, security.certificate_fingerprint):
            raise ConnectionFailure(
                f"TLS certificate of {self.options.host_name} does not match "
                f"fingerprint {security.certificate_fingerprint}"
            )
        logger.debug("TLS certificate fingerprint verified")

    def _detect_capabilities(self) -> None:
        """Detect server capabilities for MLSD and MLST support."""
        features = []
        try:
            resp = self._ftp.sendcmd("FEAT")
            features = resp.upper().split()
        except ftplib.error_perm:
            # Server doesn't support FEAT
            pass

        self._supports_mlst = "MLST" in features
        # MLST support implies MLSD (RFC 3659)
        self._supports_mlsd = "MLSD" in features or self._supports_mlst

        logger.debug(
            "Server capabilities - MLSD: %s, MLST: %s",
            self._supports_mlsd,
            self._supports_mlst,
        )

    def close(self) -> None:
        """Safely close the connection."""
        ftp, self._ftp = self._ftp, None
        if ftp is None:
            return
        if ftp.sock is None:
            # Never connected
            ftp.close()
            return
        try:
            ftp.quit()
            logger.debug("FTP connection closed gracefully")
        except (OSError, EOFError, ftplib.Error) as e:
            logger.debug("FTP quit failed, forcing close: %s", e)
            ftp.close()

    def _run(self, operation: str, func, *args):
        """Run a protocol call, translating ftplib errors."""
        self._ensure_open()
        try:
            return func(*args)
        except TransferFailure:
            raise
        except ftplib.error_perm as e:
            raise translate_ftp_error(e) from e
        except (OSError, EOFError, ftplib.Error) as e:
            logger.error("%s failed: %s", operation, e)
            raise TransferFailure(f"{operation} failed: {e}") from e

    def get_file_info(self, path: str) -> RemoteFileInfo:
        path = self.absolute_path(path)
        logger.debug("Getting file info: %s", path)

        if self._supports_mlst:
            return self._run(f"get_file_info({path})", self._get_file_info_mlst, path)
        return self._run(f"get_file_info({path})", self._get_file_info_list, path)

    def _get_file_info_mlst(self, path: str) -> RemoteFileInfo:
        response = self._ftp.sendcmd(f"MLST {path}")

        # Response format:
        # 250-Listing path
        #  type=file;size=1234;modify=20201210123456; path
        # 250 End
        for line in response.splitlines():
            if line.startswith(" ") or (";" in line and "=" in line and not line[:3].isdigit()):
                facts, _ = parse_mlsx_facts(line.strip())
                return info_from_facts(path, facts)

        raise RemoteFileNotFound(f"Could not parse MLST response for {path}")

    def _get_file_info_list(self, path: str) -> RemoteFileInfo:
        """Get file info by listing the parent directory and finding the entry."""
        if path == "/":
            return RemoteFileInfo.for_path("/", is_directory=True)

        parent, filename = posixpath.split(path)
        for entry in self._list_dir_list(parent):
            if entry.name == filename:
                return entry

        raise RemoteFileNotFound(f"File not found: {path}")

    def list_directory(self, path: str) -> list[RemoteFileInfo]:
        path = self.absolute_path(path)
        logger.debug("Listing directory: %s", path)

        if self._supports_mlsd:
            return self._run(f"list_directory({path})", self._list_dir_mlsd, path)
        return self._run(f"list_directory({path})", self._list_dir_list, path)

    def _list_dir_mlsd(self, path: str) -> list[RemoteFileInfo]:
        results = []
        for name, facts in self._ftp.mlsd(path):
            if name in (".", "..") or is_pseudo_entry(facts):
                continue
            results.append(info_from_facts(posixpath.join(path, name), facts))

        logger.debug("MLSD listed %d entries in %s", len(results), path)
        return results

    def _list_dir_list(self, path: str) -> list[RemoteFileInfo]:
        lines = []
        self._ftp.cwd(path)
        self._ftp.retrlines("LIST", lines.append)

        results = []
        for line in lines:
            info = parse_list_line(line, path)
            if info and info.name not in (".", ".."):
                results.append(info)

        logger.debug("LIST listed %d entries in %s", len(results), path)
        return results

    def create_directory(self, path: str) -> None:
        path = self.absolute_path(path)
        logger.debug("Creating directory: %s", path)
        self._run(f"create_directory({path})", self._ftp_call, "mkd", path)

    def move_file(self, old_path: str, new_path: str) -> None:
        old_path = self.absolute_path(old_path)
        new_path = self.absolute_path(new_path)
        logger.debug("Renaming: %s -> %s", old_path, new_path)
        self._run(f"rename({old_path}, {new_path})", self._ftp_call, "rename", old_path, new_path)

    def _ftp_call(self, method: str, *args):
        return getattr(self._ftp, method)(*args)

    def _upload(self, local_path: str, remote_path: str, options: TransferOptions) -> None:
        def _store() -> None:
            with open(local_path, "rb") as f:
                if options.transfer_mode is TransferMode.ASCII:
                    self._ftp.storlines(f"STOR {remote_path}", f)
                else:
                    self._ftp.storbinary(f"STOR {remote_path}", f)

        self._run(f"upload({remote_path})", _store)

    def _download(self, remote_path: str, local_path: str, options: TransferOptions) -> None:
        def _retrieve() -> None:
            with open(local_path, "wb") as f:
                if options.transfer_mode is TransferMode.ASCII:
                    encoding = self._ftp.encoding
                    self._ftp.retrlines(
                        f"RETR {remote_path}", lambda line: f.write((line + "\n").encode(encoding))
                    )
                else:
                    self._ftp.retrbinary(f"RETR {remote_path}", f.write)

        self._run(f"download({remote_path})", _retrieve)

    def _remove(self, info: RemoteFileInfo) -> None:
        path = info.full_name
        if info.is_directory:
            logger.debug("Deleting directory: %s", path)
            self._run(f"delete_dir({path})", self._ftp_call, "rmd", path)
        else:
            logger.debug("Deleting file: %s", path)
            self._run(f"delete_file({path})", self._ftp_call, "delete", path)

    def __repr__(self) -> str:
        return f"FTPConnection(host={self.options.host_name!r}, port={self.options.effective_port})"
