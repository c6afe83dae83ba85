"""
WebDAV backend using requests.

Metadata comes from PROPFIND (Depth 0 for one entry, Depth 1 for a listing);
MKCOL, MOVE, DELETE, GET and PUT cover the remaining operations. Paths seen
by the session layer are relative to the configured root path.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from email.utils import parsedate_to_datetime
from urllib.parse import quote, unquote, urlsplit

import requests
from requests.adapters import HTTPAdapter

from .errors import (
    AuthenticationFailure,
    ConnectionFailure,
    RemoteFileNotFound,
    RemotePermissionDenied,
    TransferFailure,
)
from .params import SessionOptions
from .remote import (
    RemoteConnection,
    RemoteFileInfo,
    TransferOptions,
    normalize_hex_fingerprint,
)

logger = logging.getLogger(__name__)

DAV_NS = "{DAV:}"
CHUNK_SIZE = 65536

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop>'
    "<d:resourcetype/><d:getcontentlength/><d:getlastmodified/>"
    "</d:prop></d:propfind>"
)


class FingerprintAdapter(HTTPAdapter):
    """HTTPS adapter that pins the server certificate to a hex fingerprint."""

    def __init__(self, fingerprint: str, **kwargs):
        self.fingerprint = normalize_hex_fingerprint(fingerprint)
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["assert_fingerprint"] = self.fingerprint
        return super().init_poolmanager(*args, **kwargs)


def translate_http_error(status: int, reason: str, path: str) -> TransferFailure:
    message = f"{status} {reason}: {path}"
    if status == 404:
        return RemoteFileNotFound(message)
    if status in (401, 403):
        return RemotePermissionDenied(message)
    if status == 409:
        return RemoteFileNotFound(f"{message} (parent collection missing)")
    return TransferFailure(message)


def parse_http_date(text: str | None) -> datetime | None:
    """RFC 1123 date as a naive local datetime."""
    if not text:
        return None
    try:
        return parsedate_to_datetime(text).astimezone().replace(tzinfo=None)
    except (TypeError, ValueError):
        logger.warning("Failed to parse getlastmodified: %s", text)
        return None


class WebDAVConnection(RemoteConnection):
    """WebDAV backend over a requests.Session."""

    def __init__(self, options: SessionOptions):
        super().__init__(options)
        self._session: requests.Session | None = None
        security = options.security
        scheme = "https" if security.secure else "http"
        self._base_url = f"{scheme}://{options.host_name}:{options.effective_port}"
        root = security.root.replace("\\", "/").strip("/")
        self._root = "/" + root if root else ""

    @property
    def opened(self) -> bool:
        return self._session is not None

    def _build_session(self) -> requests.Session:
        options = self.options
        security = options.security
        session = requests.Session()

        if options.user_name:
            session.auth = (options.user_name, options.password)

        if security.accept_any_certificate:
            logger.warning("Accepting any TLS certificate from %s", options.host_name)
            session.verify = False
        elif security.certificate_fingerprint:
            session.verify = False
            session.mount("https://", FingerprintAdapter(security.certificate_fingerprint))

        if security.client_certificate_path:
            session.cert = security.client_certificate_path
            if options.private_key_passphrase:
                logger.warning(
                    "Encrypted client certificates are not supported for WebDAV; "
                    "ignoring the passphrase for %s",
                    security.client_certificate_path,
                )
        return session

    def open(self) -> None:
        """
        Create the HTTP session and verify access to the root collection.

        Raises:
            AuthenticationFailure: On 401/403 from the server.
            ConnectionFailure: If the server is unreachable or its certificate is not trusted.
        """
        self._session = self._build_session()
        logger.debug("Connecting to WebDAV server %s%s", self._base_url, self._root or "/")

        try:
            response = self._session.request(
                "PROPFIND",
                self._url("/"),
                data=PROPFIND_BODY,
                headers={"Depth": "0", "Content-Type": "application/xml"},
                timeout=self.options.timeout_seconds,
            )
        except requests.RequestException as e:
            self.close()
            logger.error("WebDAV connection failed: %s", e)
            raise ConnectionFailure(f"WebDAV connection to {self._base_url} failed: {e}") from e

        if response.status_code in (401, 403):
            self.close()
            logger.error("WebDAV authentication failed: %s", response.status_code)
            raise AuthenticationFailure(
                f"WebDAV authentication failed: {response.status_code} {response.reason}"
            )
        if response.status_code >= 400:
            self.close()
            raise ConnectionFailure(
                f"WebDAV root {self._root or '/'} is not accessible: "
                f"{response.status_code} {response.reason}"
            )

        self._home = "/"
        logger.info("Connected to WebDAV server %s", self._base_url)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
            logger.debug("WebDAV session closed")

    def _url(self, path: str) -> str:
        return self._base_url + quote(self._root + path, safe="/")

    def _path_from_href(self, href: str) -> str:
        path = unquote(urlsplit(href).path)
        if self._root and path.startswith(self._root):
            path = path[len(self._root) :]
        path = "/" + path.strip("/")
        return path

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        self._ensure_open()
        try:
            response = self._session.request(
                method, self._url(path), timeout=self.options.timeout_seconds, **kwargs
            )
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise TransferFailure(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise translate_http_error(response.status_code, response.reason, path)
        return response

    def _propfind(self, path: str, depth: str) -> list[RemoteFileInfo]:
        response = self._request(
            "PROPFIND",
            path,
            data=PROPFIND_BODY,
            headers={"Depth": depth, "Content-Type": "application/xml"},
        )
        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise TransferFailure(f"Malformed PROPFIND response for {path}: {e}") from e

        results = []
        for item in root.iter(f"{DAV_NS}response"):
            href = item.findtext(f"{DAV_NS}href")
            if not href:
                continue
            prop = item.find(f"{DAV_NS}propstat/{DAV_NS}prop")
            if prop is None:
                continue
            resource_type = prop.find(f"{DAV_NS}resourcetype")
            is_dir = resource_type is not None and resource_type.find(f"{DAV_NS}collection") is not None
            length = prop.findtext(f"{DAV_NS}getcontentlength") or "0"
            results.append(
                RemoteFileInfo.for_path(
                    self._path_from_href(href),
                    length=0 if is_dir else int(length.strip() or 0),
                    last_write_time=parse_http_date(prop.findtext(f"{DAV_NS}getlastmodified")),
                    is_directory=is_dir,
                )
            )
        return results

    def get_file_info(self, path: str) -> RemoteFileInfo:
        path = self.absolute_path(path)
        logger.debug("Getting file info: %s", path)
        for info in self._propfind(path, "0"):
            return info
        raise RemoteFileNotFound(f"File not found: {path}")

    def list_directory(self, path: str) -> list[RemoteFileInfo]:
        path = self.absolute_path(path)
        logger.debug("Listing directory: %s", path)
        # Depth 1 includes the collection itself
        results = [info for info in self._propfind(path, "1") if info.full_name != path]
        logger.debug("PROPFIND listed %d entries in %s", len(results), path)
        return results

    def create_directory(self, path: str) -> None:
        path = self.absolute_path(path)
        logger.debug("Creating directory: %s", path)
        self._request("MKCOL", path)

    def move_file(self, old_path: str, new_path: str) -> None:
        old_path = self.absolute_path(old_path)
        new_path = self.absolute_path(new_path)
        logger.debug("Renaming: %s -> %s", old_path, new_path)
        self._request(
            "MOVE", old_path, headers={"Destination": self._url(new_path), "Overwrite": "F"}
        )

    def _upload(self, local_path: str, remote_path: str, options: TransferOptions) -> None:
        with open(local_path, "rb") as f:
            self._request("PUT", remote_path, data=f)

    def _download(self, remote_path: str, local_path: str, options: TransferOptions) -> None:
        response = self._request("GET", remote_path, stream=True)
        try:
            with open(local_path, "wb") as f:
                for chunk in response.iter_content(CHUNK_SIZE):
                    f.write(chunk)
        except requests.RequestException as e:
            raise TransferFailure(f"GET {remote_path} failed: {e}") from e
        finally:
            response.close()

    def _remove(self, info: RemoteFileInfo) -> None:
        path = info.full_name
        if info.is_directory:
            # DELETE on a collection is recursive; only empty directories may go
            if self.list_directory(path):
                raise TransferFailure(f"Directory not empty: {path}")
            logger.debug("Deleting directory: %s", path)
        else:
            logger.debug("Deleting file: %s", path)
        self._request("DELETE", path)
