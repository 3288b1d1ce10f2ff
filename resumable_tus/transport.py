"""Transport capability used by the upload state machine.

The state machine only knows the three operations of the abstract
``Transport``: create a resource, query its offset and patch a chunk.
``HttpTransport`` implements them for tus 1.0.0 on top of ``urllib`` and adds
the informational requests (HEAD info, OPTIONS, DELETE) used by the client.

Error mapping of ``HttpTransport``:
    - connection failures, timeouts and 502/503/504 -> TransportInterrupted
    - 404 and 410 -> ResourceNotFound
    - any other unexpected status and TLS failures -> TransportRejected
    - missing or malformed protocol headers -> ProtocolError
    - a malformed URL -> InvalidConfiguration
"""

import base64
import binascii
import hashlib
import logging
import re
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from http.client import HTTPException
from typing import Any, Mapping, Optional, Union
from urllib.error import HTTPError, URLError
from urllib.parse import urljoin
from urllib.request import Request, urlopen

from resumable_tus.config import DEFAULT_TIMEOUT, TUS_VERSION
from resumable_tus.exceptions import (
    InvalidConfiguration,
    ProtocolError,
    ResourceNotFound,
    TransportInterrupted,
    TransportRejected,
)

logger = logging.getLogger(__name__)

Metadata = Mapping[str, Union[str, bytes]]

# Header names, lower case for lookups.
LOCATION = "location"
UPLOAD_OFFSET = "upload-offset"
UPLOAD_LENGTH = "upload-length"
UPLOAD_METADATA = "upload-metadata"
TUS_VERSION_HEADER = "tus-version"
TUS_EXTENSION = "tus-extension"
TUS_MAX_SIZE = "tus-max-size"

NOT_FOUND_STATUSES = (404, 410)
GATEWAY_STATUSES = (502, 503, 504)


class Transport(ABC):
    """Abstract interface for the three tus operations the uploader needs.

    Implementations raise ``TransportInterrupted`` when a request may not
    have reached the server or its answer was lost, ``ResourceNotFound`` when
    the upload resource does not exist, and ``TransportRejected`` for any
    other explicit refusal.
    """

    @abstractmethod
    def create(self, destination_url: str, total_length: int, metadata: Optional[Metadata] = None) -> str:
        """
        Create a new upload resource.

        Args:
            destination_url: Collection URL the upload is created under
            total_length: Size of the upload in bytes
            metadata: Optional metadata key-value pairs

        Returns:
            URL of the created upload resource
        """
        pass

    @abstractmethod
    def query_offset(self, resource_url: str) -> int:
        """
        Return the number of bytes the server has accepted for an upload.

        Args:
            resource_url: URL of the upload resource
        """
        pass

    @abstractmethod
    def patch(self, resource_url: str, offset: int, data: bytes) -> int:
        """
        Append ``data`` to the upload at ``offset``.

        Args:
            resource_url: URL of the upload resource
            offset: Offset the data starts at
            data: Bytes to send

        Returns:
            The new offset reported by the server
        """
        pass

    def query_upload(self, resource_url: str) -> "UploadInfo":
        """Return the offset and, where the transport learns it, the upload length.

        The default wraps ``query_offset`` and reports the length as unknown.
        Transports whose offset query also carries the length should override
        it so the uploader can check the resource against the local file.
        """
        return UploadInfo(offset=self.query_offset(resource_url))

    # Optional operations, not needed to upload

    def get_info(self, resource_url: str) -> "UploadInfo":
        """Return offset, length and metadata of an upload."""
        raise NotImplementedError(f"{type(self).__name__} does not support get_info")

    def get_server_info(self, url: str) -> "ServerInfo":
        """Return the capabilities announced by the server."""
        raise NotImplementedError(f"{type(self).__name__} does not support get_server_info")

    def delete(self, resource_url: str) -> None:
        """Terminate an upload."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")


class TusExtension(Enum):
    """Protocol extensions a server may announce in ``Tus-Extension``."""

    CREATION = "creation"
    EXPIRATION = "expiration"
    CHECKSUM = "checksum"
    TERMINATION = "termination"
    CONCATENATION = "concatenation"


@dataclass
class UploadInfo:
    """State of an upload resource as reported by the server.

    Attributes:
        offset: Bytes accepted by the server so far
        length: Total upload length (None if the server did not report it)
        metadata: Metadata supplied when the upload was created
    """

    offset: int
    length: Optional[int] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.length is not None and self.offset >= self.length


@dataclass
class ServerInfo:
    """Capabilities announced by a tus server.

    Attributes:
        versions: Supported protocol versions, in the server's order of preference
        extensions: Supported protocol extensions (unknown ones are dropped)
        max_size: Maximum upload size in bytes (None if unlimited)
    """

    versions: list[str]
    extensions: list[TusExtension] = field(default_factory=list)
    max_size: Optional[int] = None

    def supports(self, extension: TusExtension) -> bool:
        return extension in self.extensions


@dataclass
class HttpResponse:
    status: int
    headers: Any
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        if self.headers is None:
            return None
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


def encode_metadata(metadata: Metadata, encoding: str = "utf-8") -> str:
    """
    Encode metadata as an ``Upload-Metadata`` header value.

    Args:
        metadata: Dictionary of metadata key-value pairs
        encoding: Encoding applied to str values before base64

    Returns:
        Comma separated ``key base64(value)`` pairs

    Raises:
        InvalidConfiguration: If metadata keys contain invalid characters
    """
    encoded_list = []
    for key, value in metadata.items():
        key_str = str(key)

        # Validate key does not contain spaces or commas
        if re.search(r"^$|[\s,]+", key_str):
            raise InvalidConfiguration(
                f'Upload-metadata key "{key_str}" cannot be empty nor contain spaces or commas.'
            )

        value_bytes = value.encode(encoding) if isinstance(value, str) else bytes(value)
        if not value_bytes:
            encoded_list.append(key_str)
            continue
        encoded_value = base64.b64encode(value_bytes).decode("ascii")
        encoded_list.append(f"{key_str} {encoded_value}")

    return ",".join(encoded_list)


def decode_metadata(header: Optional[str], encoding: str = "utf-8") -> dict[str, str]:
    """Parse an ``Upload-Metadata`` header value into a dictionary."""
    metadata: dict[str, str] = {}
    if not header:
        return metadata

    for pair in header.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, _, value = pair.partition(" ")
        try:
            metadata[key] = base64.b64decode(value, validate=True).decode(encoding)
        except (binascii.Error, UnicodeDecodeError):
            # If decoding fails, use raw value
            metadata[key] = value
    return metadata


class HttpTransport(Transport):
    """tus 1.0.0 transport over ``urllib``.

    Example:
        >>> transport = HttpTransport(headers={"Authorization": "Bearer token"})
        >>> url = transport.create("http://localhost:8080/files", 1024)
        >>> transport.query_offset(url)
        0
    """

    TUS_VERSION = TUS_VERSION

    def __init__(
        self,
        headers: Optional[dict[str, str]] = None,
        checksum: bool = True,
        verify_tls_cert: bool = True,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        metadata_encoding: str = "utf-8",
        use_method_override: bool = False,
    ):
        """Initialize HTTP transport.

        Args:
            headers: Optional custom headers to include in all requests
            checksum: Send a SHA1 Upload-Checksum header with every chunk (default: True)
            verify_tls_cert: Verify TLS certificates (default: True)
            timeout: Socket timeout in seconds for every request (default: 30)
            metadata_encoding: Encoding for metadata values (default: utf-8)
            use_method_override: Send PATCH and DELETE as POST with an
                X-HTTP-Method-Override header, for environments that block them
        """
        self.headers = dict(headers or {})
        self.checksum = checksum
        self.verify_tls_cert = verify_tls_cert
        self.timeout = timeout
        self.metadata_encoding = metadata_encoding
        self.use_method_override = use_method_override
        self._ssl_context = None
        if not verify_tls_cert:
            self._ssl_context = ssl.create_default_context()
            self._ssl_context.check_hostname = False
            self._ssl_context.verify_mode = ssl.CERT_NONE

    def update_headers(self, headers: dict[str, str]) -> None:
        """Update custom headers for all requests."""
        self.headers.update(headers)

    def get_headers(self) -> dict[str, str]:
        """Get a copy of the current custom headers."""
        return self.headers.copy()

    # Transport operations

    def create(self, destination_url: str, total_length: int, metadata: Optional[Metadata] = None) -> str:
        headers = {"Upload-Length": str(total_length)}
        if metadata:
            headers["Upload-Metadata"] = encode_metadata(metadata, self.metadata_encoding)

        response = self._send("POST", destination_url, headers)
        self._check_status(response, "POST", destination_url, expected=(201,))

        location = response.header(LOCATION)
        if not location:
            raise ProtocolError("Server did not return Location header", url=destination_url)

        # Handle relative URLs
        return urljoin(destination_url, location)

    def query_offset(self, resource_url: str) -> int:
        response = self._send("HEAD", resource_url)
        self._check_status(response, "HEAD", resource_url, expected=(200, 204))
        return self._parse_offset(response, resource_url)

    def query_upload(self, resource_url: str) -> UploadInfo:
        # The HEAD response already carries Upload-Length
        return self.get_info(resource_url)

    def patch(self, resource_url: str, offset: int, data: bytes) -> int:
        headers = {
            "Upload-Offset": str(offset),
            "Content-Type": "application/offset+octet-stream",
            "Content-Length": str(len(data)),
        }

        # Add checksum if enabled
        if self.checksum:
            checksum_bytes = hashlib.sha1(data).digest()
            checksum_b64 = base64.b64encode(checksum_bytes).decode("ascii")
            headers["Upload-Checksum"] = f"sha1 {checksum_b64}"

        response = self._send("PATCH", resource_url, headers, data=data)
        self._check_status(response, "PATCH", resource_url, expected=(200, 204), offset=offset)
        return self._parse_offset(response, resource_url)

    # Informational requests

    def get_info(self, resource_url: str) -> UploadInfo:
        """Fetch offset, length and metadata of an upload (HEAD)."""
        response = self._send("HEAD", resource_url)
        self._check_status(response, "HEAD", resource_url, expected=(200, 204))

        length = response.header(UPLOAD_LENGTH)
        try:
            parsed_length = int(length) if length is not None else None
        except ValueError as e:
            raise ProtocolError(f"Invalid Upload-Length header: {length!r}", url=resource_url) from e

        return UploadInfo(
            offset=self._parse_offset(response, resource_url),
            length=parsed_length,
            metadata=decode_metadata(response.header(UPLOAD_METADATA), self.metadata_encoding),
        )

    def get_server_info(self, url: str) -> ServerInfo:
        """Fetch the server's protocol versions, extensions and size limit (OPTIONS)."""
        response = self._send("OPTIONS", url, tus_headers=False)
        self._check_status(response, "OPTIONS", url, expected=(200, 204))

        tus_version = response.header(TUS_VERSION_HEADER) or self.TUS_VERSION
        versions = [v.strip() for v in tus_version.split(",") if v.strip()]

        extensions = []
        for name in (response.header(TUS_EXTENSION) or "").split(","):
            try:
                extensions.append(TusExtension(name.strip().lower()))
            except ValueError:
                continue

        max_size = response.header(TUS_MAX_SIZE)
        try:
            parsed_max_size = int(max_size) if max_size else None
        except ValueError as e:
            raise ProtocolError(f"Invalid Tus-Max-Size header: {max_size!r}", url=url) from e

        return ServerInfo(versions=versions, extensions=extensions, max_size=parsed_max_size)

    def delete(self, resource_url: str) -> None:
        """Terminate an upload (DELETE)."""
        response = self._send("DELETE", resource_url)
        self._check_status(response, "DELETE", resource_url, expected=(204,))

    # Plumbing

    def _send(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        data: Optional[bytes] = None,
        tus_headers: bool = True,
    ) -> HttpResponse:
        """Issue one request and return its status, headers and error body.

        Raises:
            TransportInterrupted: If no response was received
        """
        request_headers = {"Tus-Resumable": self.TUS_VERSION} if tus_headers else {}
        request_headers.update(headers or {})
        request_headers.update(self.headers)

        if self.use_method_override and method in ("PATCH", "DELETE"):
            request_headers["X-HTTP-Method-Override"] = method
            method = "POST"

        logger.debug(f"{request_headers.get('X-HTTP-Method-Override', method)} {url}")
        try:
            req = Request(url, data=data, headers=request_headers, method=method)
        except ValueError as e:
            raise InvalidConfiguration(f"Invalid URL {url!r}: {e}", url=url) from e

        try:
            with urlopen(req, timeout=self.timeout, context=self._ssl_context) as response:
                return HttpResponse(status=response.status, headers=response.headers)
        except HTTPError as e:
            return HttpResponse(status=e.code, headers=e.headers, body=e.read())
        except (HTTPException, OSError) as e:
            tls_error = _tls_failure(e)
            if tls_error is not None:
                raise TransportRejected(f"{method} {url} failed TLS negotiation: {tls_error}", url=url) from e
            # URLError, timeouts and dropped connections
            raise TransportInterrupted(f"{method} {url} was interrupted: {e}", url=url) from e

    def _check_status(
        self,
        response: HttpResponse,
        method: str,
        url: str,
        expected: tuple[int, ...],
        offset: Optional[int] = None,
    ) -> None:
        status = response.status
        if status in expected:
            return

        context = {
            "url": url,
            "offset": offset,
            "status_code": status,
            "response_content": response.body,
        }
        if status in NOT_FOUND_STATUSES:
            raise ResourceNotFound(f"Upload resource not found: {url}", **context)
        if status in GATEWAY_STATUSES:
            raise TransportInterrupted(f"{method} {url} failed with gateway status {status}", **context)
        raise TransportRejected(f"{method} {url} was rejected with status {status}", **context)

    def _parse_offset(self, response: HttpResponse, url: str) -> int:
        offset = response.header(UPLOAD_OFFSET)
        if offset is None:
            raise ProtocolError("Server did not return Upload-Offset header", url=url)
        try:
            value = int(offset)
        except ValueError as e:
            raise ProtocolError(f"Invalid Upload-Offset header: {offset!r}", url=url) from e
        if value < 0:
            raise ProtocolError(f"Negative Upload-Offset header: {offset!r}", url=url)
        return value


def _tls_failure(error: Exception) -> Optional[ssl.SSLError]:
    """Return the TLS error behind ``error`` unless it is a closed connection.

    urllib wraps handshake failures (certificate verification included) in
    ``URLError``. An abrupt EOF during TLS is a dropped connection and stays
    retryable.
    """
    reason = error.reason if isinstance(error, URLError) else error
    if not isinstance(reason, ssl.SSLError):
        return None
    if isinstance(reason, (ssl.SSLEOFError, ssl.SSLZeroReturnError)):
        return None
    return reason
