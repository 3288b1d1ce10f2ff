"""TUS protocol client implementation."""

import logging
from dataclasses import replace
from threading import Lock
from typing import Optional, Union

from resumable_tus.client.machine import ProgressCallback, ResumableUpload
from resumable_tus.config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    TUS_VERSION,
    UploadConfig,
)
from resumable_tus.exceptions import ResourceGone, ResourceNotFound
from resumable_tus.files import LocalFile, PathLike
from resumable_tus.transport import HttpTransport, Metadata, ServerInfo, Transport, UploadInfo

logger = logging.getLogger(__name__)


class TusClient:
    """TUS protocol client for uploading files.

    This client implements TUS protocol version 1.0.0 as specified at:
    https://tus.io/protocols/resumable-upload.html

    Requests go through a ``Transport``. By default an ``HttpTransport`` is
    built from the HTTP options below; any other implementation of the three
    tus operations can be injected instead.

    Features:
        - Upload creation with metadata
        - Chunked upload with configurable chunk size (default: 5 MiB)
        - Automatic resume from the server's offset after interruptions
        - Progress tracking via callbacks
        - Optional SHA1 checksum per chunk

    Example:
        >>> client = TusClient(chunk_size=1024 * 1024)
        >>> url = client.create("http://localhost:8080/files", "large_file.bin")
        >>> client.upload(url, "large_file.bin")
        >>> # Interrupted? Calling upload again resumes where the server left off
        >>> client.upload(url, "large_file.bin")
    """

    TUS_VERSION = TUS_VERSION

    def __init__(
        self,
        transport: Optional[Transport] = None,
        chunk_size: Union[int, float] = DEFAULT_CHUNK_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        headers: Optional[dict[str, str]] = None,
        checksum: bool = True,
        verify_tls_cert: bool = True,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        metadata_encoding: str = "utf-8",
        use_method_override: bool = False,
    ):
        """Initialize TUS client.

        Args:
            transport: Custom transport; the HTTP options below are ignored when given
            chunk_size: Default size of upload chunks in bytes (default: 5 MiB)
            max_retries: Retries after transport interruptions (default: 3)
            retry_delay: Base delay between retries in seconds (default: 1.0)
            headers: Optional custom headers to include in all requests
            checksum: Enable checksum verification (default: True)
            verify_tls_cert: Verify TLS certificates (default: True)
            timeout: Socket timeout per request in seconds (default: 30)
            metadata_encoding: Encoding for metadata values (default: utf-8)
            use_method_override: Tunnel PATCH and DELETE through POST

        Raises:
            InvalidConfiguration: If chunk_size < 1, or max_retries/retry_delay is negative
        """
        self.config = UploadConfig(
            chunk_size=chunk_size, max_retries=max_retries, retry_delay=retry_delay
        )
        self.transport = transport or HttpTransport(
            headers=headers,
            checksum=checksum,
            verify_tls_cert=verify_tls_cert,
            timeout=timeout,
            metadata_encoding=metadata_encoding,
            use_method_override=use_method_override,
        )
        # url -> length of the file uploaded to it
        self._completed: dict[str, int] = {}
        self._completed_lock = Lock()

    @property
    def chunk_size(self) -> int:
        return self.config.chunk_size

    # Entry points

    def create(self, destination: str, path: PathLike) -> str:
        """Create an upload for ``path`` under ``destination`` and return its URL.

        Raises:
            FileAccessError: If the file is missing or unreadable
            CreationFailed: If the server does not create the upload
        """
        return self.create_with_metadata(destination, path, {})

    def create_with_metadata(self, destination: str, path: PathLike, metadata: Metadata) -> str:
        """Create an upload including the given metadata and return its URL.

        Args:
            destination: Collection URL of the tus server
            path: Path to file to upload
            metadata: Metadata key-value pairs stored with the upload

        Raises:
            FileAccessError: If the file is missing or unreadable
            InvalidConfiguration: If a metadata key is empty or contains spaces or commas
            CreationFailed: If the server does not create the upload
        """
        uploader = ResumableUpload(self.transport, self._open(path), config=self.config)
        return uploader.create(destination, metadata)

    def upload(
        self,
        url: str,
        path: PathLike,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Upload ``path`` to an existing upload URL with the default chunk size.

        See ``upload_with_chunk_size``.
        """
        self.upload_with_chunk_size(url, path, self.config.chunk_size, progress_callback)

    def upload_with_chunk_size(
        self,
        url: str,
        path: PathLike,
        chunk_size: Union[int, float],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Upload ``path`` to ``url`` in chunks of ``chunk_size`` bytes.

        The transfer starts at the offset the server reports, so calling this
        again after a failure or cancellation resumes the upload. Once this
        client has completed ``url``, further calls with a file of the same
        length return immediately.

        Args:
            url: URL of an existing upload
            path: Path to file to upload
            chunk_size: Size of upload chunks in bytes
            progress_callback: Optional callback function receiving UploadStats

        Raises:
            InvalidConfiguration: If chunk_size is less than 1
            FileAccessError: If the file is missing or unreadable
            UnequalSize: If the upload was created for a file of another length
            TusClientError: Any terminal upload error (see ResumableUpload.upload)
        """
        config = replace(self.config, chunk_size=chunk_size)
        file = self._open(path)
        length = file.length()
        with self._completed_lock:
            if self._completed.get(url) == length:
                logger.debug(f"Upload {url} already completed, nothing to send")
                return

        uploader = ResumableUpload(self.transport, file, url=url, config=config)
        uploader.upload(progress_callback)

        with self._completed_lock:
            self._completed[url] = length

    def upload_file(
        self,
        destination: str,
        path: PathLike,
        metadata: Optional[Metadata] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str:
        """Create an upload and transfer the whole file in one call.

        A ``filename`` metadata entry is added when not present.

        Returns:
            URL of the uploaded file
        """
        file = self._open(path)
        metadata = dict(metadata or {})
        metadata.setdefault("filename", file.name)

        uploader = ResumableUpload(self.transport, file, config=self.config)
        url = uploader.create(destination, metadata)
        uploader.upload(progress_callback)

        with self._completed_lock:
            self._completed[url] = uploader.total_length
        return url

    def create_uploader(
        self,
        url: str,
        path: PathLike,
        chunk_size: Optional[Union[int, float]] = None,
    ) -> ResumableUpload:
        """Return a ResumableUpload for step-wise control of an existing upload.

        Example:
            >>> uploader = client.create_uploader(url, "file.bin")
            >>> while uploader.upload_chunk():
            ...     print(uploader.stats.progress_percent)
        """
        config = self.config if chunk_size is None else replace(self.config, chunk_size=chunk_size)
        return ResumableUpload(self.transport, self._open(path), url=url, config=config)

    # Informational requests

    def get_info(self, url: str) -> UploadInfo:
        """Get offset, length and metadata of an upload.

        Raises:
            ResourceGone: If the upload does not exist
        """
        try:
            return self.transport.get_info(url)
        except ResourceNotFound as e:
            raise ResourceGone(
                f"Upload resource no longer exists: {url}",
                url=url,
                status_code=e.status_code,
                response_content=e.response_content,
            ) from e

    def get_server_info(self, url: str) -> ServerInfo:
        """Get server protocol versions, extensions and maximum upload size."""
        return self.transport.get_server_info(url)

    def delete(self, url: str) -> None:
        """Terminate an upload on the server.

        Raises:
            ResourceGone: If the upload does not exist
        """
        try:
            self.transport.delete(url)
        except ResourceNotFound as e:
            raise ResourceGone(
                f"Upload resource no longer exists: {url}",
                url=url,
                status_code=e.status_code,
                response_content=e.response_content,
            ) from e
        finally:
            with self._completed_lock:
                self._completed.pop(url, None)

    def _open(self, path: PathLike) -> LocalFile:
        file = LocalFile(path)
        file.check_readable()
        return file
