"""Resumable upload state machine.

One ``ResumableUpload`` drives one file into one upload resource::

    IDLE -> RESOURCE_ESTABLISHED -> OFFSETTING -> TRANSFERRING -> COMPLETED
                                        ^              |
                                        +--------------+  (interruption, offset mismatch)

Any state but COMPLETED can move to FAILED. The server is the only authority
on the offset: every (re)start of a transfer begins with a fresh offset query,
and a chunk is only counted once the server acknowledges exactly the offset
the client expects.
"""

import logging
import time
from contextlib import contextmanager
from enum import Enum
from threading import Event, Lock
from typing import Callable, Optional

from resumable_tus.chunker import ChunkDescriptor, ChunkPlan
from resumable_tus.client.stats import UploadStats
from resumable_tus.config import UploadConfig
from resumable_tus.exceptions import (
    CreationFailed,
    InconsistentOffset,
    InvalidState,
    OffsetMismatch,
    OffsetQueryFailed,
    ResourceGone,
    ResourceNotFound,
    RetriesExhausted,
    TransportError,
    TransportInterrupted,
    TusClientError,
    UnequalSize,
    UploadCancelled,
)
from resumable_tus.files import LocalFile
from resumable_tus.transport import Metadata, Transport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadStats], None]


class UploadState(Enum):
    IDLE = "idle"
    RESOURCE_ESTABLISHED = "resource_established"
    OFFSETTING = "offsetting"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"


TRANSITIONS = {
    UploadState.IDLE: {UploadState.RESOURCE_ESTABLISHED, UploadState.FAILED},
    UploadState.RESOURCE_ESTABLISHED: {UploadState.OFFSETTING, UploadState.FAILED},
    UploadState.OFFSETTING: {UploadState.OFFSETTING, UploadState.TRANSFERRING, UploadState.FAILED},
    UploadState.TRANSFERRING: {UploadState.OFFSETTING, UploadState.COMPLETED, UploadState.FAILED},
    UploadState.COMPLETED: set(),
    UploadState.FAILED: set(),
}


class ResumableUpload:
    """Upload of one local file to one tus upload resource.

    The upload URL is either supplied (an existing resource) or obtained with
    ``create()``. ``upload()`` then runs the transfer to completion; it can be
    called again after a cancellation and is a no-op once completed.

    Only ``TransportInterrupted`` is retried, and only while transferring: the
    offset is re-queried and the transfer resumes from the server's value.
    The retry budget (``config.max_retries``) is reset whenever the server
    offset advances.

    Example:
        >>> upload = ResumableUpload(HttpTransport(), LocalFile("file.bin"))
        >>> upload.create("http://localhost:8080/files")
        >>> upload.upload(progress_callback=lambda s: print(s.progress_percent))
    """

    def __init__(
        self,
        transport: Transport,
        file: LocalFile,
        url: Optional[str] = None,
        config: Optional[UploadConfig] = None,
    ):
        """Initialize the upload.

        Args:
            transport: Transport performing create, offset query and patch requests
            file: Source file; its length is read once and fixed for the upload
            url: URL of an existing upload resource (skips creation)
            config: Chunk size and retry settings (defaults: UploadConfig())

        Raises:
            FileAccessError: If the file length cannot be determined
        """
        self.transport = transport
        self.file = file
        self.config = config or UploadConfig()
        self.total_length = file.length()
        self.url = url
        self.offset = 0
        self.error: Optional[TusClientError] = None

        self._state = UploadState.RESOURCE_ESTABLISHED if url else UploadState.IDLE
        self._plan = ChunkPlan(self.total_length, self.config.chunk_size)
        self._attempts = 0
        self._cancel_event = Event()
        self._stats = UploadStats(total_bytes=self.total_length)
        self.stats_lock = Lock()

    def __repr__(self) -> str:
        return (
            f"ResumableUpload(url={self.url!r}, state={self._state.value}, "
            f"offset={self.offset}, total_length={self.total_length})"
        )

    @property
    def state(self) -> UploadState:
        return self._state

    @property
    def is_complete(self) -> bool:
        return self._state is UploadState.COMPLETED

    @property
    def remaining_plan(self) -> ChunkPlan:
        """Chunks still to send, derived from the last known offset."""
        return self._plan.resume_from(self.offset)

    @property
    def stats(self) -> UploadStats:
        """Get a copy of the upload statistics."""
        with self.stats_lock:
            return self._stats.snapshot()

    def cancel(self) -> None:
        """Ask a running upload to stop before its next chunk.

        Safe to call from another thread. The chunk in flight, if any, is
        allowed to finish; ``upload()`` then raises UploadCancelled and can
        be called again later to resume.
        """
        self._cancel_event.set()

    # Operations

    def create(self, destination_url: str, metadata: Optional[Metadata] = None) -> str:
        """Create the upload resource on the server.

        Args:
            destination_url: Collection URL to create the upload under
            metadata: Optional metadata dictionary

        Returns:
            URL of the new upload resource

        Raises:
            CreationFailed: If the server does not create the resource
            InvalidState: If the upload already has a resource
        """
        if self._state is not UploadState.IDLE:
            raise InvalidState(
                f"Upload resource already established: {self.url}", url=self.url
            )

        with self._failing():
            try:
                url = self.transport.create(destination_url, self.total_length, metadata)
            except TransportError as e:
                raise CreationFailed(
                    f"Failed to create upload at {destination_url}: {e}",
                    url=destination_url,
                    status_code=e.status_code,
                    response_content=e.response_content,
                ) from e

            self.url = url
            self._transition(UploadState.RESOURCE_ESTABLISHED)

        logger.info(f"Upload created: {url} ({self.total_length} bytes)")
        return url

    def upload(self, progress_callback: Optional[ProgressCallback] = None) -> str:
        """Transfer the rest of the file, resuming at the server's offset.

        Args:
            progress_callback: Optional callback receiving UploadStats after every chunk

        Returns:
            Upload URL

        Raises:
            ResourceGone: If the resource no longer exists on the server
            InconsistentOffset: If the server reports an impossible offset
            UnequalSize: If the resource was created for a different file length
            OffsetQueryFailed: If the initial offset query fails
            RetriesExhausted: If interruptions persist past the retry budget
            TransportRejected: If the server explicitly rejects a chunk
            FileAccessError: If the local file cannot be read
            UploadCancelled: If cancel() was called
        """
        if self._state is UploadState.COMPLETED:
            return self.url
        self._check_can_transfer()

        logger.info(f"Starting upload of {self.file} to {self.url} ({self.total_length} bytes)")
        logger.info(f"Chunk size: {self.config.chunk_size}, Max retries: {self.config.max_retries}")

        with self._failing():
            self._start_transfer()
            while self._state is not UploadState.COMPLETED:
                self._check_cancelled()
                self._step(progress_callback)

        logger.info(
            f"Upload completed in {self._stats.elapsed_time:.2f}s "
            f"({self._stats.upload_speed_mbps:.2f} MB/s)"
        )
        return self.url

    def upload_chunk(self, progress_callback: Optional[ProgressCallback] = None) -> bool:
        """Send a single chunk (or recover from a failed one).

        Returns:
            True if more chunks remain, False if upload is complete
        """
        if self._state is UploadState.COMPLETED:
            return False
        self._check_can_transfer()

        with self._failing():
            if self._state is not UploadState.TRANSFERRING:
                self._start_transfer()
            if self._state is not UploadState.COMPLETED:
                self._step(progress_callback)

        return self._state is not UploadState.COMPLETED

    # Transitions

    def _transition(self, new_state: UploadState) -> None:
        if new_state not in TRANSITIONS[self._state]:
            raise InvalidState(
                f"Cannot move upload from {self._state.value} to {new_state.value}",
                url=self.url,
                offset=self.offset,
            )
        logger.debug(f"{self.url}: {self._state.value} -> {new_state.value}")
        self._state = new_state

    @contextmanager
    def _failing(self):
        """Move to FAILED when a client error escapes, except for cancellation."""
        try:
            yield
        except UploadCancelled:
            raise
        except TusClientError as e:
            logger.error(f"Upload {self.url or '<not created>'} failed at offset {self.offset}: {e}")
            self.error = e
            self._transition(UploadState.FAILED)
            raise

    def _check_can_transfer(self) -> None:
        if self._state is UploadState.FAILED:
            raise InvalidState(
                f"Upload {self.url} has failed; start a new upload to resume it",
                url=self.url,
                offset=self.offset,
            )
        if self.url is None:
            raise InvalidState("Upload resource has not been created")

    def _check_cancelled(self) -> None:
        if not self._cancel_event.is_set():
            return
        self._cancel_event.clear()
        # The next run must start from a fresh offset query.
        self._transition(UploadState.OFFSETTING)
        logger.info(f"Upload {self.url} cancelled at offset {self.offset}")
        raise UploadCancelled(
            f"Upload cancelled at offset {self.offset}", url=self.url, offset=self.offset
        )

    def _start_transfer(self) -> None:
        self._query_offset(recovering=False)
        with self.stats_lock:
            self._stats.resumed_from = self.offset
            self._stats.uploaded_bytes = self.offset
        if self.offset > 0:
            logger.info(f"Resuming {self.url} at offset {self.offset}")
        self._enter_transferring()

    def _enter_transferring(self) -> None:
        self._transition(UploadState.TRANSFERRING)
        if self.offset == self.total_length:
            self._transition(UploadState.COMPLETED)

    def _step(self, progress_callback: Optional[ProgressCallback]) -> None:
        """Send the next chunk; on interruption or mismatch, re-query the offset."""
        chunk = next(iter(self.remaining_plan))
        try:
            self._send_chunk(chunk)
        except TransportInterrupted as e:
            self._recover_from_interruption(e)
            self._enter_transferring()
            return
        except OffsetMismatch as e:
            self._resync_after_mismatch(e)
            self._enter_transferring()
            return

        if progress_callback:
            self._report_progress(progress_callback)

        if self.offset == self.total_length:
            self._transition(UploadState.COMPLETED)

    def _report_progress(self, progress_callback: ProgressCallback) -> None:
        """Call the progress callback; its errors propagate and leave the upload resumable."""
        try:
            progress_callback(self.stats)
        except Exception:
            # The chunk is acknowledged; the next run re-queries the offset.
            logger.warning(f"Progress callback failed for {self.url} at offset {self.offset}")
            self._transition(UploadState.OFFSETTING)
            raise

    # Offset handling

    def _query_offset(self, recovering: bool) -> None:
        """Enter OFFSETTING, check the server length and record its offset.

        When ``recovering`` is set an interruption propagates unchanged so the
        caller can count it against the retry budget.
        """
        self._transition(UploadState.OFFSETTING)
        try:
            info = self.transport.query_upload(self.url)
        except ResourceNotFound as e:
            raise ResourceGone(
                f"Upload resource no longer exists: {self.url}",
                url=self.url,
                offset=self.offset,
                status_code=e.status_code,
                response_content=e.response_content,
            ) from e
        except TransportInterrupted as e:
            if recovering:
                raise
            raise OffsetQueryFailed(
                f"Failed to get offset of {self.url}: {e}", url=self.url, offset=self.offset
            ) from e
        except TransportError as e:
            raise OffsetQueryFailed(
                f"Failed to get offset of {self.url}: {e}",
                url=self.url,
                offset=self.offset,
                status_code=e.status_code,
                response_content=e.response_content,
            ) from e

        self._check_length(info.length)
        offset = info.offset
        self._validate_offset(offset)
        if recovering and offset < self.offset:
            raise InconsistentOffset(
                f"Server offset {offset} went back from acknowledged offset {self.offset}",
                url=self.url,
                offset=self.offset,
            )
        self._record_offset(offset)

    def _check_length(self, server_length: Optional[int]) -> None:
        if server_length is None or server_length == self.total_length:
            return
        raise UnequalSize(
            f"{self.file} is {self.total_length} bytes but {self.url} "
            f"was created for {server_length} bytes",
            local_length=self.total_length,
            server_length=server_length,
            url=self.url,
            offset=self.offset,
        )

    def _validate_offset(self, offset: int) -> None:
        if not 0 <= offset <= self.total_length:
            raise InconsistentOffset(
                f"Server reported offset {offset} outside of upload length {self.total_length}",
                url=self.url,
                offset=self.offset,
            )

    def _record_offset(self, offset: int) -> None:
        if offset > self.offset:
            self._attempts = 0
        self.offset = offset
        with self.stats_lock:
            self._stats.uploaded_bytes = offset

    def _send_chunk(self, chunk: ChunkDescriptor) -> None:
        data = self.file.read_range(chunk.start_offset, chunk.length)
        try:
            new_offset = self.transport.patch(self.url, chunk.start_offset, data)
        except ResourceNotFound as e:
            raise ResourceGone(
                f"Upload resource no longer exists: {self.url}",
                url=self.url,
                offset=self.offset,
                status_code=e.status_code,
                response_content=e.response_content,
            ) from e

        self._validate_offset(new_offset)
        if new_offset != chunk.end_offset:
            raise OffsetMismatch(
                f"Server acknowledged offset {new_offset}, expected {chunk.end_offset}",
                expected=chunk.end_offset,
                actual=new_offset,
                url=self.url,
                offset=self.offset,
            )

        self._record_offset(new_offset)
        with self.stats_lock:
            self._stats.chunks_completed += 1
        logger.debug(f"Chunk at offset {chunk.start_offset} acknowledged ({chunk.length} bytes)")

    def _recover_from_interruption(self, error: TransportInterrupted) -> None:
        """Back off and re-query the offset until it succeeds or the budget runs out."""
        while True:
            self._attempts += 1
            if self._attempts > self.config.max_retries:
                raise RetriesExhausted(
                    f"Upload interrupted at offset {self.offset} "
                    f"after {self._attempts} attempts: {error}",
                    attempts=self._attempts,
                    url=self.url,
                    offset=self.offset,
                ) from error

            delay = self.config.backoff(self._attempts - 1)
            logger.warning(
                f"Upload interrupted at offset {self.offset} "
                f"(attempt {self._attempts}/{self.config.max_retries}): {error}. "
                f"Retrying in {delay:.1f}s..."
            )
            time.sleep(delay)

            try:
                self._query_offset(recovering=True)
            except TransportInterrupted as e:
                error = e
                continue

            with self.stats_lock:
                self._stats.chunks_retried += 1
            return

    def _resync_after_mismatch(self, error: OffsetMismatch) -> None:
        self._attempts += 1
        with self.stats_lock:
            self._stats.offset_resyncs += 1
        if self._attempts > self.config.max_retries:
            raise error

        logger.warning(f"{error}; re-querying offset of {self.url}")
        try:
            self._query_offset(recovering=True)
        except TransportInterrupted as e:
            self._recover_from_interruption(e)
