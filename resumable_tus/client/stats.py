"""Progress accounting for a single upload session."""

import time
from dataclasses import dataclass, replace

MiB = 1024 * 1024


@dataclass
class UploadStats:
    """Progress of one upload session, as acknowledged by the server.

    ``uploaded_bytes`` always mirrors the server offset, so a session that
    resumes a partial upload starts above zero. Rates are computed from the
    bytes sent in this session only (``sent_bytes``).

    Attributes:
        total_bytes: Declared length of the upload resource
        uploaded_bytes: Server offset after the last acknowledgement
        resumed_from: Server offset when this session started
        chunks_completed: Chunks acknowledged in this session
        chunks_retried: Recoveries after a transport interruption
        offset_resyncs: Offset re-queries after an acknowledgement mismatch
        start_time: Session start, as returned by ``time.time()``
    """

    total_bytes: int
    uploaded_bytes: int = 0
    resumed_from: int = 0
    chunks_completed: int = 0
    chunks_retried: int = 0
    offset_resyncs: int = 0
    start_time: float = 0.0

    def __post_init__(self):
        if not self.start_time:
            self.start_time = time.time()

    def snapshot(self) -> "UploadStats":
        return replace(self)

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def sent_bytes(self) -> int:
        return max(self.uploaded_bytes - self.resumed_from, 0)

    @property
    def remaining_bytes(self) -> int:
        return max(self.total_bytes - self.uploaded_bytes, 0)

    @property
    def upload_speed(self) -> float:
        """Bytes per second sent in this session."""
        elapsed = self.elapsed_time
        return self.sent_bytes / elapsed if elapsed > 0 else 0.0

    @property
    def upload_speed_mbps(self) -> float:
        return self.upload_speed / MiB

    @property
    def progress_percent(self) -> float:
        """Server-acknowledged share of the upload, 0-100.

        An empty upload is complete as soon as it exists.
        """
        if self.total_bytes <= 0:
            return 100.0
        return self.uploaded_bytes * 100 / self.total_bytes

    @property
    def eta_seconds(self) -> float:
        speed = self.upload_speed
        return self.remaining_bytes / speed if speed > 0 else 0.0
