"""Client configuration defaults."""

from dataclasses import dataclass
from typing import Union

from resumable_tus.exceptions import InvalidConfiguration

TUS_VERSION = "1.0.0"

# Chunk size is a local transfer granularity, not something the server sees.
DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024

# Retry attempts allowed while the server offset is not advancing.
DEFAULT_MAX_RETRIES = 3

# Base delay in seconds, doubled after every failed attempt.
DEFAULT_RETRY_DELAY = 1.0

DEFAULT_TIMEOUT = 30.0


@dataclass
class UploadConfig:
    """Settings for one resumable upload.

    Attributes:
        chunk_size: Maximum number of bytes sent per PATCH request
        max_retries: Retries allowed after transport interruptions before giving up
        retry_delay: Base delay between retries in seconds (exponential backoff)
    """

    chunk_size: Union[int, float] = DEFAULT_CHUNK_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    def __post_init__(self):
        if isinstance(self.chunk_size, bool) or not isinstance(self.chunk_size, (int, float)):
            raise InvalidConfiguration(f"chunk_size must be a number, got {self.chunk_size!r}")
        if self.chunk_size < 1:
            raise InvalidConfiguration(f"chunk_size must be at least 1 byte, got {self.chunk_size}")
        self.chunk_size = int(self.chunk_size)
        if self.max_retries < 0:
            raise InvalidConfiguration(f"max_retries cannot be negative, got {self.max_retries}")
        if self.retry_delay < 0:
            raise InvalidConfiguration(f"retry_delay cannot be negative, got {self.retry_delay}")

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return self.retry_delay * (2**attempt)
