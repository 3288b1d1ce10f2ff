"""Local file access used by the uploader."""

import os
from typing import Union

from resumable_tus.exceptions import FileAccessError

PathLike = Union[str, "os.PathLike[str]"]


class LocalFile:
    """Read-only view of a file on disk.

    The file is opened for every read rather than held open, so an upload
    object can live across long pauses without keeping a descriptor around.
    I/O failures surface as FileAccessError and are never retried.
    """

    def __init__(self, path: PathLike):
        self.path = os.fspath(path)

    def __repr__(self) -> str:
        return f"LocalFile({self.path!r})"

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    def length(self) -> int:
        """Return the size of the file in bytes."""
        if not os.path.isfile(self.path):
            raise FileAccessError(f"File not found: {self.path}")
        try:
            return os.path.getsize(self.path)
        except OSError as e:
            raise FileAccessError(f"Cannot determine size of {self.path}: {e}") from e

    def check_readable(self) -> None:
        """Raise FileAccessError unless the file exists and can be opened for reading."""
        try:
            with open(self.path, "rb"):
                pass
        except OSError as e:
            raise FileAccessError(f"File is not readable: {self.path}: {e}") from e

    def read_range(self, offset: int, length: int) -> bytes:
        """Read exactly ``length`` bytes starting at ``offset``."""
        try:
            with open(self.path, "rb") as f:
                f.seek(offset)
                data = f.read(length)
        except OSError as e:
            raise FileAccessError(
                f"Failed to read {length} bytes at offset {offset} from {self.path}: {e}",
                offset=offset,
            ) from e

        # Verify chunk was read correctly
        if len(data) != length:
            raise FileAccessError(
                f"Read {len(data)} bytes, expected {length} at offset {offset} from {self.path}",
                offset=offset,
            )
        return data
