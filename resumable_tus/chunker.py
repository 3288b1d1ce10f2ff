"""Split an upload into contiguous byte ranges.

Chunk boundaries are multiples of the chunk size counted from byte 0. When an
upload resumes from an offset that is not on a boundary, the first range is
truncated so that it starts at that offset and the rest of the plan is
unchanged. The server never sees chunk boundaries; only offsets matter to it.
"""

from dataclasses import dataclass
from typing import Iterator

from resumable_tus.exceptions import InvalidConfiguration


@dataclass(frozen=True)
class ChunkDescriptor:
    """One byte range ``[start_offset, start_offset + length)`` of the file."""

    start_offset: int
    length: int

    @property
    def end_offset(self) -> int:
        return self.start_offset + self.length


def plan_chunks(total_length: int, chunk_size: int, resume_offset: int = 0) -> Iterator[ChunkDescriptor]:
    """Yield the chunks covering ``[resume_offset, total_length)`` in order.

    Args:
        total_length: Size of the whole upload in bytes
        chunk_size: Maximum length of a chunk in bytes
        resume_offset: First byte to cover (default: 0)

    Raises:
        InvalidConfiguration: If chunk_size < 1, total_length < 0 or
            resume_offset lies outside ``[0, total_length]``
    """
    _check_arguments(total_length, chunk_size, resume_offset)

    start = resume_offset
    while start < total_length:
        boundary = (start // chunk_size + 1) * chunk_size
        end = min(boundary, total_length)
        yield ChunkDescriptor(start_offset=start, length=end - start)
        start = end


def _check_arguments(total_length: int, chunk_size: int, resume_offset: int) -> None:
    if chunk_size < 1:
        raise InvalidConfiguration(f"chunk_size must be at least 1 byte, got {chunk_size}")
    if total_length < 0:
        raise InvalidConfiguration(f"total_length cannot be negative, got {total_length}")
    if not 0 <= resume_offset <= total_length:
        raise InvalidConfiguration(
            f"resume_offset {resume_offset} is outside of [0, {total_length}]"
        )


class ChunkPlan:
    """Restartable, ordered sequence of chunks for one upload.

    Iterating a plan twice yields the same descriptors; nothing is stored
    besides the three numbers it is derived from.

    Example:
        >>> plan = ChunkPlan(12, chunk_size=5, resume_offset=7)
        >>> [(c.start_offset, c.length) for c in plan]
        [(7, 3), (10, 2)]
    """

    def __init__(self, total_length: int, chunk_size: int, resume_offset: int = 0):
        _check_arguments(total_length, chunk_size, resume_offset)
        self.total_length = total_length
        self.chunk_size = chunk_size
        self.resume_offset = resume_offset

    def __iter__(self) -> Iterator[ChunkDescriptor]:
        return plan_chunks(self.total_length, self.chunk_size, self.resume_offset)

    def __len__(self) -> int:
        if self.resume_offset >= self.total_length:
            return 0
        first = self.resume_offset // self.chunk_size
        last = (self.total_length - 1) // self.chunk_size
        return last - first + 1

    def __repr__(self) -> str:
        return (
            f"ChunkPlan(total_length={self.total_length}, chunk_size={self.chunk_size}, "
            f"resume_offset={self.resume_offset})"
        )

    def resume_from(self, offset: int) -> "ChunkPlan":
        """Return the plan for the same upload starting at ``offset``."""
        return ChunkPlan(self.total_length, self.chunk_size, offset)

    @property
    def remaining_bytes(self) -> int:
        return self.total_length - self.resume_offset
