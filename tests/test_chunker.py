"""Test suite for chunk planning."""

import pytest

from resumable_tus.chunker import ChunkDescriptor, ChunkPlan, plan_chunks
from resumable_tus.exceptions import InvalidConfiguration

MiB = 1024 * 1024


def as_tuples(chunks):
    return [(c.start_offset, c.length) for c in chunks]


class TestPlanChunks:
    """Tests for plan_chunks."""

    @pytest.mark.parametrize("total_length", [0, 1, 2, 7, 10, 11, 64, 100])
    @pytest.mark.parametrize("chunk_size", [1, 3, 5, 10, 64, 1000])
    def test_chunks_partition_the_file(self, total_length, chunk_size):
        """Chunks cover [0, total_length) without gaps or overlaps."""
        chunks = list(plan_chunks(total_length, chunk_size))

        assert sum(c.length for c in chunks) == total_length
        position = 0
        for chunk in chunks:
            assert chunk.start_offset == position
            assert 0 < chunk.length <= chunk_size
            position = chunk.end_offset
        assert position == total_length

    def test_last_chunk_is_remainder(self):
        """Only the last chunk is shorter than chunk_size."""
        chunks = list(plan_chunks(23, 5))
        assert [c.length for c in chunks] == [5, 5, 5, 5, 3]

    def test_scenario_twelve_mib_in_five_mib_chunks(self):
        """12 MiB in 5 MiB chunks gives two full chunks and a 2 MiB tail."""
        assert as_tuples(plan_chunks(12 * MiB, 5 * MiB)) == [
            (0, 5 * MiB),
            (5 * MiB, 5 * MiB),
            (10 * MiB, 2 * MiB),
        ]

    def test_resume_mid_chunk_truncates_first_chunk(self):
        """Resuming at 7 MiB keeps the later chunk boundaries."""
        assert as_tuples(plan_chunks(12 * MiB, 5 * MiB, resume_offset=7 * MiB)) == [
            (7 * MiB, 3 * MiB),
            (10 * MiB, 2 * MiB),
        ]

    @pytest.mark.parametrize("resume_offset", range(0, 24))
    def test_resume_covers_remaining_range(self, resume_offset):
        """Any resume offset yields exactly [resume_offset, total_length)."""
        chunks = list(plan_chunks(23, 5, resume_offset))

        assert sum(c.length for c in chunks) == 23 - resume_offset
        if chunks:
            assert chunks[0].start_offset == resume_offset
            assert chunks[-1].end_offset == 23
        for previous, current in zip(chunks, chunks[1:]):
            assert current.start_offset == previous.end_offset

    def test_resume_at_end_is_empty(self):
        assert list(plan_chunks(10, 3, resume_offset=10)) == []

    def test_zero_length_is_empty(self):
        assert list(plan_chunks(0, 5)) == []

    def test_zero_chunk_size_rejected(self):
        with pytest.raises(InvalidConfiguration):
            list(plan_chunks(10, 0))

    def test_negative_chunk_size_rejected(self):
        with pytest.raises(InvalidConfiguration):
            list(plan_chunks(10, -5))

    @pytest.mark.parametrize("resume_offset", [-1, 11])
    def test_resume_offset_out_of_range_rejected(self, resume_offset):
        with pytest.raises(InvalidConfiguration):
            list(plan_chunks(10, 3, resume_offset))

    def test_lazy(self):
        """Descriptors are produced on demand."""
        chunks = plan_chunks(10**15, 1)
        assert next(chunks) == ChunkDescriptor(0, 1)
        assert next(chunks) == ChunkDescriptor(1, 1)


class TestChunkPlan:
    """Tests for ChunkPlan."""

    def test_restartable(self):
        """Iterating twice yields the same descriptors."""
        plan = ChunkPlan(12, chunk_size=5)
        assert list(plan) == list(plan)
        assert as_tuples(plan) == [(0, 5), (5, 5), (10, 2)]

    def test_len(self):
        assert len(ChunkPlan(12, 5)) == 3
        assert len(ChunkPlan(12, 5, resume_offset=7)) == 2
        assert len(ChunkPlan(12, 5, resume_offset=10)) == 1
        assert len(ChunkPlan(12, 5, resume_offset=12)) == 0
        assert len(ChunkPlan(0, 5)) == 0

    @pytest.mark.parametrize("resume_offset", range(0, 13))
    def test_len_matches_iteration(self, resume_offset):
        plan = ChunkPlan(12, 5, resume_offset)
        assert len(plan) == len(list(plan))

    def test_resume_from(self):
        plan = ChunkPlan(12, 5)
        resumed = plan.resume_from(7)

        assert as_tuples(resumed) == [(7, 3), (10, 2)]
        assert resumed.remaining_bytes == 5
        # The original plan is unchanged
        assert plan.resume_offset == 0

    def test_invalid_chunk_size(self):
        with pytest.raises(InvalidConfiguration):
            ChunkPlan(12, 0)

    def test_invalid_configuration_is_value_error(self):
        with pytest.raises(ValueError):
            ChunkPlan(12, 0)

    def test_descriptor_end_offset(self):
        assert ChunkDescriptor(start_offset=10, length=5).end_offset == 15
