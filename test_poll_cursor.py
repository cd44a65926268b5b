"""
Block-range cursor behaviour across poll cycles
"""
import pytest

from errors import ConfigurationError, RpcError
from poll_cursor import BlockRange, CursorPhase, PollCursor, PollCursorState


async def no_records(block_range):
    return []


class TestSeeding:
    def test_first_poll_watches_from_head(self):
        state = PollCursorState()
        cursor = PollCursor(state, batch_size=100)
        assert cursor.phase == CursorPhase.UNINITIALIZED

        block_range = cursor.next_range(500)
        assert state.last_processed_block == 499
        assert block_range == BlockRange(500, 500)

    def test_start_block_seeds_below_it(self):
        state = PollCursorState()
        cursor = PollCursor(state, batch_size=100, start_block=450)
        assert cursor.next_range(500) == BlockRange(450, 500)

    def test_existing_watermark_is_kept(self):
        state = PollCursorState(last_processed_block=10)
        cursor = PollCursor(state, batch_size=100, start_block=450)
        assert cursor.phase == CursorPhase.IDLE
        assert cursor.next_range(20) == BlockRange(11, 20)

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            PollCursor(PollCursorState(), batch_size=0)


class TestRanges:
    def test_idle_when_caught_up(self):
        state = PollCursorState(last_processed_block=1000)
        cursor = PollCursor(state)
        assert cursor.next_range(1000) is None
        assert cursor.phase == CursorPhase.IDLE

    def test_head_behind_watermark_does_not_rewind(self):
        state = PollCursorState(last_processed_block=1000)
        cursor = PollCursor(state)
        assert cursor.next_range(990) is None
        assert state.last_processed_block == 1000

    def test_range_is_capped_by_batch_size(self):
        state = PollCursorState(last_processed_block=0)
        cursor = PollCursor(state, batch_size=10)
        block_range = cursor.next_range(1000)
        assert block_range == BlockRange(1, 10)
        assert len(block_range) == 10
        assert list(block_range) == list(range(1, 11))

    def test_range_ends_at_head(self):
        state = PollCursorState(last_processed_block=999)
        cursor = PollCursor(state, batch_size=100)
        assert cursor.next_range(1050) == BlockRange(1000, 1050)


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_records_returned_and_watermark_advanced(self):
        state = PollCursorState(last_processed_block=999)
        cursor = PollCursor(state, batch_size=100)
        seen = []

        async def query(block_range):
            seen.append(block_range)
            return [{'blockNumber': 1000}]

        records = await cursor.run_cycle(1050, query)
        assert records == [{'blockNumber': 1000}]
        assert seen == [BlockRange(1000, 1050)]
        assert state.last_processed_block == 1050
        assert cursor.phase == CursorPhase.ADVANCED

    @pytest.mark.asyncio
    async def test_idle_cycle_skips_query(self):
        state = PollCursorState(last_processed_block=1050)
        cursor = PollCursor(state)

        async def query(block_range):
            raise AssertionError('query must not run when there is nothing to process')

        assert await cursor.run_cycle(1050, query) == []
        assert state.last_processed_block == 1050

    @pytest.mark.asyncio
    async def test_failed_query_still_advances(self):
        state = PollCursorState(last_processed_block=99)
        cursor = PollCursor(state, batch_size=50)

        async def query(block_range):
            raise RpcError('query returned more than 10000 results', code=-32005)

        with pytest.raises(RpcError):
            await cursor.run_cycle(500, query)
        assert state.last_processed_block == 149

    @pytest.mark.asyncio
    async def test_watermark_is_monotonic_over_cycles(self):
        state = PollCursorState(last_processed_block=0)
        marks = []
        for head in (5, 3, 12, 12, 40):
            await PollCursor(state, batch_size=4).run_cycle(head, no_records)
            marks.append(state.last_processed_block)
        assert marks == [4, 4, 8, 12, 16]
        assert marks == sorted(marks)


class TestState:
    def test_round_trip_through_dict(self):
        assert PollCursorState.from_dict({'lastProcessedBlock': 42}).last_processed_block == 42
        assert PollCursorState(7).to_dict() == {'lastProcessedBlock': 7}

    def test_empty_dict_is_uninitialized(self):
        assert PollCursorState.from_dict(None).last_processed_block is None
        assert PollCursorState.from_dict({}).last_processed_block is None
