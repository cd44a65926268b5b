"""
Block-range cursor for the polling trigger.

The cursor keeps a watermark (the last block considered processed) and hands out
the next contiguous range of at most ``batch_size`` blocks. The watermark only
moves forward, and it moves to the end of the attempted range even when the
query for that range fails, so a poisoned range is never retried.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

import config
from errors import ConfigurationError

logger = logging.getLogger(__name__)


class CursorPhase(Enum):
    UNINITIALIZED = 'uninitialized'
    IDLE = 'idle'
    PROCESSING = 'processing'
    ADVANCED = 'advanced'


@dataclass
class PollCursorState:
    last_processed_block: Optional[int] = None

    def to_dict(self) -> Dict:
        return {'lastProcessedBlock': self.last_processed_block}

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'PollCursorState':
        value = (data or {}).get('lastProcessedBlock')
        return cls(last_processed_block=int(value) if value is not None else None)


@dataclass(frozen=True)
class BlockRange:
    from_block: int
    to_block: int

    def __iter__(self):
        return iter(range(self.from_block, self.to_block + 1))

    def __len__(self):
        return self.to_block - self.from_block + 1


class PollCursor:
    def __init__(self, state: PollCursorState, batch_size: int = config.DEFAULT_BATCH_SIZE,
                 start_block: Optional[int] = None, label: str = ''):
        if batch_size is None or int(batch_size) < 1:
            raise ConfigurationError(f"Batch size must be at least 1, got {batch_size}")
        self.state = state
        self.batch_size = int(batch_size)
        self.start_block = start_block
        self.label = label
        self.phase = CursorPhase.UNINITIALIZED if state.last_processed_block is None else CursorPhase.IDLE

    @property
    def watermark(self) -> Optional[int]:
        return self.state.last_processed_block

    def seed(self, head: int):
        """First poll: start at the configured block, otherwise only watch future blocks"""
        if self.state.last_processed_block is not None:
            return
        if self.start_block and self.start_block > 0:
            self.state.last_processed_block = self.start_block - 1
        else:
            self.state.last_processed_block = head - 1
        logger.info(f"[{self.label}] Cursor seeded at block {self.state.last_processed_block}")

    def next_range(self, head: int) -> Optional[BlockRange]:
        self.seed(head)
        watermark = self.state.last_processed_block
        if head <= watermark:
            self.phase = CursorPhase.IDLE
            return None
        from_block = watermark + 1
        to_block = min(head, from_block + self.batch_size - 1)
        self.phase = CursorPhase.PROCESSING
        return BlockRange(from_block, to_block)

    def advance(self, block_range: BlockRange):
        current = self.state.last_processed_block
        if current is None or block_range.to_block > current:
            self.state.last_processed_block = block_range.to_block
        self.phase = CursorPhase.ADVANCED

    async def run_cycle(self, head: int,
                        query: Callable[[BlockRange], Awaitable[List[Dict]]]) -> List[Dict]:
        """
        Run one poll cycle against the given chain head.

        Returns the query's records (possibly empty). When the range query raises,
        the watermark still advances past the range and the error propagates.
        """
        block_range = self.next_range(head)
        if block_range is None:
            logger.debug(f"[{self.label}] No new blocks (head {head}, watermark {self.watermark})")
            return []

        logger.info(f"[{self.label}] Processing blocks {block_range.from_block} to {block_range.to_block}")
        failed = True
        try:
            records = await query(block_range)
            failed = False
            return records
        finally:
            self.advance(block_range)
            if failed:
                logger.warning(
                    f"[{self.label}] Query failed, skipping blocks {block_range.from_block}-{block_range.to_block}"
                )
