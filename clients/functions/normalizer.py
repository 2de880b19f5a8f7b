"""Transfer log normalization and block timestamp resolution."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from clients.web3.base_chain import ChainLogReader, RawTransferLog
from config.system_constants import USDC_DECIMALS
from database.schema import TransferRecord

logger = logging.getLogger(__name__)


def decode_amount(raw_amount: int, decimals: int = USDC_DECIMALS) -> Decimal:
    """Fixed-point integer -> exact decimal amount."""
    assert raw_amount >= 0, "raw_amount must be non-negative"
    return Decimal(raw_amount).scaleb(-decimals)


def estimate_block_time(
    block_number: int,
    head_block: int,
    now: datetime,
    block_time_seconds: float,
) -> datetime:
    """Linear estimate: now - (head - block) * block interval."""
    distance = max(head_block - block_number, 0)
    return now - timedelta(seconds=distance * block_time_seconds)


def normalize_transfer(log: RawTransferLog, to_address: str, observed_time: datetime) -> TransferRecord:
    """Raw Transfer log -> canonical ledger record."""
    return TransferRecord(
        tx_hash=log.tx_hash.lower(),
        block_number=log.block_number,
        from_address=log.sender.lower(),
        to_address=to_address.lower(),
        amount=decode_amount(log.raw_amount),
        observed_time=observed_time,
        raw_amount=log.raw_amount,
    )


def dedupe_by_tx_hash(records: Iterable[TransferRecord]) -> List[TransferRecord]:
    """Collapse records sharing a tx_hash; the later record wins."""
    by_hash: Dict[str, TransferRecord] = {}
    for record in records:
        by_hash[record.tx_hash] = record
    return list(by_hash.values())


class BlockTimestampResolver:
    """
    Resolves observed times for a set of blocks.

    Exact block times are fetched in small concurrent batches with a pause
    between batches. Any block whose lookup fails gets a linear estimate from
    its distance to the chain head, so every block always has a time.
    """

    def __init__(
        self,
        reader: ChainLogReader,
        head_block: int,
        block_time_seconds: float = 2.0,
        batch_size: int = 10,
        batch_delay: float = 0.2,
        now: Optional[datetime] = None,
    ):
        assert batch_size > 0, "batch_size must be positive"
        self.reader = reader
        self.head_block = head_block
        self.block_time_seconds = block_time_seconds
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.now = now or datetime.now(timezone.utc)

        self.exact_count = 0
        self.estimated_count = 0

    def estimate(self, block_number: int) -> datetime:
        return estimate_block_time(block_number, self.head_block, self.now, self.block_time_seconds)

    async def resolve(self, block_numbers: Iterable[int]) -> Dict[int, datetime]:
        """
        Resolve a time for every block.

        Args:
            block_numbers: Blocks to resolve (duplicates allowed)

        Returns:
            Mapping block_number -> timezone-aware datetime
        """
        blocks = sorted(set(block_numbers))
        resolved: Dict[int, datetime] = {}

        for i in range(0, len(blocks), self.batch_size):
            batch = blocks[i:i + self.batch_size]
            results = await asyncio.gather(
                *[self.reader.get_block_timestamp(b) for b in batch],
                return_exceptions=True,
            )

            for block_number, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.debug(f"Block {block_number} timestamp lookup failed, estimating: {result}")
                    resolved[block_number] = self.estimate(block_number)
                    self.estimated_count += 1
                else:
                    resolved[block_number] = datetime.fromtimestamp(int(result), tz=timezone.utc)
                    self.exact_count += 1

            if i + self.batch_size < len(blocks) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        if self.estimated_count:
            logger.warning(
                f"Estimated {self.estimated_count} of {len(blocks)} block timestamps "
                f"({self.block_time_seconds}s block interval)"
            )
        return resolved


async def normalize_logs(
    logs: List[RawTransferLog],
    to_address: str,
    timestamps: BlockTimestampResolver,
) -> List[TransferRecord]:
    """Normalize a batch of raw logs, resolving block times as a group."""
    if not logs:
        return []

    times = await timestamps.resolve(log.block_number for log in logs)
    return [normalize_transfer(log, to_address, times[log.block_number]) for log in logs]
