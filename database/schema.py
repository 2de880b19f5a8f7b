"""
Database schema for CCA contribution tracking.

Defines dataclasses for:
- Transfer records (the ledger)
- Sync checkpoint (resume cursor)
- Wallet aggregates (per-sender rollups)
- Global statistics snapshot
- Sync lease (single-flight guard)
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class TransferRecord:
    """Canonical USDC transfer into the auction contract."""

    tx_hash: str  # Primary key
    block_number: int
    from_address: str  # lowercased 0x-prefixed sender
    to_address: str  # auction contract
    amount: Decimal  # human units (raw / 10^6)
    observed_time: datetime  # exact block time, or estimated from block distance
    raw_amount: Optional[int] = None  # fixed-point integer as emitted on chain


@dataclass
class SyncCheckpoint:
    """Singleton resume cursor."""

    id: str  # Primary key
    last_processed_block: Optional[int] = None  # None = no progress yet (distinct from block 0)
    updated_at: Optional[datetime] = None

    @property
    def is_set(self) -> bool:
        return self.last_processed_block is not None


@dataclass
class WalletAggregate:
    """Per-sender rollup, recomputed from the full ledger every run."""

    address: str  # Primary key
    total_amount: Decimal = Decimal(0)
    count: int = 0
    last_activity_time: Optional[datetime] = None
    alias: Optional[str] = None  # resolved name, ALIAS_NONE_SENTINEL, or None if unchecked

    @property
    def avg_amount(self) -> Decimal:
        return self.total_amount / self.count if self.count else Decimal(0)


@dataclass
class GlobalStats:
    """Auction-level statistics snapshot (pure function of the ledger)."""

    total_amount: Decimal = Decimal(0)
    total_count: int = 0
    unique_wallets: int = 0
    mean: Decimal = Decimal(0)
    median: Decimal = Decimal(0)
    pct_below_50: float = 0.0  # percent of transfers, 0-100
    pct_below_100: float = 0.0
    top10_share: float = 0.0  # percent of total amount, 0-100
    top50_share: float = 0.0
    last_processed_block: Optional[int] = None
    updated_at: Optional[datetime] = None


@dataclass
class SyncLease:
    """Lease row guarding against overlapping sync invocations."""

    id: str  # Primary key
    holder: str
    expires_at: datetime
