"""
Wallet and auction-level aggregation over the full transfer ledger.

Everything here is a pure function of the ledger snapshot passed in: no I/O,
no dependence on previously stored aggregates. Re-running on the same ledger
always yields the same output, which is what makes retried syncs safe.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from config.system_constants import PCT_BELOW_THRESHOLDS, TOP_SHARE_SIZES
from database.schema import GlobalStats, TransferRecord, WalletAggregate


@dataclass
class AggregationResult:
    """Wallet rollups (highest total first) plus the statistics snapshot."""
    wallets: List[WalletAggregate]
    stats: GlobalStats


def compute_mean(values: Sequence[Decimal]) -> Decimal:
    """Arithmetic mean; 0 for an empty sequence."""
    if not values:
        return Decimal(0)
    return sum(values, Decimal(0)) / len(values)


def compute_median(values: Sequence[Decimal]) -> Decimal:
    """Median (midpoint average for even length); 0 for an empty sequence."""
    if not values:
        return Decimal(0)
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def pct_below(values: Sequence[Decimal], threshold: Decimal) -> float:
    """Percentage (0-100) of values strictly below threshold."""
    if not values:
        return 0.0
    below = sum(1 for v in values if v < threshold)
    return below * 100 / len(values)


def top_share(ranked: Sequence[WalletAggregate], n: int, total: Decimal) -> float:
    """Percentage (0-100) of total held by the first n ranked wallets."""
    if total <= 0:
        return 0.0
    top_total = sum((w.total_amount for w in ranked[:n]), Decimal(0))
    return float(top_total * 100 / total)


def compute_wallet_aggregates(records: Sequence[TransferRecord]) -> List[WalletAggregate]:
    """
    Group records by sender.

    Returns wallets ordered by total amount, highest first; equal totals keep
    the order in which the wallet first appears in the ledger.
    """
    by_address: Dict[str, WalletAggregate] = {}

    for record in records:
        wallet = by_address.get(record.from_address)
        if wallet is None:
            wallet = WalletAggregate(address=record.from_address)
            by_address[record.from_address] = wallet

        wallet.total_amount += record.amount
        wallet.count += 1
        if wallet.last_activity_time is None or record.observed_time > wallet.last_activity_time:
            wallet.last_activity_time = record.observed_time

    return sorted(by_address.values(), key=lambda w: w.total_amount, reverse=True)


def compute_global_stats(
    records: Sequence[TransferRecord],
    ranked_wallets: Sequence[WalletAggregate],
    last_processed_block: Optional[int] = None,
    updated_at: Optional[datetime] = None,
) -> GlobalStats:
    """Auction-level statistics from the flattened list of amounts."""
    amounts = [r.amount for r in records]
    total = sum(amounts, Decimal(0))
    below_50, below_100 = (pct_below(amounts, Decimal(t)) for t in PCT_BELOW_THRESHOLDS)
    top_10, top_50 = (top_share(ranked_wallets, n, total) for n in TOP_SHARE_SIZES)

    return GlobalStats(
        total_amount=total,
        total_count=len(amounts),
        unique_wallets=len(ranked_wallets),
        mean=compute_mean(amounts),
        median=compute_median(amounts),
        pct_below_50=below_50,
        pct_below_100=below_100,
        top10_share=top_10,
        top50_share=top_50,
        last_processed_block=last_processed_block,
        updated_at=updated_at,
    )


def aggregate_ledger(
    records: Sequence[TransferRecord],
    last_processed_block: Optional[int] = None,
    updated_at: Optional[datetime] = None,
) -> AggregationResult:
    """Recompute every derived row from a full ledger snapshot."""
    wallets = compute_wallet_aggregates(records)
    stats = compute_global_stats(records, wallets, last_processed_block, updated_at)
    return AggregationResult(wallets=wallets, stats=stats)
