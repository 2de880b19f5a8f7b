"""
Database module for CCA ledger, checkpoint and aggregate storage.
"""

from .client import AuctionDatabase, DatabaseError, LedgerWriteError
from .schema import GlobalStats, SyncCheckpoint, SyncLease, TransferRecord, WalletAggregate

__all__ = [
    "AuctionDatabase",
    "DatabaseError",
    "LedgerWriteError",
    "GlobalStats",
    "SyncCheckpoint",
    "SyncLease",
    "TransferRecord",
    "WalletAggregate",
]
