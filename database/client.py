"""
Async database client for Supabase with CCA ledger, checkpoint and aggregate persistence.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Dict, Any

from supabase import create_client, Client

from config.system_constants import (
    DB_WRITE_BATCH_SIZE,
    STATS_ROW_ID,
    SYNC_LOCK_ID,
    SYNC_STATE_KEY,
    TABLE_STATS,
    TABLE_SYNC_LOCK,
    TABLE_SYNC_STATE,
    TABLE_TRANSFERS,
    TABLE_WALLETS,
    USDC_DECIMALS,
)
from .schema import GlobalStats, SyncCheckpoint, SyncLease, TransferRecord, WalletAggregate

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base exception for persistence failures"""
    pass


class LedgerWriteError(DatabaseError):
    """Transfer records could not be durably written"""
    pass


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None


class AuctionDatabase:
    """Async database client for the CCA sync engine.

    Owns the four logical tables (checkpoint, transfer ledger, wallet aggregates,
    statistics snapshot) plus the single-flight lease row. Every write is an
    upsert keyed by natural identity so a retried run cannot corrupt state.
    """

    def __init__(
        self,
        supabase_url: str = "",
        supabase_key: str = "",
        client: Optional[Client] = None,
        page_size: int = 1000,
    ):
        """Initialize database client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase service role key
            client: Pre-built Supabase client (skips create_client)
            page_size: Max rows per read request when scanning the ledger

        Raises:
            AssertionError: If no client is given and URL or key is empty
        """
        if client is None:
            assert supabase_url, "supabase_url must not be empty"
            assert supabase_key, "supabase_key must not be empty"
            client = create_client(supabase_url, supabase_key)

        assert page_size > 0, "page_size must be positive"

        self.supabase: Client = client
        self.page_size = page_size
        self._lock = asyncio.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # SERIALIZATION
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _transfer_to_dict(record: TransferRecord) -> Dict[str, Any]:
        """Convert TransferRecord to database row.

        Args:
            record: Normalized transfer

        Returns:
            Dictionary ready for upsert into cca_transfers
        """
        assert record.tx_hash, "TransferRecord must have tx_hash"

        return {
            "tx_hash": record.tx_hash,
            "block_number": record.block_number,
            "wallet": record.from_address,
            "to_address": record.to_address,
            "usdc_amount": float(record.amount),
            "raw_amount": str(record.raw_amount) if record.raw_amount is not None else None,
            "timestamp": record.observed_time.isoformat(),
        }

    @staticmethod
    def _row_to_transfer(row: Dict[str, Any]) -> TransferRecord:
        raw = row.get("raw_amount")
        if raw not in (None, ""):
            raw_int = int(raw)
            amount = Decimal(raw_int).scaleb(-USDC_DECIMALS)
        else:
            raw_int = None
            amount = Decimal(str(row.get("usdc_amount") or 0))

        return TransferRecord(
            tx_hash=row["tx_hash"],
            block_number=int(row.get("block_number") or 0),
            from_address=str(row.get("wallet") or "").lower(),
            to_address=str(row.get("to_address") or "").lower(),
            amount=amount,
            observed_time=_parse_timestamp(row.get("timestamp")) or datetime.fromtimestamp(0, tz=timezone.utc),
            raw_amount=raw_int,
        )

    @staticmethod
    def _wallet_to_dict(wallet: WalletAggregate, updated_at: str) -> Dict[str, Any]:
        # ens_name is left out so the upsert never clobbers a resolved alias
        return {
            "address": wallet.address,
            "total_usdc": float(wallet.total_amount),
            "bid_count": wallet.count,
            "avg_bid": float(wallet.avg_amount),
            "last_bid_time": wallet.last_activity_time.isoformat() if wallet.last_activity_time else None,
            "updated_at": updated_at,
        }

    @staticmethod
    def _stats_to_dict(stats: GlobalStats) -> Dict[str, Any]:
        updated_at = stats.updated_at or datetime.now(timezone.utc)
        return {
            "id": STATS_ROW_ID,
            "total_usdc": float(stats.total_amount),
            "total_bids": stats.total_count,
            "unique_wallets": stats.unique_wallets,
            "avg_bid": float(stats.mean),
            "median_bid": float(stats.median),
            "pct_under_50": stats.pct_below_50,
            "pct_under_100": stats.pct_below_100,
            "top_10_share": stats.top10_share,
            "top_50_share": stats.top50_share,
            "last_block": stats.last_processed_block,
            "updated_at": updated_at.isoformat(),
        }

    # ─────────────────────────────────────────────────────────────────────────
    # CHECKPOINT
    # ─────────────────────────────────────────────────────────────────────────

    async def get_checkpoint(self) -> SyncCheckpoint:
        """Load the sync checkpoint singleton.

        Returns:
            SyncCheckpoint; last_processed_block is None when no run has saved progress
        """
        result = (
            self.supabase.table(TABLE_SYNC_STATE)
            .select("id, last_processed_block, updated_at")
            .eq("id", SYNC_STATE_KEY)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        if not rows or rows[0].get("last_processed_block") is None:
            return SyncCheckpoint(id=SYNC_STATE_KEY)

        row = rows[0]
        return SyncCheckpoint(
            id=SYNC_STATE_KEY,
            last_processed_block=int(row["last_processed_block"]),
            updated_at=_parse_timestamp(row.get("updated_at")),
        )

    async def save_checkpoint(self, block: int) -> Optional[str]:
        """Persist the checkpoint singleton.

        Args:
            block: Last fully scanned block

        Returns:
            None on success, otherwise the error message
        """
        assert block >= 0, "block must be non-negative"

        row = {
            "id": SYNC_STATE_KEY,
            "last_processed_block": block,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        async with self._lock:
            try:
                self.supabase.table(TABLE_SYNC_STATE).upsert(row, on_conflict="id").execute()
            except Exception as e:
                logger.error(f"Failed to save checkpoint at block {block}: {e}")
                return str(e)
        logger.info(f"Checkpoint saved at block {block}")
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # TRANSFER LEDGER
    # ─────────────────────────────────────────────────────────────────────────

    async def upsert_transfers(self, records: List[TransferRecord]) -> int:
        """Upsert transfer records keyed by tx_hash.

        Args:
            records: Normalized transfers (must be unique per tx_hash)

        Returns:
            Count of rows written

        Raises:
            LedgerWriteError: If any batch fails; the caller must not advance the checkpoint
        """
        if not records:
            return 0

        rows = [self._transfer_to_dict(r) for r in records]
        total_saved = 0

        async with self._lock:
            for i in range(0, len(rows), DB_WRITE_BATCH_SIZE):
                batch = rows[i:i + DB_WRITE_BATCH_SIZE]
                try:
                    result = (
                        self.supabase.table(TABLE_TRANSFERS)
                        .upsert(batch, on_conflict="tx_hash")
                        .execute()
                    )
                except Exception as e:
                    raise LedgerWriteError(f"Failed to upsert transfers (batch {i}): {e}") from e
                total_saved += len(result.data) if result.data else len(batch)

        logger.info(f"Upserted {total_saved} transfers into {TABLE_TRANSFERS}")
        return total_saved

    async def fetch_all_transfers(self) -> List[TransferRecord]:
        """Read the entire ledger using pagination.

        Rows come back in (block_number, tx_hash) order so downstream stable
        sorts break ties by ledger order.

        Returns:
            All transfer records
        """
        records: List[TransferRecord] = []
        offset = 0

        while True:
            result = (
                self.supabase.table(TABLE_TRANSFERS)
                .select("tx_hash, block_number, wallet, to_address, usdc_amount, raw_amount, timestamp")
                .order("block_number")
                .order("tx_hash")
                .range(offset, offset + self.page_size - 1)
                .execute()
            )
            page = result.data or []
            records.extend(self._row_to_transfer(row) for row in page)

            if len(page) < self.page_size:
                break
            offset += self.page_size

        logger.info(f"Retrieved {len(records)} transfers from ledger using pagination")
        return records

    async def get_transfer_count(self) -> int:
        """Get total count of transfers in the ledger."""
        result = self.supabase.table(TABLE_TRANSFERS).select("tx_hash", count="exact").execute()
        return result.count or 0

    # ─────────────────────────────────────────────────────────────────────────
    # AGGREGATES
    # ─────────────────────────────────────────────────────────────────────────

    async def upsert_wallet_aggregates(self, wallets: List[WalletAggregate]) -> int:
        """Bulk upsert wallet aggregates keyed by address.

        Failures are logged per batch; aggregates are rederived next run.

        Args:
            wallets: Recomputed wallet aggregates

        Returns:
            Count of successfully upserted wallets
        """
        if not wallets:
            return 0

        updated_at = datetime.now(timezone.utc).isoformat()
        rows = [self._wallet_to_dict(w, updated_at) for w in wallets]
        total_saved = 0

        async with self._lock:
            for i in range(0, len(rows), DB_WRITE_BATCH_SIZE):
                batch = rows[i:i + DB_WRITE_BATCH_SIZE]
                try:
                    result = (
                        self.supabase.table(TABLE_WALLETS)
                        .upsert(batch, on_conflict="address")
                        .execute()
                    )
                    total_saved += len(result.data) if result.data else len(batch)
                except Exception as e:
                    logger.error(f"Bulk wallet upsert error (batch {i}): {e}")

        return total_saved

    async def save_stats(self, stats: GlobalStats) -> bool:
        """Upsert the statistics singleton.

        Returns:
            True if the write succeeded
        """
        async with self._lock:
            try:
                self.supabase.table(TABLE_STATS).upsert(self._stats_to_dict(stats), on_conflict="id").execute()
            except Exception as e:
                logger.error(f"Failed to save stats snapshot: {e}")
                return False
        return True

    async def get_stats(self) -> Optional[Dict[str, Any]]:
        """Get the statistics singleton row, if any."""
        result = (
            self.supabase.table(TABLE_STATS)
            .select("*")
            .eq("id", STATS_ROW_ID)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_wallets(self, limit: int = 5000) -> List[Dict[str, Any]]:
        """Get wallet aggregates ordered by total contribution.

        Args:
            limit: Maximum rows to return

        Returns:
            Wallet rows, highest total first
        """
        assert limit > 0, "limit must be positive"

        result = (
            self.supabase.table(TABLE_WALLETS)
            .select("address, total_usdc, bid_count, avg_bid, last_bid_time, ens_name")
            .order("total_usdc", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data if result.data else []

    async def get_wallets_missing_alias(self, limit: int) -> List[Dict[str, Any]]:
        """Get the highest-total wallets whose alias has never been checked."""
        assert limit > 0, "limit must be positive"

        result = (
            self.supabase.table(TABLE_WALLETS)
            .select("address, total_usdc")
            .is_("ens_name", "null")
            .order("total_usdc", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data if result.data else []

    async def set_wallet_alias(self, address: str, alias: str) -> bool:
        """Store a resolved alias (or the none sentinel) for a wallet."""
        assert address, "address must not be empty"
        assert alias, "alias must not be empty"

        async with self._lock:
            try:
                self.supabase.table(TABLE_WALLETS).update({"ens_name": alias}).eq("address", address).execute()
            except Exception as e:
                logger.warning(f"Failed to store alias for {address}: {e}")
                return False
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # SINGLE-FLIGHT LEASE
    # ─────────────────────────────────────────────────────────────────────────

    async def acquire_lease(self, holder: str, ttl_seconds: int) -> bool:
        """Try to take the sync lease.

        An expired lease is taken over by conditional update; a missing row is
        created by insert, which fails on conflict if another run got there first.

        Args:
            holder: Unique id of this invocation
            ttl_seconds: Lease lifetime

        Returns:
            True if this invocation now holds the lease
        """
        now = datetime.now(timezone.utc)
        row = {
            "holder": holder,
            "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
        }

        async with self._lock:
            result = (
                self.supabase.table(TABLE_SYNC_LOCK)
                .update(row)
                .eq("id", SYNC_LOCK_ID)
                .lt("expires_at", now.isoformat())
                .execute()
            )
            if result.data:
                logger.info(f"Sync lease taken over by {holder}")
                return True

            try:
                result = self.supabase.table(TABLE_SYNC_LOCK).insert({"id": SYNC_LOCK_ID, **row}).execute()
            except Exception as e:
                logger.info(f"Sync lease held by another run: {e}")
                return False

        return bool(result.data)

    async def release_lease(self, holder: str) -> None:
        """Release the lease if this holder still owns it."""
        async with self._lock:
            try:
                (
                    self.supabase.table(TABLE_SYNC_LOCK)
                    .delete()
                    .eq("id", SYNC_LOCK_ID)
                    .eq("holder", holder)
                    .execute()
                )
            except Exception as e:
                logger.warning(f"Failed to release sync lease for {holder}: {e}")

    async def get_lease(self) -> Optional[SyncLease]:
        """Get the current lease row, if any."""
        result = (
            self.supabase.table(TABLE_SYNC_LOCK)
            .select("id, holder, expires_at")
            .eq("id", SYNC_LOCK_ID)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        row = result.data[0]
        return SyncLease(
            id=row["id"],
            holder=row.get("holder", ""),
            expires_at=_parse_timestamp(row.get("expires_at")),
        )
