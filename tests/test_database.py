"""
Database client tests against the in-memory Supabase fake.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from config.system_constants import (
    ALIAS_NONE_SENTINEL,
    TABLE_STATS,
    TABLE_SYNC_LOCK,
    TABLE_TRANSFERS,
    TABLE_WALLETS,
)
from database.client import AuctionDatabase, LedgerWriteError
from database.schema import GlobalStats, TransferRecord, WalletAggregate

from conftest import ALICE, BOB, CAROL, CCA, tx

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def record(n: int, sender: str, raw: int) -> TransferRecord:
    return TransferRecord(
        tx_hash=tx(n),
        block_number=1000 + n,
        from_address=sender,
        to_address=CCA,
        amount=Decimal(raw).scaleb(-6),
        observed_time=T0,
        raw_amount=raw,
    )


class TestCheckpoint:
    async def test_unset_is_distinct_from_zero(self, db):
        checkpoint = await db.get_checkpoint()
        assert not checkpoint.is_set
        assert checkpoint.last_processed_block is None

        assert await db.save_checkpoint(0) is None
        checkpoint = await db.get_checkpoint()
        assert checkpoint.is_set
        assert checkpoint.last_processed_block == 0

    async def test_save_overwrites_singleton(self, db, supabase):
        await db.save_checkpoint(10)
        await db.save_checkpoint(25)
        assert len(supabase.rows("cca_sync_state")) == 1
        assert (await db.get_checkpoint()).last_processed_block == 25

    async def test_save_failure_returns_message(self, db, supabase):
        supabase.fail_on.add(("cca_sync_state", "upsert"))
        error = await db.save_checkpoint(5)
        assert "simulated" in error


class TestLedger:
    async def test_upsert_is_idempotent(self, db, supabase):
        records = [record(1, ALICE, 10_000_000), record(2, BOB, 5_000_000)]
        await db.upsert_transfers(records)
        await db.upsert_transfers(records)

        assert len(supabase.rows(TABLE_TRANSFERS)) == 2

    async def test_later_write_wins(self, db):
        await db.upsert_transfers([record(1, ALICE, 10_000_000)])
        await db.upsert_transfers([record(1, ALICE, 20_000_000)])

        ledger = await db.fetch_all_transfers()
        assert len(ledger) == 1
        assert ledger[0].amount == Decimal(20)

    async def test_paginated_read_returns_everything_in_order(self, db):
        # page_size is 3 in the fixture
        records = [record(n, ALICE if n % 2 else BOB, n * 1_000_000) for n in (7, 3, 1, 5, 2, 6, 4)]
        await db.upsert_transfers(records)

        ledger = await db.fetch_all_transfers()

        assert [r.block_number for r in ledger] == [1001, 1002, 1003, 1004, 1005, 1006, 1007]
        assert await db.get_transfer_count() == 7

    async def test_exact_amount_from_raw(self, db):
        await db.upsert_transfers([record(1, ALICE, 123_456_789)])
        ledger = await db.fetch_all_transfers()
        assert ledger[0].amount == Decimal("123.456789")
        assert ledger[0].raw_amount == 123_456_789

    async def test_write_failure_raises(self, db, supabase):
        supabase.fail_on.add((TABLE_TRANSFERS, "upsert"))
        with pytest.raises(LedgerWriteError):
            await db.upsert_transfers([record(1, ALICE, 1)])

    async def test_batches_large_writes(self, supabase):
        db = AuctionDatabase(client=supabase)
        records = [record(n, ALICE, 1) for n in range(1, 1201)]

        assert await db.upsert_transfers(records) == 1200
        assert supabase.calls.count((TABLE_TRANSFERS, "upsert")) == 3


class TestAggregates:
    async def test_wallet_upsert_keeps_alias(self, db, supabase):
        wallet = WalletAggregate(address=ALICE, total_amount=Decimal(30), count=2, last_activity_time=T0)
        await db.upsert_wallet_aggregates([wallet])
        assert await db.set_wallet_alias(ALICE, "alice.base.eth")

        wallet.total_amount = Decimal(45)
        wallet.count = 3
        await db.upsert_wallet_aggregates([wallet])

        row = supabase.rows(TABLE_WALLETS)[0]
        assert row["ens_name"] == "alice.base.eth"
        assert row["total_usdc"] == 45.0
        assert row["avg_bid"] == 15.0

    async def test_wallets_ordered_by_total(self, db):
        await db.upsert_wallet_aggregates([
            WalletAggregate(address=ALICE, total_amount=Decimal(5), count=1),
            WalletAggregate(address=BOB, total_amount=Decimal(50), count=1),
            WalletAggregate(address=CAROL, total_amount=Decimal(20), count=1),
        ])

        rows = await db.get_wallets(limit=2)
        assert [r["address"] for r in rows] == [BOB, CAROL]

    async def test_missing_alias_excludes_checked(self, db):
        await db.upsert_wallet_aggregates([
            WalletAggregate(address=ALICE, total_amount=Decimal(5), count=1),
            WalletAggregate(address=BOB, total_amount=Decimal(50), count=1),
            WalletAggregate(address=CAROL, total_amount=Decimal(20), count=1),
        ])
        await db.set_wallet_alias(BOB, ALIAS_NONE_SENTINEL)

        rows = await db.get_wallets_missing_alias(10)
        assert [r["address"] for r in rows] == [CAROL, ALICE]

    async def test_stats_roundtrip(self, db, supabase):
        stats = GlobalStats(total_amount=Decimal(100), total_count=4, unique_wallets=2, top10_share=100.0,
                            last_processed_block=1234, updated_at=T0)
        assert await db.save_stats(stats)
        assert await db.save_stats(stats)

        assert len(supabase.rows(TABLE_STATS)) == 1
        row = await db.get_stats()
        assert row["total_usdc"] == 100.0
        assert row["last_block"] == 1234

    async def test_stats_failure_returns_false(self, db, supabase):
        supabase.fail_on.add((TABLE_STATS, "upsert"))
        assert not await db.save_stats(GlobalStats())


class TestLease:
    async def test_second_holder_rejected(self, db):
        assert await db.acquire_lease("run-1", 300)
        assert not await db.acquire_lease("run-2", 300)
        assert (await db.get_lease()).holder == "run-1"

    async def test_release_frees_lease(self, db):
        await db.acquire_lease("run-1", 300)
        await db.release_lease("run-1")
        assert await db.get_lease() is None
        assert await db.acquire_lease("run-2", 300)

    async def test_release_by_other_holder_is_noop(self, db):
        await db.acquire_lease("run-1", 300)
        await db.release_lease("run-2")
        assert (await db.get_lease()).holder == "run-1"

    async def test_expired_lease_is_reclaimed(self, db, supabase):
        expired = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        supabase.tables[TABLE_SYNC_LOCK] = [{"id": "cca_sync", "holder": "crashed", "expires_at": expired}]

        assert await db.acquire_lease("run-2", 300)
        assert (await db.get_lease()).holder == "run-2"
