"""
Aggregator tests: wallet rollups and auction statistics from a ledger snapshot.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from clients.functions.aggregator import (
    aggregate_ledger,
    compute_mean,
    compute_median,
    compute_wallet_aggregates,
    pct_below,
    top_share,
)
from database.schema import TransferRecord, WalletAggregate

from conftest import ALICE, BOB, CAROL, CCA, tx

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def record(n: int, sender: str, amount, minutes: int = 0) -> TransferRecord:
    return TransferRecord(
        tx_hash=tx(n),
        block_number=1000 + n,
        from_address=sender,
        to_address=CCA,
        amount=Decimal(str(amount)),
        observed_time=T0 + timedelta(minutes=minutes),
    )


class TestMeanMedian:
    """Central tendency edge cases"""

    def test_empty(self):
        assert compute_mean([]) == 0
        assert compute_median([]) == 0

    def test_single_element(self):
        assert compute_mean([Decimal("42.5")]) == Decimal("42.5")
        assert compute_median([Decimal("42.5")]) == Decimal("42.5")

    def test_even_length_median(self):
        values = [Decimal(v) for v in (40, 10, 30, 20)]
        assert compute_median(values) == Decimal(25)
        assert compute_mean(values) == Decimal(25)

    def test_odd_length_median(self):
        assert compute_median([Decimal(v) for v in (5, 1, 3)]) == Decimal(3)


class TestSharesAndThresholds:
    """Concentration shares and below-threshold percentages"""

    def test_zero_total_shares(self):
        wallets = [WalletAggregate(address=ALICE)]
        assert top_share(wallets, 10, Decimal(0)) == 0.0
        assert top_share([], 50, Decimal(0)) == 0.0

    def test_zero_total_stats(self):
        result = aggregate_ledger([record(1, ALICE, 0)])
        assert result.stats.top10_share == 0.0
        assert result.stats.top50_share == 0.0

    def test_pct_below_exact_counts(self):
        # 30 below 50, a further 20 below 100, the rest well above
        amounts = [Decimal(10)] * 30 + [Decimal(75)] * 20 + [Decimal(200)] * 50
        assert pct_below(amounts, Decimal(50)) == 30.0
        assert pct_below(amounts, Decimal(100)) == 50.0

    def test_threshold_is_strict(self):
        assert pct_below([Decimal(50), Decimal(100)], Decimal(50)) == 0.0

    def test_pct_below_empty(self):
        assert pct_below([], Decimal(50)) == 0.0

    def test_scenario_stats_from_ledger(self):
        amounts = [10] * 30 + [75] * 20 + [200] * 50
        records = [record(i, "0x" + format(i, "040x"), a) for i, a in enumerate(amounts)]

        stats = aggregate_ledger(records).stats

        assert stats.total_count == 100
        assert stats.unique_wallets == 100
        assert stats.pct_below_50 == 30.0
        assert stats.pct_below_100 == 50.0

    def test_top_share_fraction(self):
        records = [record(1, ALICE, 60), record(2, BOB, 30), record(3, CAROL, 10)]
        result = aggregate_ledger(records)
        assert result.stats.top10_share == 100.0

        wallets = result.wallets
        assert top_share(wallets, 1, result.stats.total_amount) == 60.0
        assert top_share(wallets, 2, result.stats.total_amount) == 90.0


class TestWalletAggregates:
    """Per-sender rollups"""

    def test_totals_and_counts_match_ledger(self):
        records = [
            record(1, ALICE, "10.5", minutes=1),
            record(2, BOB, 20, minutes=2),
            record(3, ALICE, "4.25", minutes=5),
            record(4, CAROL, 1, minutes=3),
            record(5, ALICE, 100, minutes=4),
        ]

        wallets = compute_wallet_aggregates(records)
        by_address = {w.address: w for w in wallets}

        assert sum(w.total_amount for w in wallets) == sum(r.amount for r in records)
        for w in wallets:
            assert w.count == len([r for r in records if r.from_address == w.address])

        alice = by_address[ALICE]
        assert alice.total_amount == Decimal("114.75")
        assert alice.count == 3
        assert alice.last_activity_time == T0 + timedelta(minutes=5)
        assert alice.avg_amount == Decimal("38.25")

    def test_ranked_by_total_desc(self):
        records = [record(1, CAROL, 5), record(2, ALICE, 50), record(3, BOB, 20)]
        assert [w.address for w in compute_wallet_aggregates(records)] == [ALICE, BOB, CAROL]

    def test_ties_keep_ledger_order(self):
        records = [record(1, BOB, 10), record(2, ALICE, 10), record(3, CAROL, 10)]
        assert [w.address for w in compute_wallet_aggregates(records)] == [BOB, ALICE, CAROL]

    def test_empty_ledger(self):
        result = aggregate_ledger([])
        assert result.wallets == []
        assert result.stats.total_amount == 0
        assert result.stats.mean == 0
        assert result.stats.median == 0

    def test_pure_function(self):
        records = [record(1, ALICE, 10), record(2, BOB, 20)]
        first = aggregate_ledger(records, last_processed_block=5, updated_at=T0)
        second = aggregate_ledger(records, last_processed_block=5, updated_at=T0)
        assert first == second
