"""
Shared fixtures: in-memory Supabase client, fake async web3, test settings.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest

from clients.web3.base_chain import ChainLogReader, address_topic
from config.settings import Settings
from config.system_constants import TRANSFER_TOPIC
from database.client import AuctionDatabase

CCA = "0x7e867b47a94df05188c08575e8b9a52f3f69c469"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
GENESIS = 1000
SECRET = "s3cret"

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20


# ─────────────────────────────────────────────────────────────────────────────
# SUPABASE
# ─────────────────────────────────────────────────────────────────────────────

class FakeResult:
    def __init__(self, data: List[Dict[str, Any]], count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable subset of the postgrest query builder."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.count_mode: Optional[str] = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.orders: List[Tuple[str, bool]] = []
        self.limit_n: Optional[int] = None
        self.range_bounds: Optional[Tuple[int, int]] = None

    # operations
    def select(self, columns: str = "*", count: Optional[str] = None):
        self.op = "select"
        self.count_mode = count
        return self

    def upsert(self, rows, on_conflict: str = "id"):
        self.op = "upsert"
        self.payload = rows if isinstance(rows, list) else [rows]
        self.on_conflict = on_conflict
        return self

    def insert(self, rows):
        self.op = "insert"
        self.payload = rows if isinstance(rows, list) else [rows]
        return self

    def update(self, row):
        self.op = "update"
        self.payload = row
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters
    def eq(self, column: str, value: Any):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def lt(self, column: str, value: Any):
        self.filters.append(lambda r: r.get(column) is not None and r[column] < value)
        return self

    def is_(self, column: str, value: str):
        assert value == "null"
        self.filters.append(lambda r: r.get(column) is None)
        return self

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    def range(self, start: int, end: int):
        self.range_bounds = (start, end)
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self) -> FakeResult:
        self.db.calls.append((self.table, self.op))
        if (self.table, self.op) in self.db.fail_on:
            raise Exception(f"simulated {self.op} failure on {self.table}")

        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "select":
            selected = [dict(r) for r in rows if self._matches(r)]
            for column, desc in reversed(self.orders):
                selected.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
            total = len(selected)
            if self.range_bounds is not None:
                start, end = self.range_bounds
                selected = selected[start:end + 1]
            if self.limit_n is not None:
                selected = selected[:self.limit_n]
            return FakeResult(selected, total if self.count_mode else None)

        if self.op == "upsert":
            keys = [r[self.on_conflict] for r in self.payload]
            if len(keys) != len(set(keys)):
                raise Exception("ON CONFLICT DO UPDATE command cannot affect row a second time")
            for new in self.payload:
                existing = next((r for r in rows if r.get(self.on_conflict) == new[self.on_conflict]), None)
                if existing is None:
                    rows.append(dict(new))
                else:
                    existing.update(new)
            return FakeResult([dict(r) for r in self.payload])

        if self.op == "insert":
            for new in self.payload:
                if any(r.get("id") == new.get("id") for r in rows):
                    raise Exception("duplicate key value violates unique constraint")
            rows.extend(dict(r) for r in self.payload)
            return FakeResult([dict(r) for r in self.payload])

        if self.op == "update":
            updated = []
            for r in rows:
                if self._matches(r):
                    r.update(self.payload)
                    updated.append(dict(r))
            return FakeResult(updated)

        if self.op == "delete":
            removed = [r for r in rows if self._matches(r)]
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResult(removed)

        raise AssertionError(f"unsupported op {self.op}")


class FakeSupabase:
    """In-memory stand-in for supabase.Client."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_on: Set[Tuple[str, str]] = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[Dict[str, Any]]:
        return self.tables.get(name, [])


# ─────────────────────────────────────────────────────────────────────────────
# WEB3
# ─────────────────────────────────────────────────────────────────────────────

def make_log(block: int, sender: str, raw_amount: int, tx_hash: str, recipient: str = CCA) -> Dict[str, Any]:
    """Transfer log dict shaped like eth_getLogs output."""
    return {
        "topics": [TRANSFER_TOPIC, address_topic(sender), address_topic(recipient)],
        "data": "0x" + format(raw_amount, "064x"),
        "transactionHash": tx_hash,
        "blockNumber": block,
    }


def tx(n: int) -> str:
    return "0x" + format(n, "064x")


class FakeEth:
    """Async eth namespace serving logs and blocks from memory."""

    def __init__(self, head: int, logs: Optional[List[Dict[str, Any]]] = None, block_time_base: int = 1_700_000_000):
        self.head = head
        self.logs = logs or []
        self.block_time_base = block_time_base
        self.get_logs_calls: List[Tuple[int, int]] = []
        self.failures: Dict[int, List[Exception]] = {}  # fromBlock -> exceptions to raise in order
        self.failing_blocks: Set[int] = set()

    @property
    def block_number(self):
        async def _head():
            return self.head
        return _head()

    async def get_logs(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        start, end = params["fromBlock"], params["toBlock"]
        self.get_logs_calls.append((start, end))

        pending = self.failures.get(start)
        if pending:
            raise pending.pop(0)

        recipient = params["topics"][2]
        return [
            log for log in self.logs
            if start <= log["blockNumber"] <= end and log["topics"][2] == recipient
        ]

    async def get_block(self, number: int) -> Dict[str, Any]:
        if number in self.failing_blocks:
            raise Exception(f"block {number} unavailable")
        return {"number": number, "timestamp": self.block_time_base + number * 2}


class FakeW3:
    def __init__(self, eth: FakeEth):
        self.eth = eth


class RateLimitedError(Exception):
    def __init__(self, message: str = "429 Too Many Requests"):
        super().__init__(message)
        self.status = 429


# ─────────────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────────────

def make_settings(**overrides) -> Settings:
    values = dict(
        SUPABASE_URL="https://example.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="service-key",
        BASE_RPC_URL="https://base.example",
        MAINNET_RPC_URL="",
        CRON_SECRET=SECRET,
        CCA_CONTRACT=CCA,
        USDC_CONTRACT=USDC,
        CCA_GENESIS_BLOCK=GENESIS,
        SYNC_CHUNK_SIZE=20,
        SYNC_MAX_CHUNKS_PER_CALL=100,
        RPC_MAX_RETRIES=3,
        RPC_RETRY_BASE_DELAY=0.0,
        TIMESTAMP_BATCH_DELAY=0.0,
        ENRICH_PAUSE_SECONDS=0.0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def db(supabase) -> AuctionDatabase:
    return AuctionDatabase(client=supabase, page_size=3)


@pytest.fixture
def eth() -> FakeEth:
    return FakeEth(head=GENESIS + 50)


@pytest.fixture
def reader(eth, settings) -> ChainLogReader:
    return ChainLogReader(
        token_address=USDC,
        recipient_address=CCA,
        w3=FakeW3(eth),
        max_block_span=settings.SYNC_CHUNK_SIZE,
        max_retries=settings.RPC_MAX_RETRIES,
        retry_base_delay=0.0,
    )


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
