"""CCA USDC sync orchestration: checkpoint -> chunked log scan -> ledger -> aggregates -> aliases."""

import hmac
import logging
import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from clients.functions.aggregator import aggregate_ledger
from clients.functions.enrichment import AliasEnricher
from clients.functions.normalizer import BlockTimestampResolver, dedupe_by_tx_hash, normalize_logs
from clients.web3.base_chain import ChainLogReader, ChainReaderError, RateLimitExhaustedError, RawTransferLog
from clients.web3.naming import NameResolver
from config.settings import Settings
from database.client import AuctionDatabase, LedgerWriteError  # noqa: F401
from database.schema import SyncCheckpoint
from utils.rate_limiter import RateLimitConfig, RateLimiter

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Base exception for sync invocations"""
    pass


class UnauthorizedError(SyncError):
    """Caller token missing or not matching the configured secret"""
    pass


class ConfigurationError(SyncError):
    """Required endpoint or credential missing"""
    pass


class SyncInProgressError(SyncError):
    """Another invocation holds the sync lease"""
    pass


class SyncState(str, Enum):
    """Orchestrator states"""
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    LOADING_CHECKPOINT = "loading_checkpoint"
    DETERMINING_RANGE = "determining_range"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    PERSISTING_LEDGER = "persisting_ledger"
    AGGREGATING = "aggregating"
    ENRICHING = "enriching"
    SAVING_CHECKPOINT = "saving_checkpoint"
    DONE = "done"
    ABORTED = "aborted"


class StopReason(str, Enum):
    """Why the chunk loop ended"""
    COMPLETED = "completed"  # reached chain head
    CHUNK_CAP = "chunk_cap"  # max chunks per call reached
    RATE_LIMITED = "rate_limited"  # retries exhausted on a chunk
    PROVIDER_ERROR = "provider_error"  # non rate-limit failure on a chunk
    UP_TO_DATE = "up_to_date"  # nothing to scan


@dataclass
class SyncSummary:
    """Structured result of one invocation"""
    success: bool
    message: str
    current_block: Optional[int] = None
    saved_block: Optional[int] = None
    block_range: Optional[Dict[str, int]] = None
    blocks_scanned: int = 0
    chunks_processed: int = 0
    new_transfers: int = 0
    total_transfers_in_db: Optional[int] = None
    caught_up: bool = False
    stopped_reason: Optional[str] = None
    remaining_blocks: int = 0
    estimated_calls_remaining: int = 0
    save_error: Optional[str] = None
    aggregation_error: Optional[str] = None
    enriched_wallets: int = 0
    states: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def authorize(token: Optional[str], secret: Optional[str]) -> None:
    """Reject unless the caller token matches a configured, non-empty secret."""
    if not secret or not token or not hmac.compare_digest(str(token), str(secret)):
        raise UnauthorizedError("Unauthorized")


class CCASyncOrchestrator:
    """
    Drives one sync invocation end to end.

    Clients are either injected or built from settings for the lifetime of
    this object; nothing is shared between invocations. The checkpoint only
    ever moves to the end of the last chunk that was scanned without error,
    and only after that chunk's transfers are durably in the ledger.
    """

    def __init__(
        self,
        settings: Settings,
        db: Optional[AuctionDatabase] = None,
        reader: Optional[ChainLogReader] = None,
        enricher: Optional[AliasEnricher] = None,
    ):
        self.settings = settings
        self.db = db
        self.reader = reader
        self.enricher = enricher
        self._build_missing = db is None or reader is None

        self.state = SyncState.IDLE
        self.state_history: List[SyncState] = []
        self.lease_holder = uuid.uuid4().hex

    # ─────────────────────────────────────────────────────────────────────────
    # SETUP
    # ─────────────────────────────────────────────────────────────────────────

    def _transition(self, state: SyncState) -> None:
        self.state = state
        self.state_history.append(state)
        logger.info(f"[SYNC] -> {state.value}")

    def _build_clients(self) -> None:
        """Construct per-invocation clients from settings."""
        validation = self.settings.validate_sync_config()
        for warning in validation["warnings"]:
            logger.warning(warning)
        if not validation["valid"]:
            raise ConfigurationError("; ".join(validation["errors"]))

        s = self.settings
        rps = s.RPC_REQUESTS_PER_SECOND
        limiter = RateLimiter({"base_rpc": RateLimitConfig(requests_per_second=rps, burst_size=max(1, int(rps)))})

        if self.db is None:
            self.db = AuctionDatabase(s.SUPABASE_URL, s.SUPABASE_SERVICE_ROLE_KEY, page_size=s.LEDGER_PAGE_SIZE)
        if self.reader is None:
            self.reader = ChainLogReader(
                token_address=s.USDC_CONTRACT,
                recipient_address=s.CCA_CONTRACT,
                rpc_url=s.BASE_RPC_URL,
                max_block_span=s.SYNC_CHUNK_SIZE,
                max_retries=s.RPC_MAX_RETRIES,
                retry_base_delay=s.RPC_RETRY_BASE_DELAY,
                rate_limiter=limiter,
            )
        if self.enricher is None:
            resolver = NameResolver(
                base_w3=self.reader.w3,
                mainnet_rpc_url=s.MAINNET_RPC_URL,
                rate_limiter=limiter,
            )
            self.enricher = AliasEnricher(
                self.db,
                resolver,
                batch_size=s.ENRICH_BATCH_SIZE,
                pause_every=s.ENRICH_PAUSE_EVERY,
                pause_seconds=s.ENRICH_PAUSE_SECONDS,
            )

    def _resume_block(self, checkpoint: SyncCheckpoint, head: int) -> int:
        if checkpoint.is_set:
            return checkpoint.last_processed_block + 1
        if self.settings.CCA_GENESIS_BLOCK is not None:
            return self.settings.CCA_GENESIS_BLOCK
        return max(head - self.settings.INITIAL_LOOKBACK_BLOCKS, 0)

    # ─────────────────────────────────────────────────────────────────────────
    # ENTRY POINTS
    # ─────────────────────────────────────────────────────────────────────────

    async def run(self, token: Optional[str], reset_block: Optional[int] = None) -> SyncSummary:
        """
        Execute one invocation.

        Args:
            token: Caller-supplied shared secret
            reset_block: Administrative override; force the checkpoint to this block and stop

        Returns:
            SyncSummary describing exactly what happened

        Raises:
            UnauthorizedError, ConfigurationError, SyncInProgressError, LedgerWriteError,
            or any storage error before the ledger write
        """
        try:
            self._transition(SyncState.AUTHENTICATING)
            authorize(token, self.settings.CRON_SECRET)

            if self._build_missing:
                self._build_clients()

            if not await self.db.acquire_lease(self.lease_holder, self.settings.SYNC_LEASE_SECONDS):
                raise SyncInProgressError("Sync already in progress")

            try:
                if reset_block is not None:
                    summary = await self._reset(reset_block)
                else:
                    summary = await self._sync()
            finally:
                await self.db.release_lease(self.lease_holder)

        except Exception as e:
            self._transition(SyncState.ABORTED)
            logger.error(f"[SYNC] aborted: {type(e).__name__}: {e}")
            raise

        summary.states = [s.value for s in self.state_history]
        return summary

    async def _reset(self, block: int) -> SyncSummary:
        if block < 0:
            raise ValueError(f"reset block must be non-negative, got {block}")

        self._transition(SyncState.SAVING_CHECKPOINT)
        error = await self.db.save_checkpoint(block)
        if error:
            raise SyncError(f"Failed to reset checkpoint: {error}")

        logger.warning(f"[SYNC] checkpoint force-reset to block {block}")
        self._transition(SyncState.DONE)
        return SyncSummary(success=True, message="Checkpoint reset", saved_block=block)

    async def _sync(self) -> SyncSummary:
        s = self.settings

        self._transition(SyncState.LOADING_CHECKPOINT)
        checkpoint = await self.db.get_checkpoint()

        self._transition(SyncState.DETERMINING_RANGE)
        head = await self.reader.get_head_block()
        start = self._resume_block(checkpoint, head)

        if start > head:
            self._transition(SyncState.DONE)
            return SyncSummary(
                success=True,
                message="Already up to date",
                current_block=head,
                saved_block=checkpoint.last_processed_block,
                caught_up=True,
                stopped_reason=StopReason.UP_TO_DATE.value,
            )

        logger.info(f"[SYNC] scanning from block {start} towards head {head} (checkpoint={checkpoint.last_processed_block})")

        # FETCHING
        raw_logs: List[RawTransferLog] = []
        cursor = start
        last_ok = start - 1
        chunks = 0
        stop = StopReason.COMPLETED

        while cursor <= head:
            if chunks >= s.SYNC_MAX_CHUNKS_PER_CALL:
                stop = StopReason.CHUNK_CAP
                break

            chunk_end = min(cursor + s.SYNC_CHUNK_SIZE - 1, head)
            self._transition(SyncState.FETCHING)
            try:
                logs = await self.reader.fetch_transfers(cursor, chunk_end)
            except RateLimitExhaustedError as e:
                logger.warning(f"[SYNC] stopping scan, rate limit exhausted: {e}")
                stop = StopReason.RATE_LIMITED
                break
            except ChainReaderError as e:
                logger.error(f"[SYNC] stopping scan at chunk {cursor}-{chunk_end}: {e}")
                stop = StopReason.PROVIDER_ERROR
                break

            raw_logs.extend(logs)
            last_ok = chunk_end
            cursor = chunk_end + 1
            chunks += 1

        # NORMALIZING
        self._transition(SyncState.NORMALIZING)
        timestamps = BlockTimestampResolver(
            self.reader,
            head_block=head,
            block_time_seconds=s.BLOCK_TIME_SECONDS,
            batch_size=s.TIMESTAMP_BATCH_SIZE,
            batch_delay=s.TIMESTAMP_BATCH_DELAY,
        )
        records = dedupe_by_tx_hash(await normalize_logs(raw_logs, s.CCA_CONTRACT, timestamps))

        # PERSISTING_LEDGER (failure here aborts before the checkpoint moves)
        self._transition(SyncState.PERSISTING_LEDGER)
        await self.db.upsert_transfers(records)

        advanced = last_ok >= start
        effective_block = last_ok if advanced else checkpoint.last_processed_block

        # AGGREGATING
        self._transition(SyncState.AGGREGATING)
        total_in_db: Optional[int] = None
        aggregation_error: Optional[str] = None
        try:
            ledger = await self.db.fetch_all_transfers()
            total_in_db = len(ledger)
            result = aggregate_ledger(ledger, effective_block, datetime.now(timezone.utc))
            saved = await self.db.upsert_wallet_aggregates(result.wallets)
            if saved < len(result.wallets):
                # stats snapshot must agree with the wallet table
                aggregation_error = f"Saved {saved} of {len(result.wallets)} wallet aggregates; stats not updated"
                logger.error(f"[SYNC] {aggregation_error}")
            elif not await self.db.save_stats(result.stats):
                aggregation_error = "Failed to save stats snapshot"
        except Exception as e:
            logger.error(f"[SYNC] aggregation failed, will recompute next run: {e}")
            aggregation_error = str(e)

        # ENRICHING
        self._transition(SyncState.ENRICHING)
        enriched = 0
        if self.enricher is not None:
            try:
                enrich_stats = await self.enricher.enrich_top_wallets()
                enriched = enrich_stats.get("resolved", 0) + enrich_stats.get("none_found", 0)
            except Exception as e:
                logger.error(f"[SYNC] enrichment failed: {e}")

        # SAVING_CHECKPOINT
        self._transition(SyncState.SAVING_CHECKPOINT)
        save_error = await self.db.save_checkpoint(last_ok) if advanced else None

        remaining = max(head - last_ok, 0)
        blocks_per_call = s.SYNC_CHUNK_SIZE * s.SYNC_MAX_CHUNKS_PER_CALL
        caught_up = last_ok >= head

        self._transition(SyncState.DONE)
        summary = SyncSummary(
            success=True,
            message="Sync complete" if caught_up else f"Partial sync ({stop.value})",
            current_block=head,
            saved_block=effective_block,
            block_range={"from": start, "to": last_ok},
            blocks_scanned=max(last_ok - start + 1, 0),
            chunks_processed=chunks,
            new_transfers=len(records),
            total_transfers_in_db=total_in_db,
            caught_up=caught_up,
            stopped_reason=stop.value,
            remaining_blocks=remaining,
            estimated_calls_remaining=math.ceil(remaining / blocks_per_call),
            save_error=save_error,
            aggregation_error=aggregation_error,
            enriched_wallets=enriched,
        )
        logger.info(
            f"[SYNC] done: blocks {start}-{last_ok}, {len(records)} transfers, "
            f"caught_up={caught_up}, stop={stop.value}"
        )
        return summary


def build_orchestrator(settings: Settings) -> CCASyncOrchestrator:
    """New orchestrator for one invocation; its clients are built after authentication."""
    return CCASyncOrchestrator(settings)
