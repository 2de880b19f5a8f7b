"""
Base Chain Log Reader
Fetches USDC Transfer events sent to the CCA auction contract, one bounded
block range at a time, with retry/backoff on provider rate limiting.
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from config.system_constants import TRANSFER_TOPIC
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
RATE_LIMIT_RPC_CODES = (429, -32005)  # -32005: limit exceeded

# Whole phrases only, never bare numeric substrings
RATE_LIMIT_PATTERN = re.compile(
    r"too many requests"
    r"|rate[ _-]?limit"
    r"|exceeded (?:its |your )?compute units"
    r"|['\"]code['\"]\s*:\s*-32005\b",
    re.IGNORECASE,
)


class ChainReaderError(Exception):
    """A log query failed for a reason the reader could not recover from"""
    pass


class RateLimitExhaustedError(ChainReaderError):
    """The provider kept rate limiting the same range after all retries"""
    pass


@dataclass(frozen=True)
class RawTransferLog:
    """Decoded Transfer(address indexed from, address indexed to, uint256 value) log."""
    sender: str
    raw_amount: int
    tx_hash: str
    block_number: int


def _to_hex(value: Any) -> str:
    """Render HexBytes / bytes / str uniformly as 0x-prefixed lowercase hex."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else f"0x{text}"


def _rpc_error_code(exc: BaseException) -> Optional[int]:
    """JSON-RPC error code carried by a provider exception, if any."""
    payloads = [arg for arg in exc.args if isinstance(arg, dict)]
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict) and isinstance(rpc_response.get("error"), dict):
        payloads.append(rpc_response["error"])

    for payload in payloads:
        code = payload.get("code")
        if isinstance(code, int):
            return code
    return None


def address_topic(address: str) -> str:
    """Left-pad an address to a 32-byte indexed topic."""
    return "0x" + address.lower().replace("0x", "").rjust(64, "0")


class ChainLogReader:
    """
    Reader for ERC-20 Transfer logs into a single recipient on Base.

    Each call covers one inclusive block range no wider than max_block_span
    (the provider's getLogs limit). Rate-limit responses are retried with
    exponential backoff; any other failure aborts the range so the caller
    never marks it as scanned.
    """

    def __init__(
        self,
        token_address: str,
        recipient_address: str,
        rpc_url: str = "",
        w3: Optional[AsyncWeb3] = None,
        max_block_span: int = 10,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """
        Initialize the reader.

        Args:
            token_address: ERC-20 contract emitting the Transfer events (USDC)
            recipient_address: Indexed `to` filter (the auction contract)
            rpc_url: Base JSON-RPC endpoint (ignored when w3 is given)
            w3: Pre-built AsyncWeb3 instance
            max_block_span: Max number of blocks per getLogs call
            max_retries: Attempts per range when rate limited
            retry_base_delay: First backoff delay in seconds, doubled per attempt
            rate_limiter: Optional pacing shared with other calls of this invocation
        """
        if w3 is None:
            assert rpc_url, "rpc_url must not be empty"
            w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))

        assert max_block_span > 0, "max_block_span must be positive"
        assert max_retries > 0, "max_retries must be positive"

        self.w3 = w3
        self.token_address = Web3.to_checksum_address(token_address)
        self.recipient_address = recipient_address.lower()
        self.max_block_span = max_block_span
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.rate_limiter = rate_limiter
        self.provider_name = "base_rpc"

        self.stats_requests = 0
        self.stats_rate_limited = 0

    @staticmethod
    def is_rate_limit_error(exc: BaseException) -> bool:
        """Classify a provider exception as a rate-limit signal."""
        status = getattr(exc, "status", None)
        if status is None:
            status = getattr(getattr(exc, "response", None), "status_code", None)
        if status == RATE_LIMIT_STATUS:
            return True
        if _rpc_error_code(exc) in RATE_LIMIT_RPC_CODES:
            return True
        return bool(RATE_LIMIT_PATTERN.search(str(exc)))

    async def _throttle(self) -> None:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire(self.provider_name)
        self.stats_requests += 1

    async def get_head_block(self) -> int:
        """Current chain head block number."""
        await self._throttle()
        return int(await self.w3.eth.block_number)

    async def get_block_timestamp(self, block_number: int) -> int:
        """Unix timestamp of a block. Errors propagate to the caller."""
        await self._throttle()
        block = await self.w3.eth.get_block(block_number)
        return int(block["timestamp"])

    def _filter_params(self, from_block: int, to_block: int) -> Dict[str, Any]:
        return {
            "address": self.token_address,
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": [TRANSFER_TOPIC, None, address_topic(self.recipient_address)],
        }

    @staticmethod
    def _parse_log(log: Dict[str, Any]) -> RawTransferLog:
        topics = log.get("topics") or []
        if len(topics) < 3:
            raise ChainReaderError(f"Transfer log without indexed from/to: {log!r}")

        data = _to_hex(log.get("data") or "0x")
        return RawTransferLog(
            sender="0x" + _to_hex(topics[1])[-40:],
            raw_amount=int(data, 16) if data != "0x" else 0,
            tx_hash=_to_hex(log["transactionHash"]),
            block_number=int(log["blockNumber"]),
        )

    async def fetch_transfers(self, from_block: int, to_block: int) -> List[RawTransferLog]:
        """
        Fetch Transfer logs into the recipient within [from_block, to_block].

        Args:
            from_block: First block (inclusive)
            to_block: Last block (inclusive)

        Returns:
            Decoded logs in provider order

        Raises:
            RateLimitExhaustedError: Rate limited on every attempt
            ChainReaderError: Any other provider failure
        """
        if from_block > to_block:
            return []
        if to_block - from_block + 1 > self.max_block_span:
            raise ValueError(
                f"Range {from_block}-{to_block} exceeds max block span {self.max_block_span}"
            )

        params = self._filter_params(from_block, to_block)

        for attempt in range(self.max_retries):
            await self._throttle()
            try:
                raw_logs = await self.w3.eth.get_logs(params)
            except Exception as e:
                if not self.is_rate_limit_error(e):
                    logger.error(f"getLogs failed for blocks {from_block}-{to_block}: {e}")
                    raise ChainReaderError(f"getLogs {from_block}-{to_block}: {e}") from e

                self.stats_rate_limited += 1
                if attempt == self.max_retries - 1:
                    break
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    f"Rate limited on blocks {from_block}-{to_block} "
                    f"(attempt {attempt + 1}/{self.max_retries}), retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            try:
                logs = [self._parse_log(log) for log in raw_logs]
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Malformed log in blocks {from_block}-{to_block}: {e}")
                raise ChainReaderError(f"Undecodable log in blocks {from_block}-{to_block}: {e}") from e
            logger.debug(f"Fetched {len(logs)} logs for blocks {from_block}-{to_block}")
            return logs

        logger.warning(
            f"Rate limit retries exhausted for blocks {from_block}-{to_block} "
            f"after {self.max_retries} attempts"
        )
        raise RateLimitExhaustedError(
            f"Rate limited on blocks {from_block}-{to_block} after {self.max_retries} attempts"
        )
