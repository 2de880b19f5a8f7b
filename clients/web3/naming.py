"""
Name Resolution Client
Reverse-resolves wallet addresses to human-readable names:
Basenames on Base first, ENS on Ethereum mainnet second.
"""
import logging
from typing import Optional

from ens import AsyncENS
from ens.utils import normal_name_to_hash
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from config.system_constants import BASE_REVERSE_COIN_TYPE_HEX, BASENAME_L2_RESOLVER
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

L2_RESOLVER_ABI = [
    {
        "inputs": [{"internalType": "bytes32", "name": "node", "type": "bytes32"}],
        "name": "name",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    }
]


def basename_reverse_node(address: str) -> bytes:
    """ENSIP-19 reverse node for an address on Base."""
    return bytes(normal_name_to_hash(f"{address.lower().replace('0x', '')}.{BASE_REVERSE_COIN_TYPE_HEX}.reverse"))


class NameResolver:
    """
    Two-tier reverse resolver.

    Tier 1 asks the Basenames L2 resolver on Base; tier 2 asks the ENS
    registry on mainnet. Each tier returns None when no primary name is set
    and raises on transport errors, so the caller can tell the two apart.
    """

    def __init__(
        self,
        base_rpc_url: str = "",
        mainnet_rpc_url: str = "",
        base_w3: Optional[AsyncWeb3] = None,
        mainnet_w3: Optional[AsyncWeb3] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """
        Initialize name resolver.

        Args:
            base_rpc_url: Base JSON-RPC endpoint
            mainnet_rpc_url: Ethereum mainnet JSON-RPC endpoint (ENS tier disabled when empty)
            base_w3: Pre-built Base AsyncWeb3 instance
            mainnet_w3: Pre-built mainnet AsyncWeb3 instance
            rate_limiter: Optional pacing for both tiers
        """
        if base_w3 is None and base_rpc_url:
            base_w3 = AsyncWeb3(AsyncHTTPProvider(base_rpc_url))
        if mainnet_w3 is None and mainnet_rpc_url:
            mainnet_w3 = AsyncWeb3(AsyncHTTPProvider(mainnet_rpc_url))

        self.base_w3 = base_w3
        self.mainnet_w3 = mainnet_w3
        self.rate_limiter = rate_limiter

        self._l2_resolver = None
        if base_w3 is not None:
            self._l2_resolver = base_w3.eth.contract(
                address=Web3.to_checksum_address(BASENAME_L2_RESOLVER),
                abi=L2_RESOLVER_ABI,
            )

        self._ens: Optional[AsyncENS] = AsyncENS.from_web3(mainnet_w3) if mainnet_w3 is not None else None

        if self._ens is None:
            logger.info("ENS tier not configured - only Basenames will be queried")

    async def resolve_basename(self, address: str) -> Optional[str]:
        """Primary Basename for an address, or None."""
        if self._l2_resolver is None:
            return None
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire("basename")

        name = await self._l2_resolver.functions.name(basename_reverse_node(address)).call()
        return name or None

    async def resolve_ens(self, address: str) -> Optional[str]:
        """Primary ENS name for an address, or None."""
        if self._ens is None:
            return None
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire("ens")

        name = await self._ens.name(Web3.to_checksum_address(address))
        return name or None
