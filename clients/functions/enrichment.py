"""Best-effort alias enrichment for the top contributing wallets."""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from clients.web3.naming import NameResolver
from config.system_constants import ALIAS_NONE_SENTINEL
from database.client import AuctionDatabase

logger = logging.getLogger(__name__)


class AliasEnricher:
    """
    Resolves aliases for a bounded batch of unchecked wallets, highest total first.

    A wallet whose tiers both answer "no name" is marked with the none
    sentinel so it is not queried again. A wallet where a tier errored and no
    name was found is left unchecked and retried on a later run.
    """

    def __init__(
        self,
        db: AuctionDatabase,
        resolver: NameResolver,
        batch_size: int = 20,
        pause_every: int = 5,
        pause_seconds: float = 1.0,
    ):
        assert batch_size > 0, "batch_size must be positive"
        assert pause_every > 0, "pause_every must be positive"
        self.db = db
        self.resolver = resolver
        self.batch_size = batch_size
        self.pause_every = pause_every
        self.pause_seconds = pause_seconds

    async def resolve_alias(self, address: str) -> Tuple[Optional[str], bool]:
        """
        Try both tiers for one address.

        Returns:
            (alias or None, whether any tier failed)
        """
        failed = False

        try:
            name = await self.resolver.resolve_basename(address)
            if name:
                return name, False
        except Exception as e:
            logger.warning(f"Basename lookup failed for {address}: {e}")
            failed = True

        try:
            name = await self.resolver.resolve_ens(address)
            if name:
                return name, False
        except Exception as e:
            logger.warning(f"ENS lookup failed for {address}: {e}")
            failed = True

        return None, failed

    async def enrich_top_wallets(self) -> Dict[str, int]:
        """
        Run one enrichment batch.

        Returns:
            Counts: checked, resolved, none_found, failed
        """
        stats = {"checked": 0, "resolved": 0, "none_found": 0, "failed": 0}

        try:
            candidates = await self.db.get_wallets_missing_alias(self.batch_size)
        except Exception as e:
            logger.error(f"Could not load wallets for enrichment: {e}")
            return stats

        for i, row in enumerate(candidates):
            if i and i % self.pause_every == 0 and self.pause_seconds > 0:
                await asyncio.sleep(self.pause_seconds)

            address = row["address"]
            alias, failed = await self.resolve_alias(address)
            stats["checked"] += 1

            if alias:
                if await self.db.set_wallet_alias(address, alias):
                    stats["resolved"] += 1
                    logger.info(f"Resolved {address} -> {alias}")
            elif failed:
                stats["failed"] += 1
            elif await self.db.set_wallet_alias(address, ALIAS_NONE_SENTINEL):
                stats["none_found"] += 1

        if stats["checked"]:
            logger.info(f"Enrichment batch: {stats}")
        return stats
