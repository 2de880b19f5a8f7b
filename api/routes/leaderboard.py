"""
Dashboard read endpoints: statistics snapshot and wallet leaderboard
"""
import logging
from typing import Optional
from fastapi import APIRouter, Query

from api.dependencies import DatabaseDep
from api.exceptions import StatsNotFoundError
from api.schemas.leaderboard import StatsResponse, WalletListResponse, WalletResponse
from config.system_constants import ALIAS_NONE_SENTINEL

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cca", tags=["leaderboard"])


def _display_alias(value: Optional[str]) -> Optional[str]:
    if not value or value == ALIAS_NONE_SENTINEL:
        return None
    return value


@router.get("/stats", response_model=StatsResponse)
async def get_stats(db: DatabaseDep):
    """Latest auction-level statistics"""
    row = await db.get_stats()
    if not row:
        raise StatsNotFoundError()

    return StatsResponse(**{k: v for k, v in row.items() if k in StatsResponse.model_fields and v is not None})


@router.get("/wallets", response_model=WalletListResponse)
async def list_wallets(
    db: DatabaseDep,
    limit: int = Query(5000, ge=1, le=5000, description="Max wallets to return"),
    search: Optional[str] = Query(None, description="Match address or alias"),
):
    """Wallet aggregates ordered by total contribution"""
    rows = await db.get_wallets(limit=limit)

    wallets = [
        WalletResponse(
            address=row["address"],
            total_usdc=row.get("total_usdc") or 0.0,
            bid_count=row.get("bid_count") or 0,
            avg_bid=row.get("avg_bid") or 0.0,
            last_bid_time=row.get("last_bid_time"),
            alias=_display_alias(row.get("ens_name")),
        )
        for row in rows
    ]

    if search:
        needle = search.strip().lower()
        wallets = [
            w for w in wallets
            if needle in w.address.lower() or (w.alias and needle in w.alias.lower())
        ]

    return WalletListResponse(total=len(wallets), wallets=wallets)
