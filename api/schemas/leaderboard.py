"""
Pydantic schemas for the dashboard read endpoints
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class StatsResponse(BaseModel):
    """Auction-level statistics snapshot"""
    total_usdc: float = 0.0
    total_bids: int = 0
    unique_wallets: int = 0
    avg_bid: float = 0.0
    median_bid: float = 0.0
    pct_under_50: float = Field(0.0, description="Percent of transfers below 50 USDC")
    pct_under_100: float = Field(0.0, description="Percent of transfers below 100 USDC")
    top_10_share: float = Field(0.0, description="Percent of total held by the top 10 wallets")
    top_50_share: float = Field(0.0, description="Percent of total held by the top 50 wallets")
    last_block: Optional[int] = None
    updated_at: Optional[datetime] = None


class WalletResponse(BaseModel):
    """One wallet aggregate row"""
    address: str
    total_usdc: float = 0.0
    bid_count: int = 0
    avg_bid: float = 0.0
    last_bid_time: Optional[datetime] = None
    alias: Optional[str] = None


class WalletListResponse(BaseModel):
    """Wallet aggregates, highest total first"""
    total: int
    wallets: List[WalletResponse]
