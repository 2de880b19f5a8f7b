"""
Pydantic schemas for sync endpoints
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class SyncResponse(BaseModel):
    """Summary of one sync invocation"""
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
    states: List[str] = Field(default_factory=list)


class LeaseResponse(BaseModel):
    """Current lease holder"""
    holder: str
    expires_at: Optional[datetime] = None


class StatusResponse(BaseModel):
    """Read-only view of sync progress"""
    last_processed_block: Optional[int] = None
    checkpoint_updated_at: Optional[datetime] = None
    total_transfers_in_db: int = 0
    lease: Optional[LeaseResponse] = None
