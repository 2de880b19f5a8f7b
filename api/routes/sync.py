"""
Sync trigger and status endpoints
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query

from api.dependencies import DatabaseDep, OrchestratorDep, require_secret
from api.exceptions import (
    ConfigurationAPIError,
    SyncFailedError,
    SyncInProgressAPIError,
    UnauthorizedAPIError,
)
from api.schemas.sync import LeaseResponse, StatusResponse, SyncResponse
from clients.functions.sync import (
    ConfigurationError,
    SyncError,
    SyncInProgressError,
    UnauthorizedError,
)
from database.client import DatabaseError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cca", tags=["sync"])


@router.get("/sync", response_model=SyncResponse)
async def trigger_sync(
    orchestrator: OrchestratorDep,
    secret: Optional[str] = Query(None, description="Shared sync secret"),
    reset: Optional[int] = Query(None, ge=0, description="Force the checkpoint to this block and stop"),
):
    """Run one bounded sync invocation (or a checkpoint reset)"""
    try:
        summary = await orchestrator.run(secret, reset_block=reset)
    except UnauthorizedError:
        raise UnauthorizedAPIError()
    except ConfigurationError as e:
        raise ConfigurationAPIError(str(e))
    except SyncInProgressError:
        raise SyncInProgressAPIError()
    except (SyncError, DatabaseError) as e:
        raise SyncFailedError(str(e))

    return SyncResponse(**summary.to_dict())


@router.get("/status", response_model=StatusResponse, dependencies=[Depends(require_secret)])
async def sync_status(db: DatabaseDep):
    """Read-only view of checkpoint, ledger size and lease holder"""
    checkpoint = await db.get_checkpoint()
    count = await db.get_transfer_count()
    lease = await db.get_lease()

    return StatusResponse(
        last_processed_block=checkpoint.last_processed_block,
        checkpoint_updated_at=checkpoint.updated_at,
        total_transfers_in_db=count,
        lease=LeaseResponse(holder=lease.holder, expires_at=lease.expires_at) if lease else None,
    )
