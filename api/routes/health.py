"""
Health check endpoints
"""
from datetime import datetime, timezone
from fastapi import APIRouter

from api.dependencies import SettingsDep

router = APIRouter()


@router.get("/")
async def root():
    """Simple health check endpoint"""
    return {
        "status": "online",
        "service": "CCA Contribution Tracker API",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health")
async def health(app_settings: SettingsDep):
    """Detailed health check with configuration status"""
    validation = app_settings.validate_sync_config()

    return {
        "status": "healthy" if validation["valid"] else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sync_configured": validation["valid"],
        "config_errors": validation["errors"],
        "ens_fallback_enabled": bool(app_settings.MAINNET_RPC_URL),
        "genesis_block": app_settings.CCA_GENESIS_BLOCK,
        "chunk_size": app_settings.SYNC_CHUNK_SIZE,
        "max_chunks_per_call": app_settings.SYNC_MAX_CHUNKS_PER_CALL,
    }
