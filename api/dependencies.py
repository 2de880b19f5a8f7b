"""
FastAPI Dependencies
Shared dependencies for dependency injection
"""
import logging
from typing import Annotated, Optional

from fastapi import Depends, Query

from api.exceptions import ConfigurationAPIError, UnauthorizedAPIError
from clients.functions.sync import CCASyncOrchestrator, UnauthorizedError, authorize, build_orchestrator
from config.settings import Settings, settings
from database.client import AuctionDatabase

logger = logging.getLogger(__name__)


def initialize_dependencies():
    """Check configuration on startup (clients are built per request)"""
    logger.info("Initializing API dependencies...")

    validation = settings.validate_sync_config()
    for warning in validation["warnings"]:
        logger.warning(warning)
    for error in validation["errors"]:
        logger.error(error)

    logger.info(f"API dependencies initialized. Sync config valid: {validation['valid']}")


def cleanup_dependencies():
    """Cleanup dependencies (called on shutdown)"""
    logger.info("Cleaning up API dependencies...")


def get_settings() -> Settings:
    """Get application settings"""
    return settings


def require_secret(
    secret: Optional[str] = Query(None, description="Shared sync secret"),
    app_settings: Settings = Depends(get_settings),
) -> None:
    """Reject requests without the configured secret"""
    try:
        authorize(secret, app_settings.CRON_SECRET)
    except UnauthorizedError:
        raise UnauthorizedAPIError()


def get_orchestrator(app_settings: Settings = Depends(get_settings)) -> CCASyncOrchestrator:
    """Fresh orchestrator for this request"""
    return build_orchestrator(app_settings)


def get_database(app_settings: Settings = Depends(get_settings)) -> AuctionDatabase:
    """Database client for this request"""
    if not app_settings.SUPABASE_URL or not app_settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ConfigurationAPIError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY")
    return AuctionDatabase(
        app_settings.SUPABASE_URL,
        app_settings.SUPABASE_SERVICE_ROLE_KEY,
        page_size=app_settings.LEDGER_PAGE_SIZE,
    )


# Dependency injection annotations
SettingsDep = Annotated[Settings, Depends(get_settings)]
OrchestratorDep = Annotated[CCASyncOrchestrator, Depends(get_orchestrator)]
DatabaseDep = Annotated[AuctionDatabase, Depends(get_database)]
