"""
Custom API Exceptions
"""
from fastapi import HTTPException
from typing import Optional


class APIException(HTTPException):
    """Base API exception"""
    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code


class UnauthorizedAPIError(APIException):
    """Missing or wrong sync secret"""
    def __init__(self):
        super().__init__(
            status_code=401,
            detail="Unauthorized",
            error_code="UNAUTHORIZED"
        )


class ConfigurationAPIError(APIException):
    """Server is missing required configuration"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=500,
            detail=f"Server misconfigured: {reason}",
            error_code="CONFIGURATION_ERROR"
        )


class SyncInProgressAPIError(APIException):
    """Another sync invocation holds the lease"""
    def __init__(self):
        super().__init__(
            status_code=409,
            detail="A sync is already in progress",
            error_code="SYNC_IN_PROGRESS"
        )


class SyncFailedError(APIException):
    """Sync aborted before it could report a summary"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=500,
            detail=f"Sync failed: {reason}",
            error_code="SYNC_FAILED"
        )


class StatsNotFoundError(APIException):
    """No statistics snapshot has been written yet"""
    def __init__(self):
        super().__init__(
            status_code=404,
            detail="No statistics snapshot available yet",
            error_code="STATS_NOT_FOUND"
        )
