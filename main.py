"""
CCA Contribution Tracker API Entry Point
"""
import logging
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from api.dependencies import initialize_dependencies, cleanup_dependencies
from api.routes import health, leaderboard, sync
from api.exceptions import APIException
from config.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def error_body(code: str, message: str) -> Dict[str, Any]:
    """Envelope shared by every non-2xx response"""
    return {"error": {"code": code, "message": message}}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting CCA tracker for contract {settings.CCA_CONTRACT or '<unset>'}")
    initialize_dependencies()
    yield
    cleanup_dependencies()


app = FastAPI(
    title="CCA Contribution Tracker API",
    description="Incremental sync of USDC contributions into the CCA auction on Base, with wallet and auction statistics",
    version="1.0.0",
    lifespan=lifespan
)

# GET-only surface for the dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.error_code or "API_ERROR", exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Anything that escapes a route; details go to the log, never the client"""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content=error_body("INTERNAL_SERVER_ERROR", "An internal server error occurred"))


app.include_router(health.router)
app.include_router(sync.router)
app.include_router(leaderboard.router)


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower()
    )
