# Windows event loop policy must be set before any other imports
import sys
import asyncio

if sys.platform == 'win32':
    # ProactorEventLoop is required for Playwright subprocess spawning
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

import logging
import traceback
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from nags_lookup.core.config import settings

# Setup Logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-tier NAGS glass parts lookup",
    docs_url="/docs",
    redoc_url="/redoc",
)

# --------------------------------------------------------------------------
# Database + Retry Worker (Startup / Shutdown)
# --------------------------------------------------------------------------
from nags_lookup.core.database import init_db
from nags_lookup.services.nags_lookup_service import get_nags_lookup
from nags_lookup.services.retry_queue_worker import retry_queue_worker


@app.on_event("startup")
async def on_startup():
    try:
        logger.info("Connecting to Database...")
        await init_db()
        logger.info("Database Connection Successful!")
    except Exception as e:
        logger.error(f"Database Connection FAILED: {e}")
        return

    if settings.ENABLE_RETRY_WORKER:
        retry_queue_worker.register("nags_lookup", get_nags_lookup().retry_lookup)
        retry_queue_worker.start()


@app.on_event("shutdown")
async def on_shutdown():
    await retry_queue_worker.stop()


# --------------------------------------------------------------------------
# Global Exception Handler (JSON body on 500 as well)
# --------------------------------------------------------------------------
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_msg = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(f"ERROR OCCURRED AT {request.url.path}:\n{error_msg}")

    return JSONResponse(
        status_code=500,
        content={
            "message": "Internal Server Error",
            "detail": str(exc),
            "path": str(request.url)
        }
    )


# --------------------------------------------------------------------------
# Basic Routes
# --------------------------------------------------------------------------
@app.get("/")
async def root():
    return {
        "message": "NAGS Lookup API is running",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# --------------------------------------------------------------------------
# API Routers
# --------------------------------------------------------------------------
from nags_lookup.api.v1 import api_router

app.include_router(api_router, prefix="/api/v1")
