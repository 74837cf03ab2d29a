"""
FastAPI Application Entry Point

This is the main application module that configures and runs the
webhook-to-browser link relay.

The API is designed to:
- Accept links from any webhook sender (GET or POST, query or JSON)
- Keep them in a per-token queue for a bounded retention window
- Hand each link to the polling browser extension at most once

Run with: uvicorn linkdrop.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.utils import get_timestamp
from .api.routes import router
from .models.schemas import ErrorResponse
from .queue.engine import close_delivery_engine, get_delivery_engine
from .queue.errors import DeliveryError
from .storage.base import StorageError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============================================================
# Application Lifespan Handler
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Verify storage connectivity, log configuration
    - Shutdown: Close storage connections
    """
    # ---- Startup ----
    logger.info("=" * 60)
    logger.info(f"{settings.api_title.upper()} STARTING")
    logger.info("=" * 60)
    logger.info(f"Server Port: {settings.server_port}")
    logger.info(f"API Version: {settings.api_version}")
    logger.info(f"Queue Key Prefix: {settings.queue.key_prefix}")
    logger.info(f"Max Queue Size: {settings.queue.max_queue_size}")
    logger.info(f"Max Deliver Per Poll: {settings.queue.max_deliver_per_poll}")
    logger.info(f"Item TTL: {settings.queue.item_ttl_seconds}s")

    engine = app.dependency_overrides.get(get_delivery_engine, get_delivery_engine)()
    if await engine.store.backend.ping():
        logger.info("✓ Storage backend connection verified")
    else:
        logger.warning("⚠ Could not verify storage backend connection")

    logger.info("=" * 60)

    yield  # Application runs here

    # ---- Shutdown ----
    logger.info("API shutting down...")
    await close_delivery_engine()


# ============================================================
# FastAPI Application Instance
# ============================================================

app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)


# ============================================================
# Middleware Configuration
# ============================================================

# Webhook senders and the extension call from arbitrary origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ============================================================
# Exception Handlers
# ============================================================

@app.exception_handler(DeliveryError)
async def delivery_exception_handler(request: Request, exc: DeliveryError):
    """
    Render rejected enqueue/poll requests.

    Invalid tokens, missing links and quota errors all map to the
    status carried by the error.
    """
    logger.info(f"Rejected {request.method} request: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True)
    )


@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: StorageError):
    """
    Storage backend failures are transient: ask the caller to retry
    rather than silently dropping links.
    """
    logger.error(f"Storage unavailable: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=ErrorResponse(
            error="Queue storage is temporarily unavailable. Please retry."
        ).model_dump(exclude_none=True)
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler: log unexpected errors and answer with a
    generic 500 body.
    """
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="An unexpected error occurred. Please try again."
        ).model_dump(exclude_none=True)
    )


# ============================================================
# Root Endpoint
# ============================================================

# Registered before the router so "/{token}" never shadows it
@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint with API information.
    """
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "description": settings.api_description,
        "endpoints": {
            "enqueue": "GET|POST /{token}?link=example.com",
            "poll": "GET /{token}/extension-poll",
            "health": "GET /health",
            "docs": "GET /docs"
        },
        "timestamp": get_timestamp()
    }


# ============================================================
# Route Registration
# ============================================================

app.include_router(router, tags=["Links"])


# ============================================================
# Run Configuration (for direct execution)
# ============================================================

if __name__ == "__main__":
    import uvicorn

    print("=" * 60)
    print(settings.api_title.upper())
    print("=" * 60)
    print(f"Binding to 0.0.0.0:{settings.server_port}")
    print(f"Docs: http://localhost:{settings.server_port}/docs")
    print("=" * 60)

    uvicorn.run(
        "linkdrop.main:app",
        host="0.0.0.0",
        port=settings.server_port,
        reload=False,
        workers=1,
        log_level="info"
    )
