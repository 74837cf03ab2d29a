"""
API Routes - webhook enqueue and extension poll endpoints.

- GET|POST /{token}: queue one or more links for the token's browser
- GET /{token}/extension-poll: hand the oldest pending links to the extension

Both are also served under /api/ for older extension builds. Handlers do
no work of their own beyond parsing the request; errors raised by the
delivery engine are rendered by the handlers registered in main.py.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from ..core.config import settings
from ..core.links import flatten_query
from ..core.utils import get_timestamp, safe_json_loads
from ..models.schemas import (
    EnqueueResponse,
    PollResponse,
    HealthResponse,
    ErrorResponse
)
from ..queue.engine import DeliveryEngine, get_delivery_engine

# Configure logging
logger = logging.getLogger(__name__)

# Create the router
router = APIRouter()


async def _read_json_body(request: Request) -> Optional[dict[str, Any]]:
    """Parse a JSON object body; anything else counts as no body."""
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type:
        return None
    body = safe_json_loads(await request.body())
    return body if isinstance(body, dict) else None


# ============================================================
# Health Endpoint
# ============================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check"
)
async def health_check(
    engine: DeliveryEngine = Depends(get_delivery_engine)
) -> HealthResponse:
    """Report whether the storage backend is reachable."""
    backend_healthy = await engine.store.backend.ping()

    return HealthResponse(
        status="healthy" if backend_healthy else "degraded",
        version=settings.api_version,
        queue_connected=backend_healthy,
        timestamp=get_timestamp()
    )


# ============================================================
# Queue Endpoints
# ============================================================

@router.api_route(
    "/{token}",
    methods=["GET", "POST"],
    response_model=EnqueueResponse,
    summary="Queue links for a browser",
    description="""
    Queue links to be opened by the browser extension that owns the token.

    Links may be sent as query parameters (`link`, `links`, `link[]`,
    `links[]`, comma-separated or repeated) or as a JSON body
    `{"link": "...", "links": ["..."]}`. Links without a scheme get https://.
    """,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid endpoint or no links"},
        429: {"model": ErrorResponse, "description": "Queue limit reached"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"}
    }
)
@router.api_route(
    "/api/{token}",
    methods=["GET", "POST"],
    response_model=EnqueueResponse,
    include_in_schema=False
)
async def enqueue_links(
    token: str,
    request: Request,
    engine: DeliveryEngine = Depends(get_delivery_engine)
) -> EnqueueResponse:
    query = flatten_query(request.query_params.multi_items())
    body = await _read_json_body(request)
    return await engine.enqueue(token, query, body)


@router.get(
    "/{token}/extension-poll",
    response_model=PollResponse,
    summary="Poll pending links",
    description="""
    Remove and return up to the configured number of the oldest pending
    links. Each link is handed out at most once.
    """,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid endpoint"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"}
    }
)
@router.get(
    "/api/{token}/extension-poll",
    response_model=PollResponse,
    include_in_schema=False
)
async def extension_poll(
    token: str,
    engine: DeliveryEngine = Depends(get_delivery_engine)
) -> PollResponse:
    return await engine.poll(token)
