"""
WordCard HTTP API

Endpoints for the live update stream, sync status and maintenance. Card
CRUD and page rendering belong to the presentation layer and are not
served here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from wordcard.cards.dedupe import DedupeMode
from wordcard.core.kernel import WordCardKernel

logger = structlog.get_logger(__name__)


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def create_router(kernel: WordCardKernel) -> APIRouter:
    """
    Create the FastAPI router for a replica.

    Args:
        kernel: The kernel whose store, hub and sync services are exposed.
    """
    router = APIRouter()

    @router.get("/health")
    async def health_check() -> Dict[str, Any]:
        return {
            "status": "healthy" if kernel.is_ready() else "starting",
            "cards": await kernel.store.count(),
            "connections": kernel.hub.connection_count,
            "timestamp": datetime.now().isoformat(),
        }

    @router.get("/events")
    async def events(keepalive: Optional[float] = Query(None, gt=0)):
        """Server-sent event stream of card changes."""
        subscription = kernel.hub.register()
        logger.info("api.events.connected", connection_id=subscription.connection_id)
        return StreamingResponse(
            kernel.hub.sse_stream(subscription, keepalive),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    # =========================================================================
    # Sync
    # =========================================================================

    @router.get("/sync/status")
    async def sync_status() -> Dict[str, Any]:
        return {"services": [report.to_dict() for report in kernel.sync_status()]}

    @router.post("/sync/{name}/trigger")
    async def trigger_sync(name: str) -> Dict[str, Any]:
        try:
            result = await kernel.trigger_sync(name)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown sync service: {name}")
        return result.to_dict()

    # =========================================================================
    # Maintenance
    # =========================================================================

    @router.post("/maintenance/dedupe")
    async def dedupe(mode: DedupeMode = Query(DedupeMode.CONTENT)) -> Dict[str, Any]:
        result = await kernel.dedupe(mode)
        return {"mode": mode.value, **result.to_dict()}

    @router.get("/status")
    async def status() -> Dict[str, Any]:
        return await kernel.get_status()

    return router
