import logging

from fastapi import APIRouter, Depends, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from api.dependencies import get_store
from storage.base import Store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(store: Store = Depends(get_store)) -> dict:
    """Health check endpoint for container orchestration."""
    health = await store.health()
    if health.get("status") != "healthy":
        logger.warning(f"Store unhealthy: {health}")
        health["status"] = "degraded"
    return health


@router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus scrape endpoint.
    """
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
