"""
Health and service info endpoints
"""
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.api.deps import get_payment_poller
from app.config import settings
from app.database import get_db
from app.services.payment_poller import PaymentPoller

router = APIRouter(tags=["health"])


def _database_status(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
        return "healthy"
    except Exception as e:
        return f"unhealthy: {str(e)}"


async def _catalog_status() -> str:
    try:
        async with httpx.AsyncClient(timeout=2.0) as client:
            response = await client.get(f"{settings.PRODUCT_SERVICE_URL}/health")
    except httpx.HTTPError as e:
        return f"unhealthy: {str(e)}"
    if response.status_code != 200:
        return f"unhealthy: status {response.status_code}"
    return "healthy"


@router.get("/health")
async def health_check(
    db: Session = Depends(get_db),
    poller: PaymentPoller = Depends(get_payment_poller)
):
    """
    Health check endpoint

    The service is healthy when the database and the catalog respond.
    PayOS credentials and event publishing are reported but do not affect
    the overall status: checkout still records orders without them.
    """
    database = _database_status(db)
    catalog = await _catalog_status()
    payos_configured = all((settings.PAYOS_CLIENT_ID, settings.PAYOS_API_KEY, settings.PAYOS_CHECKSUM_KEY))

    return {
        "service": settings.SERVICE_NAME,
        "status": "healthy" if database == catalog == "healthy" else "unhealthy",
        "database": database,
        "product_service": catalog,
        "payos": "configured" if payos_configured else "not configured",
        "events": "enabled" if settings.EVENTS_ENABLED else "disabled",
        "watched_payments": poller.watched_count(),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/")
def root():
    """Service info"""
    return {
        "service": settings.SERVICE_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "metrics": "/metrics"
    }
