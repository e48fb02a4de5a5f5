"""
Health check and status endpoints
"""

from datetime import datetime, timezone
from fastapi import APIRouter, Request

from intake_gateway.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """
    Basic health check endpoint
    """
    config = request.app.state.config
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config.environment,
        "version": config.app_version
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness check - storage connectivity, webhook secret and circuit states
    """
    state = request.app.state
    config = state.config

    circuits = state.circuits.get_all_stats()
    open_circuits = [name for name, stats in circuits.items() if stats["state"] == "open"]

    checks = {
        "storage": state.storage.is_connected(),
        "webhook_secret": bool(config.vapi_webhook_secret),
        "sms_gateway": config.twilio_configured,
        "circuits_closed": not open_circuits
    }

    # SMS falls back to dry-run, so it does not gate readiness
    ready = checks["storage"] and checks["webhook_secret"] and checks["circuits_closed"]

    return {
        "status": "ready" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "circuits": circuits,
        "pending_alerts": state.fanout.pending
    }
