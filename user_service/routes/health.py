"""
Health check endpoint.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from user_service.dependencies import get_user_service
from user_service.services.user import UserService


router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health_check(request: Request, service: UserService = Depends(get_user_service)) -> dict:
    """Report database (and cache, when enabled) connectivity."""
    settings = request.app.state.settings
    database_ok = service.check_storage()
    body = {
        "status": "ok" if database_ok else "error",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "database": "connected" if database_ok else "disconnected",
        "environment": settings.ENVIRONMENT,
        "version": settings.VERSION,
    }
    if service.cache is not None:
        body["cache"] = "connected" if service.cache.ping() else "disconnected"
    return body
