"""
Health check and system status API endpoints.
"""
import logging
from typing import Dict, Any
from fastapi import APIRouter, Request
from sqlalchemy import text

from ..config.settings import get_settings
from ..models.db.database import engine
from ..utils.clock import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", summary="Health Check")
def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.
    Returns system status and configuration info.
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "message": f"Welcome to {settings.app_name} v{settings.app_version}",
        "environment": settings.environment,
        "timestamp": utcnow().isoformat(),
    }


def _database_reachable() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return False


@router.get("/health/detailed", summary="Detailed Health Check")
def detailed_health_check(request: Request) -> Dict[str, Any]:
    """
    Detailed health check with configuration, database and achievement engine status.
    """
    settings = get_settings()
    registry = getattr(request.app.state, "progress_registry", None)
    catalog = registry.catalog if registry is not None else None

    health_status = {
        "status": "healthy",
        "app_info": {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "debug": settings.debug,
            "testing": settings.testing
        },
        "configuration": {
            "log_level": settings.log_level,
            "database_configured": bool(settings.database_url),
            "cors_enabled": settings.cors_enabled,
            "api_docs_enabled": settings.api_docs_enabled
        },
        "database": {
            "reachable": _database_reachable(),
        },
        "achievements": {
            "evaluation_enabled": catalog is not None,
            "catalog_version": catalog.version if catalog is not None else None,
            "catalog_size": len(catalog) if catalog is not None else 0,
            "active_sessions": len(registry) if registry is not None else 0,
            "level_step": settings.level_step,
            "webhook_configured": bool(settings.notification_webhook_url),
        },
    }

    config_issues = settings.validate_required_settings()
    if config_issues:
        health_status["status"] = "degraded"
        health_status["configuration_issues"] = config_issues
        logger.warning("Configuration issues found: %s", config_issues)
    if not health_status["database"]["reachable"] or catalog is None:
        health_status["status"] = "degraded"

    return health_status
