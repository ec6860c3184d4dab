"""
Helpers shared by the tracker's routers: input checks and the mapping from
service and engine errors to HTTP responses.
"""
import logging
from typing import Optional
from fastapi import HTTPException, status

from ..services.exceptions import (
    AchievementEngineError,
    CatalogLoadError,
    MetricsValidationError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying against an unreachable store
STORE_RETRY_AFTER = 5


def validate_non_empty_string(value: Optional[str], field_name: str) -> None:
    """
    Reject a missing or whitespace-only form field with a 400.

    Raises:
        HTTPException: If value is None or blank
    """
    if not value or not value.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field_name} cannot be empty."
        )


def _engine_error(error: AchievementEngineError, service_name: str) -> HTTPException:
    if isinstance(error, StoreUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{service_name} store is unreachable; unlocks stay pending and will be retried",
            headers={"Retry-After": str(STORE_RETRY_AFTER)},
        )
    if isinstance(error, CatalogLoadError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{service_name} evaluation is disabled: the catalog could not be loaded",
        )
    if isinstance(error, MetricsValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Application history could not be evaluated: {error}",
        )
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"{service_name} service is currently unavailable",
    )


def handle_service_error(error: Exception, service_name: str) -> HTTPException:
    """
    Map a service-layer exception to the HTTPException the router raises.

    Engine errors get their own messages. Anything else follows the general
    rule: ValueError is the caller's fault (400), RuntimeError is a dependency
    being down (503), the rest is a 500.
    """
    error_msg = str(error)
    logger.error("%s service error: %s", service_name, error_msg)

    if isinstance(error, AchievementEngineError):
        return _engine_error(error, service_name)
    elif isinstance(error, ValueError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_msg
        )
    elif isinstance(error, RuntimeError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{service_name} service is currently unavailable"
        )
    else:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"An unexpected error occurred in {service_name}: {error_msg}"
        )


def check_resource_exists(resource: Optional[object], resource_type: str) -> None:
    """Raise a 404 naming ``resource_type`` when the lookup came back empty."""
    if resource is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource_type} not found"
        )
