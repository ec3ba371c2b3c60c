"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for application infrastructure, such as health checks, plus the
single mapping from ServiceResult error codes to HTTP statuses.
"""

from __future__ import annotations

from django.db import connection
from django.http import JsonResponse
from rest_framework.response import Response


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Used by container health checks, load balancers and uptime monitors.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: All systems operational
        503: Database unreachable

    Note:
        The cache backs client replay protection only, so a cache outage
        degrades the service without failing the health check.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    # Check database connectivity
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # Check cache connectivity
    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        health_status["cache"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)


# =============================================================================
# ServiceResult -> HTTP
# =============================================================================

# Error code -> HTTP status for every user-facing endpoint
ERROR_STATUS_CODES = {
    "VALIDATION_ERROR": 400,
    "DEADLINE_PASSED": 400,
    "PERMISSION_DENIED": 403,
    "BOOKING_NOT_FOUND": 404,
    "PAYMENT_NOT_FOUND": 404,
    "NOT_FOUND": 404,
    "INVALID_STATE_TRANSITION": 409,
    "SLOT_UNAVAILABLE": 409,
    "PAYMENT_ALREADY_COMPLETED": 409,
    "REQUEST_IN_PROGRESS": 409,
    "REFUND_FAILED": 502,
    "CHECKOUT_FAILED": 502,
}


def status_for_error(error_code: str | None) -> int:
    """HTTP status for a ServiceResult error code (400 when unmapped)."""
    return ERROR_STATUS_CODES.get(error_code or "", 400)


def failure_response(result):
    """
    Build the DRF Response for a failed ServiceResult.

    Usage:
        result = BookingService.reschedule(booking, request.user, start)
        if not result.success:
            return failure_response(result)
    """
    return Response(result.to_response(), status=status_for_error(result.error_code))
