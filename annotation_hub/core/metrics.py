"""
Prometheus metrics for service monitoring.

This module provides metrics collection for:
- HTTP request latency and counts
- Application state transitions
- Invoice payments and payout exports
- Notification delivery
"""

import time
from collections.abc import Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

from annotation_hub.core.config import settings

# =============================================================================
# Service Info
# =============================================================================

SERVICE_INFO = Info("annotation_hub_service", "Information about the annotation hub service")
SERVICE_INFO.info(
    {"version": "1.0.0", "service_name": settings.service_name, "environment": settings.environment}
)


# =============================================================================
# HTTP Metrics
# =============================================================================

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "endpoint", "status_code"]
)

HTTP_REQUEST_IN_PROGRESS = Gauge(
    "http_requests_in_progress", "HTTP requests currently in progress", ["method", "endpoint"]
)


# =============================================================================
# Domain Metrics
# =============================================================================

APPLICATION_TRANSITIONS = Counter(
    "application_transitions_total",
    "Application status transitions",
    ["to_status"],
)

CAPACITY_REJECTIONS = Counter(
    "application_capacity_rejections_total",
    "Approvals refused because the project was at capacity",
)

PROJECT_DELETIONS = Counter(
    "project_deletions_total", "Projects deleted", ["mode"]  # direct, otp
)

DELETION_OTP_FAILURES = Counter(
    "deletion_otp_failures_total", "Rejected deletion OTP verifications", ["reason"]
)

INVOICES_PAID = Counter("invoices_paid_total", "Invoices marked paid", ["mode"])  # single, bulk

PAYOUT_EXPORT_ROWS = Counter(
    "payout_export_rows_total", "Payout CSV rows by outcome", ["rail", "outcome"]  # written, skipped
)

NOTIFICATIONS_SENT = Counter(
    "notifications_total", "Notification delivery attempts", ["kind", "status"]  # sent, failed
)


# =============================================================================
# Middleware
# =============================================================================


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP request metrics.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(request.url.path)

        HTTP_REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).inc()
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        except Exception:
            status_code = "500"
            raise
        finally:
            duration = time.time() - start_time
            HTTP_REQUEST_DURATION.labels(
                method=method, endpoint=endpoint, status_code=status_code
            ).observe(duration)
            HTTP_REQUEST_TOTAL.labels(
                method=method, endpoint=endpoint, status_code=status_code
            ).inc()
            HTTP_REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).dec()

        return response

    def _normalize_path(self, path: str) -> str:
        """
        Normalize path by replacing ObjectId segments with placeholders.

        Example:
            /projects/65a1f0c2e4b0a1b2c3d4e5f6/applications -> /projects/{id}/applications
        """
        parts = path.strip("/").split("/")
        normalized = ["{id}" if len(part) == 24 else part for part in parts]
        return "/" + "/".join(normalized) if normalized else "/"


# =============================================================================
# Helper Functions
# =============================================================================


def record_application_transition(to_status: str):
    APPLICATION_TRANSITIONS.labels(to_status=to_status).inc()


def record_capacity_rejection():
    CAPACITY_REJECTIONS.inc()


def record_project_deletion(mode: str):
    PROJECT_DELETIONS.labels(mode=mode).inc()


def record_otp_failure(reason: str):
    DELETION_OTP_FAILURES.labels(reason=reason).inc()


def record_invoice_paid(mode: str = "single", count: int = 1):
    INVOICES_PAID.labels(mode=mode).inc(count)


def record_payout_rows(rail: str, written: int, skipped: int):
    PAYOUT_EXPORT_ROWS.labels(rail=rail, outcome="written").inc(written)
    PAYOUT_EXPORT_ROWS.labels(rail=rail, outcome="skipped").inc(skipped)


def record_notification(kind: str, status: str):
    NOTIFICATIONS_SENT.labels(kind=kind, status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
