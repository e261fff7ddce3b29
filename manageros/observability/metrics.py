# ==== PROMETHEUS METRICS ==== #

"""
Prometheus metrics for ManagerOS.

This module defines request, evaluation and exception lifecycle metrics and
exposes them through a scrape endpoint.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    REGISTRY
)

from manageros import __version__
from manageros.settings import settings


# ==== REQUEST METRICS ==== #

http_request_latency_seconds = Histogram(
    "manageros_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "path", "status_code"]
)


# ==== TOLERANCE EVALUATION METRICS ==== #

tolerance_exceptions_created_total = Counter(
    "manageros_tolerance_exceptions_created_total",
    "Total exceptions created by the tolerance evaluator",
    ["organization", "rule_type"]
)

tolerance_rule_errors_total = Counter(
    "manageros_tolerance_rule_errors_total",
    "Total tolerance rule evaluation failures",
    ["organization", "rule_type"]
)

tolerance_evaluation_duration_seconds = Histogram(
    "manageros_tolerance_evaluation_duration_seconds",
    "Time spent evaluating all tolerance rules of an organization",
    ["organization"]
)

exception_transitions_total = Counter(
    "manageros_exception_transitions_total",
    "Exception status transitions",
    ["status", "source"]  # source: user, system
)

# Database metrics
db_sessions_active = Gauge(
    "manageros_db_sessions_active",
    "Number of open database sessions"
)

# System metrics
app_info = Gauge(
    "manageros_app_info",
    "Application information",
    ["version", "environment", "service_name"]
)


def init_metrics() -> None:
    """Initialize metrics collection."""
    app_info.labels(
        version=__version__,
        environment=settings.APP_ENV,
        service_name=settings.SERVICE_NAME
    ).set(1)


# Metrics router for Prometheus scraping
metrics_router = APIRouter()


@metrics_router.get(settings.PROMETHEUS_SCRAPE_PATH)
def get_metrics() -> PlainTextResponse:
    """Expose Prometheus metrics for scraping.

    Returns:
        Prometheus metrics in text format
    """
    return PlainTextResponse(
        generate_latest(REGISTRY).decode("utf-8"),
        media_type="text/plain"
    )
