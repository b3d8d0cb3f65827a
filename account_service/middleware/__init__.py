"""Middleware package exports."""

from account_service.middleware.correlation_id import CorrelationIdMiddleware
from account_service.middleware.logging import LoggingMiddleware
from account_service.middleware.metrics import MetricsMiddleware, build_metrics_endpoint
from account_service.middleware.security_headers import SecurityHeadersMiddleware
from account_service.middleware.tracing import TracingMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "LoggingMiddleware",
    "MetricsMiddleware",
    "SecurityHeadersMiddleware",
    "TracingMiddleware",
    "build_metrics_endpoint",
]
