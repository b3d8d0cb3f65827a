"""FastAPI application factory."""

from fastapi import FastAPI

from account_service.config import configure_structlog, get_settings
from account_service.error_handlers import register_exception_handlers
from account_service.middleware.correlation_id import CorrelationIdMiddleware
from account_service.middleware.logging import LoggingMiddleware
from account_service.middleware.metrics import MetricsMiddleware, build_metrics_endpoint
from account_service.middleware.security_headers import SecurityHeadersMiddleware
from account_service.middleware.tracing import TracingMiddleware
from account_service.routers import confirm, developer, health


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_structlog(settings)

    app = FastAPI(title=settings.app.service)
    register_exception_handlers(app, environment=settings.app.environment)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_api_route("/metrics", build_metrics_endpoint(), methods=["GET"], include_in_schema=False)
    app.include_router(confirm.router)
    app.include_router(health.router)
    if settings.app.environment == "development":
        app.include_router(developer.router)
    return app


app = create_app()
