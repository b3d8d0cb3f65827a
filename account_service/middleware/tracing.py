"""OpenTelemetry request tracing middleware."""

from __future__ import annotations

from fastapi import Request
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class TracingMiddleware(BaseHTTPMiddleware):
    """Create an OpenTelemetry span around request handling.

    Spans are named by method and route template so response codes in the
    query string never reach the tracing backend.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._tracer = trace.get_tracer("account_service.middleware.tracing")

    async def dispatch(self, request: Request, call_next) -> Response:
        """Trace request processing and attach key HTTP attributes."""
        with self._tracer.start_as_current_span(f"{request.method} {request.url.path}") as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.target", request.url.path)
            try:
                response = await call_next(request)
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR))
                raise

            route = request.scope.get("route")
            if route is not None:
                span.update_name(f"{request.method} {route.path}")
                span.set_attribute("http.route", route.path)
            span.set_attribute("http.status_code", response.status_code)
            status_code = StatusCode.ERROR if response.status_code >= 500 else StatusCode.OK
            span.set_status(Status(status_code))
            return response
