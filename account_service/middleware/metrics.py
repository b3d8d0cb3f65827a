"""Prometheus-style metrics: HTTP request stats and workflow outcome counters."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from time import perf_counter

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse, Response

_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@dataclass
class _DurationStat:
    """Aggregate duration stats per label tuple."""

    count: int = 0
    total_seconds: float = 0.0


class MetricsRegistry:
    """In-process metrics registry that renders Prometheus text format."""

    def __init__(self) -> None:
        self._duration_stats: dict[tuple[str, str, str], _DurationStat] = {}
        self._outcome_counts: dict[tuple[str, str], int] = {}
        self._lock = Lock()

    def record(self, method: str, path: str, status: str, duration_seconds: float) -> None:
        """Record one request measurement for the label set."""
        with self._lock:
            stat = self._duration_stats.setdefault((method, path, status), _DurationStat())
            stat.count += 1
            stat.total_seconds += duration_seconds

    def record_outcome(self, flow: str, outcome: str) -> None:
        """Count one terminal outcome of a confirmation workflow."""
        with self._lock:
            key = (flow, outcome)
            self._outcome_counts[key] = self._outcome_counts.get(key, 0) + 1

    def outcome_count(self, flow: str, outcome: str) -> int:
        """Return how many times ``outcome`` was recorded for ``flow``."""
        with self._lock:
            return self._outcome_counts.get((flow, outcome), 0)

    def render_prometheus_text(self) -> str:
        """Render metrics in Prometheus exposition format."""
        lines = [
            "# HELP account_service_http_requests_total Total HTTP requests seen by the service.",
            "# TYPE account_service_http_requests_total counter",
        ]
        with self._lock:
            request_stats = sorted(self._duration_stats.items())
            outcome_counts = sorted(self._outcome_counts.items())

        for (method, path, status), stat in request_stats:
            labels = _format_labels(method=method, path=path, status=status)
            lines.append(f"account_service_http_requests_total{{{labels}}} {stat.count}")

        lines.append(
            "# HELP account_service_http_request_duration_seconds"
            " End-to-end HTTP request duration in seconds."
        )
        lines.append("# TYPE account_service_http_request_duration_seconds summary")
        for (method, path, status), stat in request_stats:
            labels = _format_labels(method=method, path=path, status=status)
            lines.append(
                f"account_service_http_request_duration_seconds_count{{{labels}}} {stat.count}"
            )
            lines.append(
                f"account_service_http_request_duration_seconds_sum{{{labels}}} {stat.total_seconds}"
            )

        lines.append(
            "# HELP account_service_workflow_outcomes_total Terminal outcomes of confirmation flows."
        )
        lines.append("# TYPE account_service_workflow_outcomes_total counter")
        for (flow, outcome), count in outcome_counts:
            labels = _format_labels(flow=flow, outcome=outcome)
            lines.append(f"account_service_workflow_outcomes_total{{{labels}}} {count}")

        return "\n".join(lines) + "\n"


def _escape_label(value: str) -> str:
    """Escape string values for Prometheus label rendering."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_labels(**labels: str) -> str:
    """Build a label set string in argument order."""
    return ",".join(f'{name}="{_escape_label(value)}"' for name, value in labels.items())


DEFAULT_METRICS_REGISTRY = MetricsRegistry()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record metrics for all responses, including failed requests."""

    def __init__(self, app, registry: MetricsRegistry = DEFAULT_METRICS_REGISTRY) -> None:
        super().__init__(app)
        self._registry = registry

    async def dispatch(self, request: Request, call_next) -> Response:
        """Capture request counts and durations labelled by route template."""
        start = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            path = getattr(route, "path", request.url.path)
            self._registry.record(
                method=request.method,
                path=path,
                status=str(status_code),
                duration_seconds=perf_counter() - start,
            )


def build_metrics_endpoint(registry: MetricsRegistry = DEFAULT_METRICS_REGISTRY):
    """Build FastAPI-compatible endpoint that serves metrics text."""

    async def metrics_endpoint() -> PlainTextResponse:
        """Return current metrics in Prometheus exposition format."""
        return PlainTextResponse(registry.render_prometheus_text(), media_type=_CONTENT_TYPE)

    return metrics_endpoint
