"""
Prometheus metrics for the snapshot service.

- HTTP request metrics via prometheus-fastapi-instrumentator
- Snapshot write outcomes per trigger
- Daily sweep duration

Metrics are served on a SEPARATE admin port (METRICS_ADMIN_PORT) behind HTTP
Basic Auth, never on the public API port.
"""

import base64
import hmac

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator, metrics
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route
from starlette.types import ASGIApp

from networth.config import settings


snapshots_total = Counter(
    "networth_snapshots_total",
    "Snapshot write attempts by trigger and outcome",
    ["source", "outcome"],  # outcome: written, no_accounts, persist_failure
)

sweep_duration_seconds = Histogram(
    "networth_sweep_duration_seconds",
    "Daily snapshot sweep duration in seconds",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

sweep_user_failures_total = Counter(
    "networth_sweep_user_failures_total",
    "Per-user failures during the daily sweep",
    ["kind"],
)


def setup_metrics(app: FastAPI) -> None:
    """
    Instrument the FastAPI app with HTTP metrics collectors.

    Does NOT expose a /metrics route on the main API port.
    """
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/docs", "/openapi.json"],
    )
    instrumentator.add(
        metrics.latency(
            should_include_handler=True,
            should_include_method=True,
            should_include_status=True,
        )
    )
    instrumentator.add(
        metrics.requests(
            should_include_handler=True,
            should_include_method=True,
            should_include_status=True,
        )
    )
    instrumentator.instrument(app)


def _unauthorized() -> Response:
    return Response(
        content="Unauthorized",
        status_code=401,
        headers={"WWW-Authenticate": 'Basic realm="metrics"'},
    )


def create_metrics_app() -> ASGIApp:
    """
    Create a minimal ASGI app that serves /metrics behind HTTP Basic Auth.

    Dev access:
        curl -u admin:metrics_admin http://localhost:9090/metrics
    """
    async def metrics_endpoint(request: Request) -> Response:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Basic "):
            return _unauthorized()

        try:
            decoded = base64.b64decode(auth_header[6:]).decode("utf-8", errors="replace")
            username, password = decoded.split(":", 1)
        except ValueError:
            return _unauthorized()

        if not (
            hmac.compare_digest(username, settings.METRICS_USERNAME)
            and hmac.compare_digest(password, settings.METRICS_PASSWORD)
        ):
            return _unauthorized()

        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return Starlette(routes=[Route("/metrics", metrics_endpoint)])


def track_snapshot(source: str, outcome: str) -> None:
    """Count one snapshot write attempt."""
    snapshots_total.labels(source=source, outcome=outcome).inc()


def track_sweep(duration_seconds: float, failures_by_kind: dict) -> None:
    """Record a completed sweep."""
    sweep_duration_seconds.observe(duration_seconds)
    for kind, count in failures_by_kind.items():
        sweep_user_failures_total.labels(kind=kind).inc(count)
