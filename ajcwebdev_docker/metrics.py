# ajcwebdev_docker/metrics.py
from __future__ import annotations

from wsgiref.simple_server import WSGIServer

from prometheus_client import Counter, Histogram, start_http_server

# Everything that missed the route table shares one label to keep cardinality bounded
UNMATCHED_PATH = "<unmatched>"

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency (seconds)",
    ["method", "path", "status"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

HTTP_ERRORS_TOTAL = Counter(
    "http_errors_total",
    "Total 5xx responses, including requests that raised",
    ["method", "path"],
)


def observe_request(method: str, path: str, status: int | None, duration: float) -> None:
    """Record one finished request. status=None means the handler raised."""
    if status == 404:
        path = UNMATCHED_PATH
    if status is None or status >= 500:
        HTTP_ERRORS_TOTAL.labels(method=method, path=path).inc()
    if status is None:
        return

    labels = {"method": method, "path": path, "status": str(status)}
    HTTP_REQUESTS_TOTAL.labels(**labels).inc()
    HTTP_REQUEST_DURATION_SECONDS.labels(**labels).observe(duration)


def start_metrics_server(host: str, port: int) -> WSGIServer:
    """Serve the Prometheus exposition on its own port. Caller owns shutdown()."""
    server, _thread = start_http_server(port, addr=host)
    return server
