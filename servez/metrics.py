from __future__ import annotations

from prometheus_client import Counter, Gauge


REQUESTS_TOTAL = Counter(
    "servez_requests_total",
    "Requests answered by the static pipeline",
    labelnames=("method", "status"),
)
REQUEST_ERRORS_TOTAL = Counter(
    "servez_request_errors_total",
    "Request-scoped failures grouped by error kind",
    labelnames=("kind",),
)
SERVER_STARTS_TOTAL = Counter(
    "servez_server_starts_total",
    "Server start attempts grouped by outcome",
    labelnames=("outcome",),
)
SERVER_LISTENING = Gauge(
    "servez_server_listening",
    "1 while a server generation is accepting connections",
)

__all__ = [
    "REQUESTS_TOTAL",
    "REQUEST_ERRORS_TOTAL",
    "SERVER_STARTS_TOTAL",
    "SERVER_LISTENING",
]
