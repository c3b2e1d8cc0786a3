from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

rbac_filters_compiled_total = Counter(
    "rbac_filters_compiled_total",
    "Total ownership filters compiled by entity and role",
    ["entity", "role"],
)

rbac_denied_reads_count = Counter(
    "rbac_denied_reads_count",
    "Total single-record reads denied by the record access guard",
    ["resource", "reason"],
)

rbac_policy_denied_total = Counter(
    "rbac_policy_denied_total",
    "Total capability checks denied by the access policy",
    ["resource", "action"],
)

rbac_directory_lookup_failures_total = Counter(
    "rbac_directory_lookup_failures_total",
    "Directory lookups that failed and degraded to self-only access",
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return path_format
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return route_path
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_filter_compiled(entity: str, role: str) -> None:
    rbac_filters_compiled_total.labels(entity=entity, role=role).inc()


def observe_denied_read(resource: str, reason: str) -> None:
    rbac_denied_reads_count.labels(resource=resource, reason=reason).inc()


def observe_policy_denied(resource: str, action: str) -> None:
    rbac_policy_denied_total.labels(resource=resource, action=action).inc()


def observe_directory_lookup_failure() -> None:
    rbac_directory_lookup_failures_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
