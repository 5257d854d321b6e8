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

billing_jobs_total = Counter(
    "billing_jobs_total",
    "Total billing job runs by status",
    ["job_name", "status"],
)

billing_job_duration_seconds = Histogram(
    "billing_job_duration_seconds",
    "Billing job duration in seconds",
    ["job_name"],
)

billing_job_transitions_total = Counter(
    "billing_job_transitions_total",
    "Records transitioned by billing jobs",
    ["job_name"],
)

billing_job_candidate_failures_total = Counter(
    "billing_job_candidate_failures_total",
    "Billing job candidates that failed and were skipped",
    ["job_name"],
)

invoices_generated_total = Counter(
    "invoices_generated_total",
    "Invoices generated by type",
    ["invoice_type"],
)

invoice_number_conflicts_total = Counter(
    "invoice_number_conflicts_total",
    "Invoice number collisions resolved by retry",
)

payment_allocation_conflicts_total = Counter(
    "payment_allocation_conflicts_total",
    "Allocation races rejected by the version check",
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_job(job_name: str, status: str, duration: float, transitioned: int = 0, failed: int = 0) -> None:
    billing_jobs_total.labels(job_name=job_name, status=status).inc()
    billing_job_duration_seconds.labels(job_name=job_name).observe(duration)
    if transitioned > 0:
        billing_job_transitions_total.labels(job_name=job_name).inc(transitioned)
    if failed > 0:
        billing_job_candidate_failures_total.labels(job_name=job_name).inc(failed)


def observe_invoice_generated(invoice_type: str) -> None:
    invoices_generated_total.labels(invoice_type=invoice_type).inc()


def observe_invoice_number_conflict() -> None:
    invoice_number_conflicts_total.inc()


def observe_allocation_conflict() -> None:
    payment_allocation_conflicts_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
