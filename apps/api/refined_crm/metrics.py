from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
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

authz_decisions_total = Counter(
    "authz_decisions_total",
    "Access decisions by operation and outcome",
    ["operation", "decision", "reason"],
)

company_finalizations_total = Counter(
    "company_finalizations_total",
    "Companies moved from Pending to Finalized",
)

notifications_emitted_total = Counter(
    "notifications_emitted_total",
    "Workflow notifications written by kind",
    ["kind"],
)

permission_matrix_commits_total = Counter(
    "permission_matrix_commits_total",
    "Permission matrix commits by outcome",
    ["status"],
)

permission_matrix_version = Gauge(
    "permission_matrix_version",
    "Version of the active permission matrix",
)

crm_jobs_total = Counter(
    "crm_jobs_total",
    "Total scheduled CRM jobs by status",
    ["job_type", "status"],
)

crm_job_duration_seconds = Histogram(
    "crm_job_duration_seconds",
    "Scheduled CRM job duration in seconds",
    ["job_type"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(path_format, str) and path_format:
            return _PATH_PARAM_RE.sub("{id}", path_format)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_decision(operation: str, decision: str, reason: str = "") -> None:
    authz_decisions_total.labels(operation=operation, decision=decision, reason=reason).inc()


def observe_company_finalized() -> None:
    company_finalizations_total.inc()


def observe_notification(kind: str, count: int = 1) -> None:
    if count > 0:
        notifications_emitted_total.labels(kind=kind).inc(count)


def observe_matrix_commit(status: str, version: int | None = None) -> None:
    permission_matrix_commits_total.labels(status=status).inc()
    if version is not None:
        permission_matrix_version.set(version)


def observe_job(job_type: str, status: str, duration: float) -> None:
    crm_jobs_total.labels(job_type=job_type, status=status).inc()
    crm_job_duration_seconds.labels(job_type=job_type).observe(duration)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
