"""Deterministic task error classification for run summaries."""

from __future__ import annotations

from dataclasses import dataclass

from web_bench.bench.errors import HARD_TIMEOUT_MESSAGE, SOFT_TIMEOUT_MESSAGE
from web_bench.bench.models import ErrorCategory

TASK_ERROR_CLASSIFIER_VERSION = 1

_DNS_PATTERNS: tuple[str, ...] = (
    "err_name_not_resolved",
    "name or service not known",
    "could not resolve host",
    "getaddrinfo",
    "dns",
)
_TLS_PATTERNS: tuple[str, ...] = (
    "err_cert_",
    "err_ssl_",
    "ssl_error",
    "certificate",
    "handshake",
)
_CONNECTION_PATTERNS: tuple[str, ...] = (
    "err_connection_refused",
    "err_connection_reset",
    "err_connection_closed",
    "err_connection_timed_out",
    "err_address_unreachable",
    "err_empty_response",
    "connection refused",
    "connection reset",
)
_HTTP_PATTERNS: tuple[str, ...] = (
    "err_http_response_code_failure",
    "err_too_many_redirects",
    "err_invalid_response",
    "http ",
)
_NAVIGATION_PATTERNS: tuple[str, ...] = (
    "page.goto",
    "navigation",
    "net::err_aborted",
    "frame was detached",
    "execution context was destroyed",
)
_RESOURCE_PATTERNS: tuple[str, ...] = (
    "target page, context or browser has been closed",
    "target closed",
    "browser has been closed",
    "out of memory",
    "crash",
)


@dataclass(slots=True)
class TaskErrorClassification:
    """Normalized classification result."""

    category: ErrorCategory
    matched_rule: str
    matched_pattern: str | None


def classify_task_error(message: str) -> TaskErrorClassification:
    """Classify a task error message into a summary category."""

    haystack = message.strip().lower()

    if haystack == HARD_TIMEOUT_MESSAGE:
        return TaskErrorClassification(ErrorCategory.HARD_TIMEOUT, "hard_timeout", None)
    if haystack == SOFT_TIMEOUT_MESSAGE:
        return TaskErrorClassification(ErrorCategory.TIMEOUT, "soft_timeout", None)

    for category, rule, patterns in (
        (ErrorCategory.DNS, "dns", _DNS_PATTERNS),
        (ErrorCategory.TLS, "tls", _TLS_PATTERNS),
        (ErrorCategory.CONNECTION, "connection", _CONNECTION_PATTERNS),
        (ErrorCategory.HTTP, "http", _HTTP_PATTERNS),
        (ErrorCategory.RESOURCE, "resource", _RESOURCE_PATTERNS),
    ):
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return TaskErrorClassification(category, rule, pattern)

    # Playwright reports its own navigation timeouts as "Timeout 30000ms exceeded".
    if "timeout" in haystack and "exceeded" in haystack:
        return TaskErrorClassification(ErrorCategory.TIMEOUT, "driver_timeout", "exceeded")

    pattern = _first_match(haystack, _NAVIGATION_PATTERNS)
    if pattern is not None:
        return TaskErrorClassification(ErrorCategory.NAVIGATION, "navigation", pattern)

    return TaskErrorClassification(ErrorCategory.UNKNOWN, "fallback_unknown", None)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
