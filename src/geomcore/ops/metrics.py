"""Prometheus metrics shared across the request path and the watchdog."""

from prometheus_client import Counter, Histogram  # pyright: ignore[reportMissingImports]

from ..errors import DownstreamLogicError, DownstreamUnreachable

SOLVE_CACHE = Counter("geomcore_solve_cache_total", "Solve cache lookups", ["result"])
SOLVE_INFLIGHT_JOINS = Counter("geomcore_solve_inflight_joins_total", "Solves that joined an identical in-flight solve")
SOLVE_LATENCY = Histogram("geomcore_solve_latency_seconds", "End-to-end solve latency", ["source"])

DOWNSTREAM_CALLS = Counter("geomcore_downstream_calls_total", "Calls to the compute server", ["op", "outcome"])

BACKEND_WAKEUPS = Counter("geomcore_backend_wakeups_total", "ensure_running outcomes", ["status"])
BACKEND_SHUTDOWNS = Counter("geomcore_backend_shutdowns_total", "Idle deallocations issued")


def outcome_of(exc: BaseException) -> str:
    """Label value for a failed downstream call."""
    if isinstance(exc, DownstreamUnreachable):
        return "unreachable"
    if isinstance(exc, DownstreamLogicError):
        return "logic_error"
    return "error"
