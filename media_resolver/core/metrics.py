from __future__ import annotations

"""Lightweight Prometheus metrics for the resolvers.

Counters/histograms register on the default `prometheus_client` registry;
callers only use the small `inc_*` / `observe_*` helpers below.
"""

from prometheus_client import Counter, Histogram

registrations_total = Counter(
    "media_registrations_total",
    "find_or_create outcomes",
    labelnames=("outcome",),
)
probes_total = Counter(
    "media_probes_total",
    "Probe Engine results",
    labelnames=("backend", "result"),
)
probe_latency = Histogram(
    "media_probe_seconds",
    "Latency of a single probe",
    labelnames=("backend",),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)
discoveries_total = Counter(
    "media_discoveries_total",
    "Discovery searches",
    labelnames=("kind", "result"),
)
thumbnail_strategies_total = Counter(
    "media_thumbnail_strategies_total",
    "Thumbnail strategy attempts",
    labelnames=("method", "result"),
)
db_errors_total = Counter(
    "media_db_errors_total",
    "Database errors encountered",
    labelnames=("component",),
)


def inc_registration(outcome: str) -> None:
    registrations_total.labels(outcome=outcome).inc()


def inc_probe(backend: str, result: str) -> None:
    probes_total.labels(backend=backend, result=result).inc()


def observe_probe_seconds(backend: str, seconds: float) -> None:
    probe_latency.labels(backend=backend).observe(seconds)


def inc_discovery(kind: str, result: str) -> None:
    discoveries_total.labels(kind=kind, result=result).inc()


def inc_thumbnail_strategy(method: str, result: str) -> None:
    thumbnail_strategies_total.labels(method=method, result=result).inc()


def inc_db_error(component: str) -> None:
    db_errors_total.labels(component=component).inc()


__all__ = [
    "registrations_total",
    "probes_total",
    "probe_latency",
    "discoveries_total",
    "thumbnail_strategies_total",
    "db_errors_total",
    "inc_registration",
    "inc_probe",
    "observe_probe_seconds",
    "inc_discovery",
    "inc_thumbnail_strategy",
    "inc_db_error",
]
