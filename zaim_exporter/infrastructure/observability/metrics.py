"""Prometheus metrics describing the exporter itself"""

from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, Histogram


@dataclass(frozen=True)
class ServiceMetrics:
    request_duration: Histogram
    fetch_failures: Counter
    handshakes: Counter


def build_service_metrics(registry: CollectorRegistry) -> ServiceMetrics:
    """Create the exporter's own metrics on `registry` (never the global default)"""
    return ServiceMetrics(
        # Service health
        request_duration=Histogram(
            "http_request_duration_seconds",
            "HTTP request latency",
            ["method", "endpoint", "status"],
            registry=registry,
        ),
        # Zaim API
        fetch_failures=Counter(
            "zaim_exporter_fetch_failures_total",
            "Failed Zaim transaction fetches",
            registry=registry,
        ),
        # OAuth
        handshakes=Counter(
            "zaim_exporter_handshakes_total",
            "OAuth handshake attempts",
            ["outcome"],  # started | completed | failed
            registry=registry,
        ),
    )


def record_handshake(metrics: ServiceMetrics, outcome: str) -> None:
    metrics.handshakes.labels(outcome=outcome).inc()
