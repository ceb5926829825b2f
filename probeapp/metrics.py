"""
Failure metrics
===============
Prometheus counters scraped from /metrics. Annotate the pods so Prometheus
picks them up:

    annotations:
      prometheus.io/scrape: "true"
      prometheus.io/port: "8081"
      prometheus.io/path: "/metrics"
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

ERROR_METRIC = "error_curl"


class FailureMetrics:
    """Owns a private registry so every app instance starts from zero."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None, runtime_collectors: bool = True):
        self.registry = registry if registry is not None else CollectorRegistry()
        if runtime_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)
        self._errors = Counter(
            ERROR_METRIC,
            "Total curl request failed",
            ["vendor"],
            registry=self.registry,
        )

    def record_failure(self, vendor: str) -> None:
        self._errors.labels(vendor=vendor).inc()

    def failures(self, vendor: str) -> float:
        value = self.registry.get_sample_value(f"{ERROR_METRIC}_total", {"vendor": vendor})
        return value or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
