"""Prometheus counters for verification outcomes."""
from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, REGISTRY


class MetricsRegistry:
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        registry = registry if registry is not None else REGISTRY
        self.verifications = Counter(
            "sigtree_verifications_total",
            "Completed user verifications",
            ["mode", "outcome"],
            registry=registry,
        )
        self.failures = Counter(
            "sigtree_verification_failures_total",
            "Failed user verifications by error class",
            ["error"],
            registry=registry,
        )
        self.stale = Counter(
            "sigtree_stale_chains_total",
            "Verified chains whose three progress counters disagree",
            registry=registry,
        )

    def observe_success(self, mode: str, fresh: bool) -> None:
        self.verifications.labels(mode=mode, outcome="ok").inc()
        if not fresh:
            self.stale.inc()

    def observe_failure(self, mode: str, exc: BaseException) -> None:
        self.verifications.labels(mode=mode, outcome="error").inc()
        self.failures.labels(error=type(exc).__name__).inc()


_registry: Optional[MetricsRegistry] = None


def get_registry() -> MetricsRegistry:
    global _registry
    if _registry is None:
        _registry = MetricsRegistry()
    return _registry


__all__ = ["get_registry", "MetricsRegistry"]
