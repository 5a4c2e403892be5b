from .metrics_exporter import MetricsRegistry, get_registry

__all__ = ["MetricsRegistry", "get_registry"]
