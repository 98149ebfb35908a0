"""Metrics collection for the embedding service.

Provides a thin convenience wrapper around ``prometheus_client`` so the
service consistently records HTTP, embedding and model-lifecycle metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for tests)
- ``measure_time`` gives quick timing logs for synchronous work
"""

import time
from functools import wraps
from typing import Any, Callable, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for the embedding service.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'ml_embedding_requests_total',
            'Total embedding generation requests',
            ['model_name', 'mode'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'ml_embedding_duration_seconds',
            'Embedding generation duration',
            ['model_name', 'mode'],
            registry=self.registry
        )

        self.embedding_texts = Counter(
            'ml_embedding_texts_total',
            'Total texts embedded',
            ['model_name'],
            registry=self.registry
        )

        self.embedding_errors = Counter(
            'ml_embedding_errors_total',
            'Failed embedding requests by error type',
            ['model_name', 'error_type'],
            registry=self.registry
        )

        self.model_load_duration = Histogram(
            'ml_model_load_duration_seconds',
            'Model load duration',
            ['model_name'],
            registry=self.registry
        )

        self.embedding_dimension = Gauge(
            'ml_embedding_dimension',
            'Output dimension of the loaded embedding model',
            ['model_name'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_embedding(
        self,
        model_name: str,
        mode: str,
        count: int,
        duration: float
    ) -> None:
        """Record embedding generation metrics."""
        self.embedding_requests.labels(model_name=model_name, mode=mode).inc()
        self.embedding_duration.labels(model_name=model_name, mode=mode).observe(duration)
        self.embedding_texts.labels(model_name=model_name).inc(count)

    def record_embedding_error(self, model_name: str, error_type: str) -> None:
        self.embedding_errors.labels(model_name=model_name, error_type=error_type).inc()

    def record_model_load(self, model_name: str, duration: float) -> None:
        self.model_load_duration.labels(model_name=model_name).observe(duration)

    def set_embedding_dimension(self, model_name: str, dimension: int) -> None:
        self.embedding_dimension.labels(model_name=model_name).set(dimension)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the metrics collector for the service.

    Returns a process‑wide singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector


def measure_time(operation: str, **labels: Any) -> Callable:
    """Decorator to measure function execution time.

    Example
    >>> @measure_time("model_load", component="pipeline")
    ... def load(model_id):
    ...     ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.info(
                    f"Operation {operation} completed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    **labels
                )
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(
                    f"Operation {operation} failed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    error=str(e),
                    **labels
                )
                raise
        return wrapper
    return decorator
